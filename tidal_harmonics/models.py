"""
Value objects shared by the prediction engine.

Everything here is immutable: astronomical angles are computed fresh for
every instant, station harmonic constants are loaded once, and predicted
points/extrema are plain results with no identity.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from . import config

DoodsonNumbers = Tuple[int, int, int, int, int, int]


class ConstituentFamily(str, Enum):
    """
    Broad frequency band of a tidal constituent.

    - SEMIDIURNAL: two cycles per day (M2, S2, N2, ...)
    - DIURNAL: one cycle per day (K1, O1, P1, ...)
    - LONG_PERIOD: fortnightly to annual (Mf, Mm, Sa, ...)
    - SHALLOW_WATER: overtides and compound tides (M4, MS4, MK3, ...)
    """
    SEMIDIURNAL = "semidiurnal"
    DIURNAL = "diurnal"
    LONG_PERIOD = "long-period"
    SHALLOW_WATER = "shallow-water"


class ExtremeType(str, Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class AstronomicalAngles:
    """
    Fundamental astronomical arguments in degrees, each in [0, 360).

    Attributes:
        T: Hour angle of the mean sun at Greenwich (0 at noon, 180 at midnight UT)
        s: Mean longitude of the Moon
        h: Mean longitude of the Sun
        p: Mean longitude of the lunar perigee
        N: Mean longitude of the lunar ascending node
        pp: Mean longitude of the solar perigee (p')
        centuries: Julian centuries from J2000.0 the angles were computed for

    Every field holds a numpy array instead of a float when the angles were
    evaluated for a batch of instants.
    """
    T: Any
    s: Any
    h: Any
    p: Any
    N: Any
    pp: Any
    centuries: Any = 0.0

    def as_tuple(self) -> Tuple[Any, Any, Any, Any, Any, Any]:
        """Angles in Doodson order (T, s, h, p, N, p')."""
        return (self.T, self.s, self.h, self.p, self.N, self.pp)

    @property
    def reduced_confidence(self) -> bool:
        limit = config.EPHEMERIS_VALID_CENTURIES
        return bool(np.any(np.abs(self.centuries) > limit))


@dataclass(frozen=True)
class ConstituentDefinition:
    """
    Catalog entry for a tidal constituent.

    ``speed`` is in degrees per hour and ``period`` in hours. ``phase_offset``
    is the constant term (0, +/-90 or 180 degrees) Schureman adds to the
    Doodson argument of some constituents.
    """
    symbol: str
    name: str
    family: ConstituentFamily
    doodson: DoodsonNumbers
    speed: float
    period: float
    phase_offset: float = 0.0

    def __post_init__(self):
        if len(self.doodson) != 6:
            raise ValueError(
                f"{self.symbol}: Doodson numbers must have 6 entries, got {len(self.doodson)}"
            )


@dataclass(frozen=True)
class StationConstituent:
    """Harmonic constants of one constituent at one station."""
    symbol: str
    amplitude: float  # meters
    phase: float  # degrees, Greenwich phase lag (kappa)

    def __post_init__(self):
        if not math.isfinite(self.amplitude) or self.amplitude < 0:
            raise ValueError(
                f"{self.symbol}: amplitude must be a finite value >= 0, got {self.amplitude}"
            )
        if not math.isfinite(self.phase):
            raise ValueError(f"{self.symbol}: phase must be finite, got {self.phase}")
        object.__setattr__(self, 'phase', self.phase % 360.0)


@dataclass(frozen=True)
class Station:
    """
    A tide station and its harmonic constants.

    ``mean_level`` is Z0, the offset of mean sea level above the station
    datum. It defaults to 0, i.e. heights are relative to the datum itself.
    """
    id: str
    name: str
    lat: float
    lon: float
    datum: str
    constituents: Tuple[StationConstituent, ...] = ()
    mean_level: float = 0.0
    timezone: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    harmonic_epoch: Optional[str] = None

    def constituent(self, symbol: str) -> Optional[StationConstituent]:
        """Find a constituent by symbol (case-insensitive)."""
        wanted = symbol.strip().upper()
        for c in self.constituents:
            if c.symbol.strip().upper() == wanted:
                return c
        return None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'Station':
        """
        Build a station from an external station record.

        Args:
            record: Mapping with keys id, name, lat, lon, datum and
                constituents (list of {symbol, amplitude, phase}); optionally
                mean_level, timezone, country, state, harmonicEpoch.

        Returns:
            Station instance

        Raises:
            ValueError: If a required field is missing or a constituent is invalid
        """
        for key in ('id', 'name', 'lat', 'lon', 'constituents'):
            if key not in record:
                raise ValueError(f"Station record missing field '{key}'")

        constituents = []
        for item in record['constituents']:
            try:
                constituents.append(StationConstituent(
                    symbol=str(item['symbol']),
                    amplitude=float(item['amplitude']),
                    phase=float(item['phase']),
                ))
            except KeyError as e:
                raise ValueError(
                    f"Station {record['id']}: constituent missing field {e}"
                ) from e

        return cls(
            id=str(record['id']),
            name=str(record['name']),
            lat=float(record['lat']),
            lon=float(record['lon']),
            datum=str(record.get('datum', 'MSL')),
            constituents=tuple(constituents),
            mean_level=float(record.get('mean_level', 0.0)),
            timezone=record.get('timezone'),
            country=record.get('country'),
            state=record.get('state'),
            harmonic_epoch=record.get('harmonicEpoch', record.get('harmonic_epoch')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'lat': self.lat,
            'lon': self.lon,
            'datum': self.datum,
            'mean_level': self.mean_level,
            'timezone': self.timezone,
            'country': self.country,
            'state': self.state,
            'harmonicEpoch': self.harmonic_epoch,
            'constituents': [
                {'symbol': c.symbol, 'amplitude': c.amplitude, 'phase': c.phase}
                for c in self.constituents
            ],
        }


@dataclass(frozen=True)
class NodalFactors:
    f: Any = 1.0  # amplitude factor
    u: Any = 0.0  # phase correction (degrees)


@dataclass(frozen=True)
class TidePoint:
    time: datetime
    height: float  # meters


@dataclass(frozen=True)
class Extreme:
    time: datetime
    height: float
    type: ExtremeType


@dataclass(frozen=True)
class Contribution:
    """
    One constituent's share of the predicted height.

    ``value`` is f * A * cos(phase); ``amplitude`` is the node-corrected
    amplitude f * A and ``phase`` the normalized argument in degrees.
    """
    symbol: str
    value: float
    phase: float
    amplitude: float
