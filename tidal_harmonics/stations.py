"""
Tide station records: loading, lookup and tidal type classification.

Station files are JSON lists of records in the form accepted by
``Station.from_dict``:

    [{"id": "9414290", "name": "San Francisco", "lat": 37.8063, "lon": -122.4659,
      "datum": "MLLW", "timezone": "America/Los_Angeles",
      "constituents": [{"symbol": "M2", "amplitude": 0.58, "phase": 330.6}, ...]}]
"""
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from .exceptions import StationNotFoundError
from .models import Station

logger = logging.getLogger(__name__)


class TidalType(str, Enum):
    """
    Classification by the form ratio F = (K1 + O1) / (M2 + S2).

    - SEMIDIURNAL: F < 0.25, two nearly equal tides per day
    - MIXED_SEMIDIURNAL: 0.25 <= F < 1.5, two unequal tides per day
    - MIXED_DIURNAL: 1.5 <= F < 3.0, sometimes only one tide per day
    - DIURNAL: F >= 3.0, one tide per day
    """
    SEMIDIURNAL = "semidiurnal"
    MIXED_SEMIDIURNAL = "mixed-semidiurnal"
    MIXED_DIURNAL = "mixed-diurnal"
    DIURNAL = "diurnal"


def form_ratio(station: Station) -> float:
    """(K1 + O1) / (M2 + S2) from the station amplitudes; inf without M2/S2."""

    def amplitude(symbol: str) -> float:
        constituent = station.constituent(symbol)
        return constituent.amplitude if constituent is not None else 0.0

    semidiurnal = amplitude('M2') + amplitude('S2')
    diurnal = amplitude('K1') + amplitude('O1')
    if semidiurnal == 0:
        return float('inf') if diurnal > 0 else 0.0
    return diurnal / semidiurnal


def tidal_type(station: Station) -> TidalType:
    ratio = form_ratio(station)
    if ratio < 0.25:
        return TidalType.SEMIDIURNAL
    if ratio < 1.5:
        return TidalType.MIXED_SEMIDIURNAL
    if ratio < 3.0:
        return TidalType.MIXED_DIURNAL
    return TidalType.DIURNAL


class StationRegistry:
    """In-memory collection of stations keyed by id."""

    def __init__(self, stations: Iterable[Station] = ()):
        self._stations: Dict[str, Station] = {}
        for station in stations:
            if station.id in self._stations:
                raise ValueError(f"Duplicate station id: {station.id}")
            self._stations[station.id] = station

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> 'StationRegistry':
        return cls(Station.from_dict(record) for record in records)

    def get(self, station_id: str) -> Station:
        """
        Look up a station.

        Raises:
            StationNotFoundError: If no station has this id
        """
        try:
            return self._stations[station_id]
        except KeyError:
            raise StationNotFoundError(station_id) from None

    def list(self) -> List[Station]:
        """All stations, ordered by id."""
        return [self._stations[key] for key in sorted(self._stations)]

    def __contains__(self, station_id: object) -> bool:
        return station_id in self._stations

    def __len__(self) -> int:
        return len(self._stations)


def load_stations(path: Union[str, Path]) -> StationRegistry:
    """
    Load a station file.

    Args:
        path: JSON file holding a list of station records

    Returns:
        StationRegistry with every station in the file

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a list of valid station records
    """
    path = Path(path)
    with path.open(encoding='utf-8') as f:
        try:
            records = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid station file {path}: {e}") from e

    if not isinstance(records, list):
        raise ValueError(f"Station file {path} must contain a JSON list of records")

    registry = StationRegistry.from_records(records)
    logger.info("Loaded %d stations from %s", len(registry), path)
    return registry
