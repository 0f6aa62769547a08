"""
Harmonic tide synthesis.

Predicts the astronomical tide at a station by summing its constituents:

    h(t) = Z0 + Σ f * A * cos(V0(t) + u - κ)

where:
- Z0 = mean level of the station above its datum
- f, u = nodal amplitude factor and phase correction
- A, κ = station amplitude and Greenwich phase lag
- V0(t) = equilibrium argument from the Doodson numbers

V0 carries the time dependence through the hour angle T, so no separate
ω*t term is added. Every instant gets its own astronomical arguments; batches
of instants are evaluated as numpy arrays.

References:
- Schureman, P. (1958) "Manual of Harmonic Analysis and Prediction of Tides"
- Foreman, M.G.G. (1977) "Manual for Tidal Heights Analysis and Prediction"
"""
import logging
import math
import threading
import warnings
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import config
from .astronomy import (
    astronomical_parameters,
    compute_v0,
    normalize_angle,
    parameters_at_seconds,
    unix_seconds,
)
from .constituents import CONSTITUENTS, get_constituent
from .exceptions import DataIntegrityWarning, ReducedConfidenceWarning
from .models import (
    ConstituentDefinition,
    Contribution,
    NodalFactors,
    Station,
    StationConstituent,
    TidePoint,
)
from .nodal import nodal_factors, nodal_table

logger = logging.getLogger(__name__)

# Points evaluated per numpy batch while iterating a series
SERIES_CHUNK_SIZE = 1440


class TideSynthesizer:
    """
    Evaluates the harmonic model for a station at one or many instants.

    A synthesizer holds no state besides its catalog and, when
    ``nodal_bucket_hours`` is set, a memo of nodal factors per quantized time
    bucket. Bucketed factors are evaluated at the bucket centre, so the result
    of a call depends only on its inputs and never on what was cached before.
    """

    def __init__(
        self,
        catalog: Optional[Mapping[str, ConstituentDefinition]] = None,
        nodal_bucket_hours: Optional[float] = None,
    ):
        """
        Args:
            catalog: Constituent catalog keyed by canonical symbol
                (defaults to CONSTITUENTS)
            nodal_bucket_hours: Width of the nodal memoization bucket in hours.
                0 evaluates the nodal factors at every instant; None takes
                config.NODAL_BUCKET_HOURS.
        """
        self.catalog = CONSTITUENTS if catalog is None else catalog
        if nodal_bucket_hours is None:
            nodal_bucket_hours = config.NODAL_BUCKET_HOURS

        if not (nodal_bucket_hours >= 0 and math.isfinite(nodal_bucket_hours)):
            raise ValueError(f"nodal_bucket_hours must be a finite value >= 0, got {nodal_bucket_hours}")
        self.nodal_bucket_hours = nodal_bucket_hours or None
        self._bucket_factors = lru_cache(maxsize=4096)(self._factors_for_bucket)

    def _factors_for_bucket(self, symbol: str, bucket: int) -> NodalFactors:
        bucket_seconds = self.nodal_bucket_hours * 3600.0
        angles = parameters_at_seconds((bucket + 0.5) * bucket_seconds)
        return nodal_factors(symbol, angles.N, angles.p)

    def _terms(self, station: Station) -> List[Tuple[StationConstituent, ConstituentDefinition]]:
        """Pair station constituents with their catalog definitions."""
        terms = []
        for constituent in station.constituents:
            definition = get_constituent(constituent.symbol, self.catalog)
            if definition is None:
                warnings.warn(
                    f"Station {station.id}: constituent '{constituent.symbol}' is not in the "
                    f"catalog and was left out of the prediction",
                    DataIntegrityWarning,
                    stacklevel=4,
                )
                continue
            terms.append((constituent, definition))
        return terms

    def _nodal(self, symbols: Sequence[str], angles, seconds) -> Dict[str, NodalFactors]:
        if self.nodal_bucket_hours is None:
            return nodal_table(symbols, angles.N, angles.p)

        buckets = np.floor(np.asarray(seconds) / (self.nodal_bucket_hours * 3600.0)).astype(np.int64)
        if buckets.ndim == 0:
            return {symbol: self._bucket_factors(symbol, int(buckets)) for symbol in symbols}

        unique, inverse = np.unique(buckets, return_inverse=True)
        table = {}
        for symbol in symbols:
            factors = [self._bucket_factors(symbol, int(b)) for b in unique]
            f = np.array([nf.f for nf in factors], dtype=float)[inverse]
            u = np.array([nf.u for nf in factors], dtype=float)[inverse]
            table[symbol] = NodalFactors(f=f, u=u)
        return table

    def _evaluate(self, station: Station, seconds) -> List[Tuple[StationConstituent, Any, Any]]:
        """
        Compute (constituent, f, phase) for every usable term of a station.

        ``seconds`` is a Unix time scalar or array; f and phase have its shape.
        """
        angles = parameters_at_seconds(seconds)
        if angles.reduced_confidence:
            worst = float(np.max(np.abs(angles.centuries)))
            warnings.warn(
                f"Instant is {worst:.1f} Julian centuries from J2000.0; astronomical "
                f"arguments have reduced accuracy this far from the epoch",
                ReducedConfidenceWarning,
                stacklevel=3,
            )

        terms = self._terms(station)
        nodal = self._nodal([definition.symbol for _, definition in terms], angles, seconds)

        evaluated = []
        for constituent, definition in terms:
            v0 = compute_v0(definition.doodson, angles, definition.phase_offset)
            factors = nodal[definition.symbol]
            phase = normalize_angle(v0 + factors.u - constituent.phase)
            evaluated.append((constituent, factors.f, phase))
        return evaluated

    def height(self, station: Station, instant: datetime) -> float:
        """
        Predicted water level at one instant.

        Args:
            station: Station with harmonic constants
            instant: datetime (naive = UTC)

        Returns:
            Height in meters above the station datum
        """
        total = station.mean_level
        for constituent, f, phase in self._evaluate(station, unix_seconds(instant)):
            total += f * constituent.amplitude * np.cos(np.radians(phase))
        return float(total)

    def heights(self, station: Station, instants) -> np.ndarray:
        """
        Predicted water levels for a batch of instants (vectorized).

        Args:
            station: Station with harmonic constants
            instants: Sequence of datetimes or a datetime64 array

        Returns:
            Array of heights in meters, one per instant
        """
        seconds = np.atleast_1d(np.asarray(unix_seconds(instants), dtype=float))
        total = np.full(seconds.shape, float(station.mean_level))
        if seconds.size == 0:
            return total
        for constituent, f, phase in self._evaluate(station, seconds):
            total = total + f * constituent.amplitude * np.cos(np.radians(phase))
        return total

    def contributions(self, station: Station, instant: datetime) -> List[Contribution]:
        """
        Break the prediction at an instant down by constituent.

        The values sum to ``height(station, instant) - station.mean_level``.
        Constituents unknown to the catalog are left out, as in ``height``.
        """
        result = []
        for constituent, f, phase in self._evaluate(station, unix_seconds(instant)):
            amplitude = float(f * constituent.amplitude)
            result.append(Contribution(
                symbol=constituent.symbol,
                value=float(amplitude * np.cos(np.radians(phase))),
                phase=float(phase),
                amplitude=amplitude,
            ))
        return result

    def predict_series(
        self,
        station: Station,
        start: datetime,
        end: datetime,
        interval_minutes: float = 6.0,
        cancel_event: Optional[threading.Event] = None,
    ) -> 'TideSeries':
        """
        Sample the prediction at a fixed interval over [start, end).

        Args:
            station: Station with harmonic constants
            start: First sample time (inclusive)
            end: Sampling stops before this time
            interval_minutes: Spacing between samples
            cancel_event: Optional event; iteration stops once it is set

        Returns:
            Lazy TideSeries (empty when end <= start)

        Raises:
            ValueError: If interval_minutes is not a finite value > 0
        """
        return TideSeries(self, station, start, end, interval_minutes, cancel_event)


def _as_utc(instant: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values are taken to be UTC."""
    if instant is None:
        return None
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class TideSeries:
    """
    Lazy, restartable sequence of TidePoints at a fixed interval.

    Nothing is computed until the series is iterated, and every iteration
    starts again from ``start``. Sample i is at ``start + i * interval``, so
    times never drift. Bounds are held as aware UTC datetimes (naive input
    is UTC), so sample times are UTC and steps are exact elapsed time even
    across daylight saving changes. Iteration checks the cancel event before each sample
    and ends early, with the points produced so far still valid, once it is
    set.
    """

    def __init__(
        self,
        synthesizer: TideSynthesizer,
        station: Station,
        start: Optional[datetime],
        end: Optional[datetime],
        interval_minutes: float,
        cancel_event: Optional[threading.Event] = None,
    ):
        try:
            interval = float(interval_minutes)
        except (TypeError, ValueError) as e:
            raise ValueError(f"interval_minutes must be a number, got {interval_minutes!r}") from e
        if not math.isfinite(interval) or interval <= 0:
            raise ValueError(f"interval_minutes must be a finite value > 0, got {interval_minutes}")
        step = timedelta(minutes=interval)
        if step <= timedelta(0):
            raise ValueError(f"interval_minutes is below the 1 microsecond resolution: {interval_minutes}")

        self.synthesizer = synthesizer
        self.station = station
        self.start = _as_utc(start)
        self.end = _as_utc(end)
        self.interval_minutes = interval
        self.step = step
        self.cancel_event = cancel_event

    def __len__(self) -> int:
        if self.start is None or self.end is None or self.end <= self.start:
            return 0
        count = (self.end - self.start) // self.step
        if self.start + count * self.step < self.end:
            count += 1
        return count

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def times(self) -> Iterator[datetime]:
        """Sample times, without evaluating heights."""
        for i in range(len(self)):
            yield self.start + i * self.step

    def __iter__(self) -> Iterator[TidePoint]:
        total = len(self)
        for offset in range(0, total, SERIES_CHUNK_SIZE):
            if self._cancelled():
                logger.info("Series for %s cancelled after %d of %d points", self.station.id, offset, total)
                return
            times = [self.start + i * self.step for i in range(offset, min(offset + SERIES_CHUNK_SIZE, total))]
            heights = self.synthesizer.heights(self.station, times)
            for index, (time, height) in enumerate(zip(times, heights)):
                if self._cancelled():
                    logger.info(
                        "Series for %s cancelled after %d of %d points",
                        self.station.id, offset + index, total,
                    )
                    return
                yield TidePoint(time=time, height=float(height))

    def height_at(self, instant: datetime) -> float:
        """Evaluate the underlying model at an arbitrary instant."""
        return self.synthesizer.height(self.station, instant)

    def to_list(self) -> List[TidePoint]:
        return list(self)


# =============================================================================
# Astronomical indicators
# =============================================================================

def spring_neap_indicator(instant: datetime) -> float:
    """
    Position in the spring-neap cycle.

    Args:
        instant: datetime (naive = UTC)

    Returns:
        cos(V0_M2 - V0_S2): 1 at spring tides (M2 and S2 in phase), -1 at
        neap tides. The cycle repeats every half synodic month.
    """
    angles = astronomical_parameters(instant)
    m2 = CONSTITUENTS['M2']
    s2 = CONSTITUENTS['S2']
    difference = compute_v0(m2.doodson, angles, m2.phase_offset) - compute_v0(s2.doodson, angles, s2.phase_offset)
    return float(np.cos(np.radians(difference)))


def lunar_phase(instant: datetime) -> float:
    """
    Lunar phase as a fraction of the synodic month.

    Returns:
        0 at new moon, 0.5 at full moon, in [0, 1)
    """
    angles = astronomical_parameters(instant)
    fraction = normalize_angle(angles.s - angles.h) / 360.0
    return fraction if fraction < 1.0 else 0.0


def tidal_range(
    station: Station,
    instant: datetime,
    synthesizer: Optional[TideSynthesizer] = None,
    window_hours: float = 12.5,
    interval_minutes: float = 10.0,
) -> Dict[str, float]:
    """
    Range of the tide in the window of +/- ``window_hours`` around an instant.

    Returns:
        Dict with 'high', 'low' and 'range' in meters
    """
    synthesizer = synthesizer or TideSynthesizer()
    half = timedelta(hours=window_hours)
    series = synthesizer.predict_series(station, instant - half, instant + half, interval_minutes)
    heights = synthesizer.heights(station, list(series.times()))
    if heights.size == 0:
        raise ValueError("window_hours must be > 0")

    high = float(np.max(heights))
    low = float(np.min(heights))
    logger.info("Tidal range at %s around %s: %.3f m", station.id, instant.isoformat(), high - low)
    return {'high': high, 'low': low, 'range': high - low}
