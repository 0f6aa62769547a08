"""
Harmonic tide prediction.

    >>> from datetime import datetime
    >>> from tidal_harmonics import Station, StationConstituent, predict_tide
    >>> station = Station(id='demo', name='Demo', lat=0.0, lon=0.0, datum='MSL',
    ...                   constituents=(StationConstituent('M2', 1.0, 0.0),))
    >>> height = predict_tide(station, datetime(2024, 1, 1))
"""
import threading
from datetime import datetime
from typing import List, Optional

from .exceptions import (
    DataIntegrityWarning,
    ReducedConfidenceWarning,
    StationNotFoundError,
    TideError,
)
from .extremes import find_crossings, find_extremes
from .models import (
    AstronomicalAngles,
    ConstituentDefinition,
    ConstituentFamily,
    Contribution,
    Extreme,
    ExtremeType,
    NodalFactors,
    Station,
    StationConstituent,
    TidePoint,
)
from .prediction import (
    TideSeries,
    TideSynthesizer,
    lunar_phase,
    spring_neap_indicator,
    tidal_range,
)
from .stations import StationRegistry, TidalType, load_stations, tidal_type

__version__ = "1.0.0"


def predict_tide(station: Station, instant: datetime) -> float:
    """Predicted height (meters above datum) at a station and instant."""
    return TideSynthesizer().height(station, instant)


def predict_tide_series(
    station: Station,
    start: datetime,
    end: datetime,
    interval_minutes: float = 6,
    cancel_event: Optional[threading.Event] = None,
) -> TideSeries:
    """Heights every ``interval_minutes`` from start (inclusive) to end (exclusive)."""
    return TideSynthesizer().predict_series(station, start, end, interval_minutes, cancel_event)


def get_constituent_contributions(station: Station, instant: datetime) -> List[Contribution]:
    """Per-constituent breakdown of the predicted height at an instant."""
    return TideSynthesizer().contributions(station, instant)


__all__ = [
    'AstronomicalAngles',
    'ConstituentDefinition',
    'ConstituentFamily',
    'Contribution',
    'DataIntegrityWarning',
    'Extreme',
    'ExtremeType',
    'NodalFactors',
    'ReducedConfidenceWarning',
    'Station',
    'StationConstituent',
    'StationNotFoundError',
    'StationRegistry',
    'TidalType',
    'TideError',
    'TidePoint',
    'TideSeries',
    'TideSynthesizer',
    'find_crossings',
    'find_extremes',
    'get_constituent_contributions',
    'load_stations',
    'lunar_phase',
    'predict_tide',
    'predict_tide_series',
    'spring_neap_indicator',
    'tidal_range',
    'tidal_type',
]
