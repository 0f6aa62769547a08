"""
Runtime configuration for the tide engine and HTTP service.

All values can be overridden by environment variables, either exported in
the shell or placed in a ``.env`` file at the project root.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_env_path = Path(__file__).parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)


def _get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_optional_str_env(key: str) -> Optional[str]:
    value = os.environ.get(key, '').strip()
    return value or None


# =============================================================================
# Data Sources
# =============================================================================

# Directory containing the 'ocean_tide_extrapolated' FES2022 folder
# Environment variable: FES_DATA_PATH
FES_DATA_PATH = os.environ.get('FES_DATA_PATH', '.')

# JSON file with station records (list of {id, name, lat, lon, datum, constituents}).
# Defaults to the sample NOAA CO-OPS stations shipped with the package.
# Environment variable: TIDES_STATIONS_FILE
STATIONS_FILE = (
    _get_optional_str_env('TIDES_STATIONS_FILE')
    or str(Path(__file__).parent / 'data' / 'stations.json')
)


# =============================================================================
# Prediction Settings
# =============================================================================

# Extrema refinement stops once the bracket is narrower than this (seconds)
# Environment variable: TIDES_EXTREMA_TOLERANCE_SECONDS
EXTREMA_TOLERANCE_SECONDS = _get_float_env('TIDES_EXTREMA_TOLERANCE_SECONDS', 60.0)

# Hard cap on bisection steps per extremum
# Environment variable: TIDES_EXTREMA_MAX_ITERATIONS
EXTREMA_MAX_ITERATIONS = _get_int_env('TIDES_EXTREMA_MAX_ITERATIONS', 50)

# Quantize nodal corrections to buckets of this many hours (0 disables)
# Environment variable: TIDES_NODAL_BUCKET_HOURS
NODAL_BUCKET_HOURS = _get_float_env('TIDES_NODAL_BUCKET_HOURS', 0.0)

# Instants further than this from J2000.0 (Julian centuries) are reduced-confidence
# Environment variable: TIDES_EPHEMERIS_VALID_CENTURIES
EPHEMERIS_VALID_CENTURIES = _get_float_env('TIDES_EPHEMERIS_VALID_CENTURIES', 3.0)


# =============================================================================
# HTTP Service
# =============================================================================

# Largest series a single request may ask for
# Environment variable: TIDES_MAX_SERIES_POINTS
MAX_SERIES_POINTS = _get_int_env('TIDES_MAX_SERIES_POINTS', 200000)

# Per-client rate limit (slowapi syntax)
# Environment variable: TIDES_RATE_LIMIT
RATE_LIMIT = os.environ.get('TIDES_RATE_LIMIT', '60/minute')
