import logging
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, List, Literal, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from timezonefinder import TimezoneFinder

from . import __version__, config
from .constituents import CONSTITUENTS
from .exceptions import StationNotFoundError
from .extremes import find_extremes
from .fes import FES2022Atlas
from .models import Extreme, Station
from .prediction import TideSynthesizer
from .stations import StationRegistry, load_stations, tidal_type

logger = logging.getLogger(__name__)

METERS_TO_FEET = 3.28084

# Sampling used to locate extrema before refinement
EXTREMA_SEARCH_INTERVAL_MINUTES = 6


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


app = FastAPI(
    title="Tidal Harmonics API",
    description="Harmonic tide predictions for tide stations and, through FES2022, any ocean location",
    version=__version__,
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

@lru_cache()
def get_registry() -> StationRegistry:
    return load_stations(config.STATIONS_FILE)


@lru_cache()
def _open_atlas() -> FES2022Atlas:
    return FES2022Atlas(data_path=config.FES_DATA_PATH)


def get_atlas() -> FES2022Atlas:
    try:
        return _open_atlas()
    except FileNotFoundError:
        logger.error("FES2022 atlas not found under %s", config.FES_DATA_PATH)
        raise HTTPException(503, detail="Tide atlas not available")


def get_synthesizer() -> TideSynthesizer:
    return TideSynthesizer()


@lru_cache()
def _tz_finder() -> TimezoneFinder:
    # Loads its data on first use
    return TimezoneFinder()


def _get_timezone(lat: float, lon: float, timezone_str: Optional[str] = None) -> ZoneInfo:
    """
    Get timezone for coordinates, with auto-detection if not specified.

    Args:
        lat: Latitude in degrees
        lon: Longitude in degrees
        timezone_str: Optional timezone string (e.g., 'America/Los_Angeles')

    Returns:
        ZoneInfo object for the timezone (UTC when nothing better is known)
    """
    if timezone_str is None:
        timezone_str = _tz_finder().timezone_at(lat=lat, lng=lon)
        if timezone_str is None:
            timezone_str = "UTC"
    try:
        return ZoneInfo(timezone_str)
    except (ValueError, KeyError):
        return ZoneInfo("UTC")


# =============================================================================
# Helpers
# =============================================================================

def _parse_date(date: Optional[str], tz: ZoneInfo) -> datetime:
    """
    Start of a prediction window.

    A date (YYYY-MM-DD) means local midnight; a naive datetime is taken as
    local time. Without a date, today's local midnight is used.
    """
    if not date:
        return datetime.now(tz).replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        start = datetime.fromisoformat(date)
    except ValueError:
        raise HTTPException(400, "Invalid date format. Please use ISO 8601 format (YYYY-MM-DD)")
    if start.tzinfo is None:
        start = start.replace(tzinfo=tz)
    return start


def _check_series_size(days: int, interval_minutes: float):
    points = days * 24 * 60 / interval_minutes
    if points > config.MAX_SERIES_POINTS:
        raise ValueError(
            f"Requested series has {int(points)} points; the limit is {config.MAX_SERIES_POINTS}"
        )


def _height_entry(time: datetime, height: float, tz: ZoneInfo, datum: str) -> Dict:
    return {
        "datetime": time.astimezone(tz).replace(microsecond=0).isoformat(),
        "height_m": round(height, 3),
        "height_ft": round(height * METERS_TO_FEET, 3),
        "datum": datum,
    }


def _extreme_entry(extreme: Extreme, tz: ZoneInfo, datum: str) -> Dict:
    return {"type": extreme.type.value, **_height_entry(extreme.time, extreme.height, tz, datum)}


def _station_summary(station: Station) -> Dict:
    return {
        "id": station.id,
        "name": station.name,
        "state": station.state,
        "country": station.country,
        "lat": station.lat,
        "lon": station.lon,
        "datum": station.datum,
        "timezone": station.timezone,
        "tidal_type": tidal_type(station).value,
    }


def _predict_extremes(
    synthesizer: TideSynthesizer, station: Station, start: datetime, days: int
) -> List[Extreme]:
    series = synthesizer.predict_series(
        station, start, start + timedelta(days=days), EXTREMA_SEARCH_INTERVAL_MINUTES
    )
    return find_extremes(series)


def _internal_error(endpoint: str) -> HTTPException:
    error_id = uuid.uuid4().hex[:8]
    logger.exception(f"Error {error_id} in {endpoint}")
    return HTTPException(500, detail=f"Internal error (ref: {error_id})")


# =============================================================================
# Routes
# =============================================================================

@app.get("/health")
async def health():
    return {"status": "healthy", "model": "harmonic", "constituents": len(CONSTITUENTS)}


@app.get("/api/v1/stations")
@limiter.limit(config.RATE_LIMIT)
async def list_stations(request: Request, registry: StationRegistry = Depends(get_registry)):
    """List the tide stations with harmonic constants."""
    return [_station_summary(station) for station in registry.list()]


@app.get("/api/v1/stations/{station_id}")
@limiter.limit(config.RATE_LIMIT)
async def get_station(
    request: Request,
    station_id: str,
    registry: StationRegistry = Depends(get_registry),
):
    """Station details including its harmonic constants."""
    try:
        station = registry.get(station_id)
        return {**station.to_dict(), "tidal_type": tidal_type(station).value}
    except StationNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    except Exception:
        raise _internal_error("get_station")


@app.get("/api/v1/stations/{station_id}/tides")
@limiter.limit(config.RATE_LIMIT)
async def get_station_tides(
    request: Request,
    station_id: str,
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD or ISO 8601 datetime). Defaults to today.",
    ),
    days: int = Query(1, ge=1, le=31, description="Number of days to predict"),
    interval: float = Query(6, gt=0, le=1440, description="Interval between heights in minutes"),
    extrema: bool = Query(False, description="Also return refined high/low tides"),
    registry: StationRegistry = Depends(get_registry),
    synthesizer: TideSynthesizer = Depends(get_synthesizer),
):
    """
    Tide heights at a station at regular intervals.

    Heights are relative to the station datum and times are in the station's
    local timezone. With `extrema=true` the refined high and low tides over
    the same window are returned as well.
    """
    try:
        station = registry.get(station_id)
        tz = _get_timezone(station.lat, station.lon, station.timezone)
        start = _parse_date(date, tz)
        _check_series_size(days, interval)

        end = start + timedelta(days=days)
        series = synthesizer.predict_series(station, start, end, interval)
        heights = [_height_entry(p.time, p.height, tz, station.datum) for p in series]
        logger.info("Predicted %d heights for station %s", len(heights), station.id)

        result = {
            "station": _station_summary(station),
            "timezone": str(tz),
            "interval_minutes": interval,
            "heights": heights,
        }
        if extrema:
            events = _predict_extremes(synthesizer, station, start, days)
            result["extremes"] = [_extreme_entry(e, tz, station.datum) for e in events]
        return result
    except StationNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_station_tides")


@app.get("/api/v1/stations/{station_id}/extremes")
@limiter.limit(config.RATE_LIMIT)
async def get_station_extremes(
    request: Request,
    station_id: str,
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD or ISO 8601 datetime). Defaults to today.",
    ),
    days: int = Query(7, ge=1, le=365, description="Number of days to predict"),
    registry: StationRegistry = Depends(get_registry),
    synthesizer: TideSynthesizer = Depends(get_synthesizer),
):
    """High and low tides at a station."""
    try:
        station = registry.get(station_id)
        tz = _get_timezone(station.lat, station.lon, station.timezone)
        start = _parse_date(date, tz)
        events = _predict_extremes(synthesizer, station, start, days)
        return [_extreme_entry(e, tz, station.datum) for e in events]
    except StationNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_station_extremes")


@app.get("/api/v1/stations/{station_id}/contributions")
@limiter.limit(config.RATE_LIMIT)
async def get_station_contributions(
    request: Request,
    station_id: str,
    time: Optional[str] = Query(
        None,
        description="Instant (ISO 8601). Naive values are station local time. Defaults to now.",
    ),
    registry: StationRegistry = Depends(get_registry),
    synthesizer: TideSynthesizer = Depends(get_synthesizer),
):
    """
    Per-constituent breakdown of the predicted height at an instant.

    `value_m` is each constituent's share of the height; they add up to
    `height_m - mean_level_m`.
    """
    try:
        station = registry.get(station_id)
        tz = _get_timezone(station.lat, station.lon, station.timezone)
        if time:
            try:
                instant = datetime.fromisoformat(time)
            except ValueError:
                raise HTTPException(400, "Invalid time format. Please use ISO 8601 format")
            if instant.tzinfo is None:
                instant = instant.replace(tzinfo=tz)
        else:
            instant = datetime.now(timezone.utc)

        contributions = synthesizer.contributions(station, instant)
        height = synthesizer.height(station, instant)
        return {
            "station": station.id,
            "datetime": instant.astimezone(tz).replace(microsecond=0).isoformat(),
            "height_m": round(height, 4),
            "mean_level_m": station.mean_level,
            "contributions": [
                {
                    "symbol": c.symbol,
                    "value_m": round(c.value, 4),
                    "amplitude_m": round(c.amplitude, 4),
                    "phase": round(c.phase, 2),
                }
                for c in contributions
            ],
        }
    except StationNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_station_contributions")


@app.get("/api/v1/tides")
@limiter.limit(config.RATE_LIMIT)
async def get_tides(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    days: int = Query(7, ge=1, le=365, description="Number of days to predict"),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD). If not provided, current date is used.",
    ),
    interval: Optional[Literal["15", "30", "60"]] = Query(
        None,
        description="Optional interval in minutes (15, 30, or 60). If not provided, returns only high/low tides.",
    ),
    atlas: FES2022Atlas = Depends(get_atlas),
    synthesizer: TideSynthesizer = Depends(get_synthesizer),
):
    """
    Tide predictions for any ocean location from the FES2022 atlas.

    By default, returns high/low tide events (extrema only). Heights are
    relative to mean sea level.

    If `interval` is specified (15, 30, or 60 minutes), returns tide heights
    at regular intervals merged with the high/low events. Only the events
    carry a `type` field ("high" or "low").
    """
    try:
        tz = _get_timezone(lat, lon)
        start = _parse_date(date, tz)
        station = atlas.station_at(lat, lon, timezone=str(tz))

        events = [
            _extreme_entry(e, tz, station.datum)
            for e in _predict_extremes(synthesizer, station, start, days)
        ]
        if interval is None:
            return events

        series = synthesizer.predict_series(station, start, start + timedelta(days=days), int(interval))
        combined = [_height_entry(p.time, p.height, tz, station.datum) for p in series] + events
        combined.sort(key=lambda x: datetime.fromisoformat(x["datetime"]))
        return combined
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_tides")
