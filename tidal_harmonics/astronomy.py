"""
Astronomical arguments for harmonic tide prediction.

Provides the six fundamental angles (T, s, h, p, N, p') for any instant and
the equilibrium argument V0 of a constituent built from its Doodson numbers.

The mean longitudes are cubic polynomials in Julian centuries from J2000.0
(2000-01-01 12:00). They are accurate to well under a degree for a few
centuries either side of the epoch; accuracy degrades slowly beyond that,
which is reported through ``AstronomicalAngles.reduced_confidence`` rather
than treated as an error.

References:
- Mean longitudes: Meeus, J. (1991) "Astronomical Algorithms", ch. 22, 25, 47
- Hour angle and V0 conventions: Schureman, P. (1958) "Manual of Harmonic
  Analysis and Prediction of Tides", Table 1
"""
from datetime import datetime, timezone
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np

from .models import AstronomicalAngles

J2000_JD = 2451545.0
UNIX_EPOCH_JD = 2440587.5
SECONDS_PER_DAY = 86400.0
DAYS_PER_CENTURY = 36525.0
HOURS_PER_CENTURY = DAYS_PER_CENTURY * 24.0

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Polynomial coefficients (c0, c1, c2, c3) in degrees and Julian centuries:
#   angle = c0 + c1*T + c2*T^2 + c3*T^3
MEAN_LONGITUDE_COEFFICIENTS: Dict[str, Tuple[float, float, float, float]] = {
    # Mean longitude of Moon (s) - Meeus 47.1
    's': (218.3164477, 481267.88123421, -0.0015786, 1.0 / 538841.0),
    # Mean longitude of Sun (h) - Meeus 25.2
    'h': (280.46646, 36000.76983, 0.0003032, 0.0),
    # Mean longitude of lunar perigee (p) - Meeus 47.7 area
    'p': (83.3532465, 4069.0137287, -0.0103200, -1.0 / 80053.0),
    # Mean longitude of lunar ascending node (N) - Meeus 47.7
    'N': (125.0445479, -1934.1362891, 0.0020754, 1.0 / 467441.0),
    # Mean longitude of solar perigee (pp) - Earth perihelion + 180
    'pp': (282.93735, 1.71946, 0.00046, 0.0),
}

# Mean angular rates in degrees per hour, in Doodson order (T, s, h, p, N, p').
# T advances exactly 15 degrees per hour of UT.
ANGLE_SPEEDS: Tuple[float, ...] = (15.0,) + tuple(
    MEAN_LONGITUDE_COEFFICIENTS[name][1] / HOURS_PER_CENTURY
    for name in ('s', 'h', 'p', 'N', 'pp')
)

Instant = Union[datetime, Sequence[datetime], np.ndarray]


def normalize_angle(degrees: Any) -> Any:
    """
    Wrap an angle (or array of angles) into [0, 360).

    Args:
        degrees: Angle in degrees, scalar or numpy array

    Returns:
        Wrapped angle of the same shape
    """
    wrapped = np.mod(degrees, 360.0)
    if np.ndim(wrapped) == 0:
        wrapped = float(wrapped)
        # np.mod(-1e-20, 360) rounds to 360.0
        return 0.0 if wrapped >= 360.0 else wrapped
    wrapped[wrapped >= 360.0] = 0.0
    return wrapped


def unix_seconds(instant: Instant) -> Any:
    """
    Seconds since 1970-01-01T00:00 UTC.

    Naive datetimes are taken to be UTC. Sequences of datetimes and numpy
    datetime64 arrays return a float array.
    """
    if isinstance(instant, datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return (instant - _UNIX_EPOCH).total_seconds()

    if isinstance(instant, np.ndarray) and np.issubdtype(instant.dtype, np.datetime64):
        return (instant - np.datetime64('1970-01-01T00:00:00')) / np.timedelta64(1, 's')

    return np.array([unix_seconds(t) for t in instant], dtype=float)


def julian_day(instant: Instant) -> Any:
    """Julian Day (UT) of an instant or batch of instants."""
    return np.asarray(unix_seconds(instant)) / SECONDS_PER_DAY + UNIX_EPOCH_JD


def julian_centuries(instant: Instant) -> Any:
    """
    Calculate Julian centuries from J2000.0 epoch.

    Args:
        instant: datetime (naive = UTC) or batch of instants

    Returns:
        T: Julian centuries from J2000.0
    """
    centuries = (julian_day(instant) - J2000_JD) / DAYS_PER_CENTURY
    return float(centuries) if np.ndim(centuries) == 0 else centuries


def _polynomial(name: str, T: Any) -> Any:
    c0, c1, c2, c3 = MEAN_LONGITUDE_COEFFICIENTS[name]
    return normalize_angle(c0 + c1 * T + c2 * T**2 + c3 * T**3)


def astronomical_parameters(instant: Instant) -> AstronomicalAngles:
    """
    Compute the fundamental astronomical angles at an instant.

    Args:
        instant: datetime (naive = UTC), a sequence of datetimes or a
            datetime64 array

    Returns:
        AstronomicalAngles with every angle normalized to [0, 360). Fields are
        floats for a single datetime and arrays for a batch.
    """
    return parameters_at_seconds(unix_seconds(instant))


def parameters_at_seconds(seconds) -> AstronomicalAngles:
    """
    Astronomical angles at a time given as seconds since 1970-01-01T00:00 UTC.

    Args:
        seconds: Unix seconds, scalar or numpy array

    Returns:
        AstronomicalAngles (floats for a scalar, arrays for an array)
    """
    T = (np.asarray(seconds) / SECONDS_PER_DAY + UNIX_EPOCH_JD - J2000_JD) / DAYS_PER_CENTURY
    if np.ndim(T) == 0:
        T = float(T)

    # Hour angle of the mean sun: 180 degrees at 00:00 UT, 15 degrees per hour
    seconds_of_day = np.mod(seconds, SECONDS_PER_DAY)
    hour_angle = normalize_angle(180.0 + seconds_of_day / 240.0)

    return AstronomicalAngles(
        T=hour_angle,
        s=_polynomial('s', T),
        h=_polynomial('h', T),
        p=_polynomial('p', T),
        N=_polynomial('N', T),
        pp=_polynomial('pp', T),
        centuries=T,
    )


def compute_v0(doodson: Sequence[int], angles: AstronomicalAngles, offset: float = 0.0) -> Any:
    """
    Calculate the equilibrium argument V0 of a constituent.

    V0 is the dot product of the constituent's Doodson numbers with the six
    astronomical angles, plus the constant Schureman phase offset.

    Args:
        doodson: Six integer coefficients for (T, s, h, p, N, p')
        angles: Astronomical angles at the instant
        offset: Constant phase term in degrees (0, +/-90 or 180)

    Returns:
        V0 in degrees, normalized to [0, 360)

    Raises:
        ValueError: If doodson does not have exactly six entries
    """
    if len(doodson) != 6:
        raise ValueError(f"Doodson numbers must have 6 entries, got {len(doodson)}")

    v0 = offset
    for coef, angle in zip(doodson, angles.as_tuple()):
        if coef:
            v0 = v0 + coef * angle
    return normalize_angle(v0)


def doodson_speed(doodson: Sequence[int]) -> float:
    """Angular speed (degrees/hour) implied by a set of Doodson numbers."""
    if len(doodson) != 6:
        raise ValueError(f"Doodson numbers must have 6 entries, got {len(doodson)}")
    return float(sum(coef * rate for coef, rate in zip(doodson, ANGLE_SPEEDS)))
