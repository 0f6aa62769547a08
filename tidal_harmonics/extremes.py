"""
High/low water and level-crossing detection on a predicted series.

Turning points are located on the sampled curve by the sign of the discrete
slope, then refined against the model itself by bisection. When no height
evaluator is available the time is estimated from a parabola through the
three samples around the turning point.

Threshold crossings (slack water, a chosen level) use the same bisection.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from . import config
from .models import Extreme, ExtremeType, TidePoint

logger = logging.getLogger(__name__)

HeightEvaluator = Callable[[datetime], float]

# Half-width of the central difference used to test the slope sign
SLOPE_PROBE = timedelta(seconds=1)


def bisect_transition(
    lo: datetime,
    hi: datetime,
    state_at: Callable[[datetime], bool],
    left_state: bool,
    tolerance_seconds: float,
    max_iterations: int,
) -> datetime:
    """
    Narrow a bracket around the instant where ``state_at`` flips.

    Args:
        lo: Left end of the bracket, where the state is ``left_state``
        hi: Right end of the bracket, where it is not
        state_at: Boolean test evaluated at an instant
        left_state: State known to hold at ``lo``
        tolerance_seconds: Stop once the bracket is narrower than this
        max_iterations: Hard cap on bisection steps

    Returns:
        Midpoint of the final bracket. Hitting the iteration cap is not an
        error; the midpoint is still the best estimate.
    """
    tolerance = timedelta(seconds=tolerance_seconds)
    iterations = 0
    while hi - lo > tolerance:
        if iterations >= max_iterations:
            logger.debug(
                "Bisection stopped after %d iterations with a %.1f s bracket",
                iterations, (hi - lo).total_seconds(),
            )
            break
        mid = lo + (hi - lo) / 2
        if state_at(mid) == left_state:
            lo = mid
        else:
            hi = mid
        iterations += 1
    return lo + (hi - lo) / 2


def _slope_signs(heights: List[float]) -> List[int]:
    """
    Sign of each interval's slope. Flat intervals carry the previous sign;
    leading flat intervals stay 0.
    """
    signs = []
    previous = 0
    for left, right in zip(heights, heights[1:]):
        if right > left:
            previous = 1
        elif right < left:
            previous = -1
        signs.append(previous)
    return signs


def _parabolic_vertex(points: List[TidePoint], index: int) -> Tuple[datetime, float]:
    """
    Vertex of the parabola through the samples around ``index``.

    For three equally spaced points the vertex offset from the centre is
    0.5 * (h1 - h3) / (h1 - 2*h2 + h3) * dt.
    """
    h1, h2, h3 = points[index - 1].height, points[index].height, points[index + 1].height
    t2 = points[index].time
    dt = (points[index + 1].time - t2).total_seconds()

    denom = h1 - 2 * h2 + h3
    if abs(denom) > 1e-12:
        offset = 0.5 * (h1 - h3) / denom * dt
        offset = max(-dt, min(dt, offset))
        height = h2 - 0.125 * (h1 - h3) * (h1 - h3) / denom
        return t2 + timedelta(seconds=offset), float(height)
    return t2, float(h2)


def find_extremes(
    series: Iterable[TidePoint],
    height_at: Optional[HeightEvaluator] = None,
    tolerance_seconds: Optional[float] = None,
    max_iterations: Optional[int] = None,
) -> List[Extreme]:
    """
    Find high and low water in a sampled tide series.

    Args:
        series: TidePoints in increasing time order (a TideSeries or a list)
        height_at: Model evaluator used for refinement. Defaults to the
            series' own ``height_at`` when it has one.
        tolerance_seconds: Refinement stops when the bracket is narrower
            (default config.EXTREMA_TOLERANCE_SECONDS)
        max_iterations: Cap on refinement steps per extremum
            (default config.EXTREMA_MAX_ITERATIONS)

    Returns:
        Extremes in time order; highs and lows strictly alternate. Turning
        points without a sample on each side are not reported.
    """
    if tolerance_seconds is None:
        tolerance_seconds = config.EXTREMA_TOLERANCE_SECONDS
    if max_iterations is None:
        max_iterations = config.EXTREMA_MAX_ITERATIONS
    if height_at is None:
        height_at = getattr(series, 'height_at', None)

    points = list(series)
    if len(points) < 3:
        return []

    signs = _slope_signs([p.height for p in points])

    def rising(instant: datetime) -> bool:
        return height_at(instant + SLOPE_PROBE) > height_at(instant - SLOPE_PROBE)

    extremes = []
    for k in range(1, len(signs)):
        before, after = signs[k - 1], signs[k]
        if before == 0 or before == after:
            continue

        # Interval k-1 and interval k share sample k
        tide_type = ExtremeType.HIGH if before > 0 else ExtremeType.LOW
        if height_at is not None:
            time = bisect_transition(
                points[k - 1].time,
                points[k + 1].time,
                rising,
                left_state=before > 0,
                tolerance_seconds=tolerance_seconds,
                max_iterations=max_iterations,
            )
            height = float(height_at(time))
        else:
            time, height = _parabolic_vertex(points, k)

        extremes.append(Extreme(time=time, height=height, type=tide_type))

    logger.info(
        "Found %d extrema (%d high, %d low) in %d points",
        len(extremes),
        sum(1 for e in extremes if e.type == ExtremeType.HIGH),
        sum(1 for e in extremes if e.type == ExtremeType.LOW),
        len(points),
    )
    return extremes


def find_crossings(
    series: Iterable[TidePoint],
    level: float,
    height_at: Optional[HeightEvaluator] = None,
    tolerance_seconds: Optional[float] = None,
    max_iterations: Optional[int] = None,
) -> List[datetime]:
    """
    Find the instants where the tide crosses a given level.

    With ``level`` set to the mean level this gives the times of mean water,
    midway between high and low water.

    Args:
        series: TidePoints in increasing time order
        level: Height in meters
        height_at: Model evaluator used for refinement (defaults to the
            series' own). Without one, crossings are interpolated linearly.

    Returns:
        Crossing times in order
    """
    if tolerance_seconds is None:
        tolerance_seconds = config.EXTREMA_TOLERANCE_SECONDS
    if max_iterations is None:
        max_iterations = config.EXTREMA_MAX_ITERATIONS
    if height_at is None:
        height_at = getattr(series, 'height_at', None)

    def above(instant: datetime) -> bool:
        return height_at(instant) > level

    points = list(series)
    crossings = []
    for left, right in zip(points, points[1:]):
        left_above = left.height > level
        if left_above == (right.height > level):
            continue
        if height_at is not None:
            crossings.append(bisect_transition(
                left.time, right.time, above, left_above, tolerance_seconds, max_iterations,
            ))
        else:
            fraction = (level - left.height) / (right.height - left.height)
            crossings.append(left.time + (right.time - left.time) * fraction)
    return crossings
