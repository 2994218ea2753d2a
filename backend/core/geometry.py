"""
Geometry helpers for keypoint analysis.

Every function accepts keypoints (anything with ``x``/``y``), ``(x, y)``
tuples or ``None`` and
returns ``None`` instead of raising when the geometry is undefined: a point is
missing, a coordinate is not a finite number, or two points coincide.
"""

import math
from typing import Optional, Tuple


Coords = Tuple[float, float]


def _coords(point) -> Optional[Coords]:
    if point is None:
        return None
    try:
        if isinstance(point, tuple):
            x, y = float(point[0]), float(point[1])
        else:
            x, y = float(point.x), float(point.y)
    except (AttributeError, IndexError, TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return x, y


def angle_at(a, b, c) -> Optional[float]:
    """
    Angle at vertex ``b`` turning from ray b->a to ray b->c, in [0, 360).

    Used for feature extraction, where the turning direction matters.
    """
    pa, pb, pc = _coords(a), _coords(b), _coords(c)
    if pa is None or pb is None or pc is None:
        return None
    if pa == pb or pc == pb:
        return None

    radians = (math.atan2(pc[1] - pb[1], pc[0] - pb[0])
               - math.atan2(pa[1] - pb[1], pa[0] - pb[0]))
    degrees = math.degrees(radians)
    if degrees < 0:
        degrees += 360.0
    return degrees


def joint_angle(a, b, c) -> Optional[float]:
    """Unsigned angle at ``b`` in [0, 180], used by stroke auto-detection."""
    pa, pb, pc = _coords(a), _coords(b), _coords(c)
    if pa is None or pb is None or pc is None:
        return None
    if pa == pb or pc == pb:
        return None

    radians = (math.atan2(pc[1] - pb[1], pc[0] - pb[0])
               - math.atan2(pa[1] - pb[1], pa[0] - pb[0]))
    degrees = abs(math.degrees(radians))
    if degrees > 180.0:
        degrees = 360.0 - degrees
    return degrees


def distance(a, b) -> Optional[float]:
    pa, pb = _coords(a), _coords(b)
    if pa is None or pb is None:
        return None
    return math.hypot(pb[0] - pa[0], pb[1] - pa[1])


def inclination(upper, lower) -> Optional[float]:
    """Signed angle of the segment upper->lower relative to image vertical, in degrees."""
    pu, pl = _coords(upper), _coords(lower)
    if pu is None or pl is None or pu == pl:
        return None
    return math.degrees(math.atan2(pl[0] - pu[0], pl[1] - pu[1]))


def line_tilt(left, right) -> Optional[float]:
    """Angle of the segment left->right relative to image horizontal, in degrees."""
    pl, pr = _coords(left), _coords(right)
    if pl is None or pr is None or pl == pr:
        return None
    return math.degrees(math.atan2(pr[1] - pl[1], pr[0] - pl[0]))


def midpoint(a, b) -> Optional[Coords]:
    pa, pb = _coords(a), _coords(b)
    if pa is None or pb is None:
        return None
    return (pa[0] + pb[0]) / 2, (pa[1] + pb[1]) / 2
