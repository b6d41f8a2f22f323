"""
Curve Sampler
=============
Evaluates the piecewise cubic Bézier defined by a curve.

Why is this file needed?
------------------------
A Bézier segment is parametric in `t`, so Y cannot be read off for a given X
directly. The sampler inverts the X component with Newton-Raphson and then
evaluates Y at the found parameter.

"No value" is a normal outcome here (the curve does not cover the X, or the
iteration did not converge) and is reported as None, never raised.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from keyframecurve.config import MAX_SAMPLE_COUNT, MIN_SAMPLE_COUNT, USER_X_MAX, USER_X_MIN
from keyframecurve.model.geometry_primitives import Dot, Point

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-6
MAX_ITERATIONS = 100

Segment = tuple[Point, Point, Point, Point]


def cubic_bezier(t, p0: float, p1: float, p2: float, p3: float):
    """One component of a cubic Bézier at `t` (a float or a numpy array)."""
    mt = 1 - t
    return mt ** 3 * p0 + 3 * mt ** 2 * t * p1 + 3 * mt * t ** 2 * p2 + t ** 3 * p3


def cubic_bezier_derivative(t, p0: float, p1: float, p2: float, p3: float):
    mt = 1 - t
    return 3 * mt ** 2 * (p1 - p0) + 6 * mt * t * (p2 - p1) + 3 * t ** 2 * (p3 - p2)


def segment_controls(a: Dot, b: Dot) -> Segment:
    """
    Control points of the segment between two consecutive dots.

    ROUND dots contribute their handle on the inner side of the segment;
    CORNER dots act as their own control point.
    """
    return a.position, a.outgoing_control(), b.incoming_control(), b.position


def find_y_for_x(
    x_target: float,
    segment: Segment,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> Optional[float]:
    """
    Solve Y at `x_target` on a single segment with Newton-Raphson on X(t).

    Args:
        x_target: X to solve for.
        segment: (P0, P1, P2, P3) control points.
        tolerance: Accepted |X(t) - x_target|; also the smallest usable |X'(t)|.
        max_iterations: Iteration cap.

    Returns:
        Y(t) on convergence, otherwise None.
    """
    p0, p1, p2, p3 = segment
    span = p3.x - p0.x

    # Seed by linear interpolation between the endpoints
    t = (x_target - p0.x) / span if span != 0.0 else 0.0
    t = max(0.0, min(1.0, t))

    for _ in range(max_iterations):
        error = cubic_bezier(t, p0.x, p1.x, p2.x, p3.x) - x_target
        if abs(error) < tolerance:
            return float(cubic_bezier(t, p0.y, p1.y, p2.y, p3.y))

        derivative = cubic_bezier_derivative(t, p0.x, p1.x, p2.x, p3.x)
        if abs(derivative) < tolerance:
            break

        t -= error / derivative
        t = max(0.0, min(1.0, t))

    logger.debug(f"No Bézier solution for x={x_target:.4f} on segment {p0.x:.2f}..{p3.x:.2f}")
    return None


def find_y_for_x_in_curve(
    x: float,
    dots: Sequence[Dot],
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> Optional[float]:
    """
    Y on the whole curve at `x`, or None if no segment covering `x` yields a value.

    Segments that share an endpoint both contain it; a failed solve on one
    segment moves on to the next covering segment.
    """
    for a, b in zip(dots[:-1], dots[1:]):
        if x < a.x or x > b.x:
            continue
        y = find_y_for_x(x, segment_controls(a, b), tolerance, max_iterations)
        if y is not None:
            return y
    return None


def clamp_sample_count(n: int) -> int:
    return max(MIN_SAMPLE_COUNT, min(int(n), MAX_SAMPLE_COUNT))


def sample_xs(n: int) -> np.ndarray:
    """`n` evenly spaced X values over the user domain, the last one exactly at the upper bound."""
    xs = np.linspace(USER_X_MIN, USER_X_MAX, n)
    xs[-1] = USER_X_MAX
    return xs


def sample_curve(dots: Sequence[Dot], n: int, tolerance: float = DEFAULT_TOLERANCE) -> list[Point]:
    """
    Sample the curve at `n` evenly spaced X values (clamped to the allowed range).

    X values not covered by the curve produce no sample, so the result may be
    shorter than `n`, and is empty for curves with fewer than two dots.
    """
    if len(dots) < 2:
        return []

    samples: list[Point] = []
    for x in sample_xs(clamp_sample_count(n)):
        y = find_y_for_x_in_curve(float(x), dots, tolerance)
        if y is not None:
            samples.append(Point(float(x), y))
    return samples


def samples_to_array(samples: Sequence[Point]) -> np.ndarray:
    """(N, 2) float array of sample coordinates."""
    if not samples:
        return np.empty((0, 2), dtype=float)
    return np.array([(p.x, p.y) for p in samples], dtype=float)


def segment_polyline(segment: Segment, steps: int = 32) -> np.ndarray:
    """(steps + 1, 2) points along a segment, evenly spaced in `t`. Used for drawing."""
    p0, p1, p2, p3 = segment
    t = np.linspace(0.0, 1.0, steps + 1)
    xs = cubic_bezier(t, p0.x, p1.x, p2.x, p3.x)
    ys = cubic_bezier(t, p0.y, p1.y, p2.y, p3.y)
    return np.column_stack((xs, ys))
