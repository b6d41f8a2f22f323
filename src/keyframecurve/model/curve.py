"""
Curve Model
===========
Operations on a curve: an ordered list of dots sorted by ascending X.

All functions mutate in place and work in whatever space the caller supplies;
callers convert coordinates before calling in here.
"""
from __future__ import annotations

import logging
import math
from typing import Optional

from keyframecurve.config import MIN_DOT_GAP, USER_X_MAX, USER_X_MIN
from keyframecurve.model.geometry_primitives import Dot, DotType, HandleSelector

logger = logging.getLogger(__name__)

Curve = list[Dot]


def round_half_up(value: float) -> float:
    """Round to the nearest integer, halves going up (-0.5 -> 0, 0.5 -> 1)."""
    return float(math.floor(value + 0.5))


def is_sorted(dots: Curve) -> bool:
    """True if the dots are strictly ascending by X."""
    return all(a.x < b.x for a, b in zip(dots[:-1], dots[1:]))


def insertion_index(dots: Curve, x: float) -> int:
    """Index in front of the first dot whose X is >= x."""
    for i, d in enumerate(dots):
        if d.x >= x:
            return i
    return len(dots)


def insert_sorted(dots: Curve, dot: Dot) -> int:
    """Insert `dot` keeping the curve sorted. Returns the new dot's index."""
    index = insertion_index(dots, dot.x)
    dots.insert(index, dot)
    return index


def remove_at(dots: Curve, index: int) -> Optional[Dot]:
    """Remove and return the dot at `index`. Out of range indices are ignored."""
    if not 0 <= index < len(dots):
        return None
    return dots.pop(index)


def move_dot(
    dot: Dot,
    x: float,
    y: float,
    snap_to_grid: bool = False,
    x_bounds: Optional[tuple[float, float]] = None,
) -> bool:
    """
    Move a dot and translate both handles by the same delta.

    With `snap_to_grid` the target is rounded to whole units, and nothing happens
    when the rounded target equals the rounded current position. `x_bounds`
    (see `drag_bounds`) is applied after rounding.

    Returns:
        True if the dot moved.
    """
    if snap_to_grid:
        to_x, to_y = round_half_up(x), round_half_up(y)
        if to_x == round_half_up(dot.x) and to_y == round_half_up(dot.y):
            return False
        x, y = to_x, to_y

    if x_bounds is not None:
        lo, hi = x_bounds
        x = max(lo, min(x, hi))

    dx = x - dot.x
    dy = y - dot.y
    if dx == 0.0 and dy == 0.0:
        return False

    dot.x = x
    dot.y = y
    for h in (dot.h1, dot.h2):
        h.x += dx
        h.y += dy
    return True


def move_handle(dot: Dot, selector: HandleSelector, x: float, y: float) -> None:
    """
    Move one handle and mirror the other through the dot.

    CORNER dots ignore handles when evaluating the curve, but they are stored
    mirrored too so a later toggle to ROUND yields a smooth joint.
    """
    handle = dot.handle(selector)
    other = dot.handle(selector.other)

    handle.x = x
    handle.y = y

    # other = dot - (handle - dot)
    other.x = dot.x - (handle.x - dot.x)
    other.y = dot.y - (handle.y - dot.y)


def toggle_type(dot: Dot) -> DotType:
    dot.type = DotType.ROUND if dot.type == DotType.CORNER else DotType.CORNER
    return dot.type


def drag_bounds(
    dots: Curve,
    index: int,
    gap: float = MIN_DOT_GAP,
    x_min: float = USER_X_MIN,
    x_max: float = USER_X_MAX,
) -> tuple[float, float]:
    """
    Allowed X interval for the dot at `index`: between its neighbours (kept
    `gap` apart), or the domain bounds at the ends.

    The interval always contains the dot's current X, so a dot already closer
    than `gap` to a neighbour may stay put or move away but never closer.
    """
    x = dots[index].x
    lo = dots[index - 1].x + gap if index > 0 else x_min
    hi = dots[index + 1].x - gap if index + 1 < len(dots) else x_max
    return min(lo, x), max(hi, x)


def clamp_x(dots: Curve, index: int, x: float, gap: float = MIN_DOT_GAP) -> float:
    """Clamp a proposed X for the dot at `index` so it cannot cross a neighbour."""
    lo, hi = drag_bounds(dots, index, gap)
    return max(lo, min(x, hi))
