"""
Geometric Primitives for the curve editor.

Dots are the anchor points of a piecewise cubic Bézier curve. Each dot owns two
control handles. Coordinates are tagged with the space they live in so user
units and surface pixels are never mixed silently.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import StrEnum

from keyframecurve.config import DEFAULT_HANDLE_OFFSET


class DotType(StrEnum):
    """Shape of the joint at a dot. Values match the persisted layout."""
    CORNER = "square"
    ROUND = "round"


class DotSpace(StrEnum):
    USER = "user"
    SURFACE = "surface"


class HandleSelector(StrEnum):
    H1 = "h1"
    H2 = "h2"

    @property
    def other(self) -> HandleSelector:
        return HandleSelector.H2 if self is HandleSelector.H1 else HandleSelector.H1


@dataclass
class Point:
    """A simple geometric point in 2D space."""
    x: float
    y: float

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def distance_to(self, other: Point) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def copy(self) -> Point:
        return Point(self.x, self.y)

    def to_tuple(self) -> tuple[float, float]:
        return self.x, self.y


@dataclass
class Dot:
    """
    An anchor point of the curve with two tangent handles.

    For ROUND dots the handles shape the curve and are kept mirrored through the
    dot by the handle drag operation. CORNER dots keep their handles stored, but
    the dot itself is used as the control point on both sides.
    """
    x: float
    y: float
    type: DotType = DotType.CORNER
    h1: Point = field(default_factory=lambda: Point(0.0, 0.0))
    h2: Point = field(default_factory=lambda: Point(0.0, 0.0))
    space: DotSpace = DotSpace.USER

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)

    @property
    def is_round(self) -> bool:
        return self.type == DotType.ROUND

    def handle(self, selector: HandleSelector) -> Point:
        return self.h1 if selector is HandleSelector.H1 else self.h2

    def copy(self) -> Dot:
        """Deep copy; handles are not shared with the original."""
        return Dot(
            x=self.x,
            y=self.y,
            type=self.type,
            h1=self.h1.copy(),
            h2=self.h2.copy(),
            space=self.space,
        )

    def outgoing_control(self) -> Point:
        """Control point used by the segment that starts at this dot."""
        return self.h2 if self.is_round else self.position

    def incoming_control(self) -> Point:
        """Control point used by the segment that ends at this dot."""
        return self.h1 if self.is_round else self.position


def create_corner(x: float, y: float, handle_offset: float = DEFAULT_HANDLE_OFFSET) -> Dot:
    """New user-space CORNER dot with horizontal handles either side."""
    return Dot(
        x=x,
        y=y,
        type=DotType.CORNER,
        h1=Point(x - handle_offset, y),
        h2=Point(x + handle_offset, y),
    )


def create_round(x: float, y: float, handle_offset: float = DEFAULT_HANDLE_OFFSET) -> Dot:
    """New user-space ROUND dot with horizontal handles either side."""
    return Dot(
        x=x,
        y=y,
        type=DotType.ROUND,
        h1=Point(x - handle_offset, y),
        h2=Point(x + handle_offset, y),
    )


def near_point(p: Point | Dot, x: float, y: float, radius: float) -> bool:
    """True if (x, y) lies strictly within `radius` of `p`."""
    dx = x - p.x
    dy = y - p.y
    return dx * dx + dy * dy < radius * radius
