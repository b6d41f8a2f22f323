"""
Coordinate Mapper
=================
Conversion between "user space" and "surface space".

User space:
    X runs from 0 to 100 (percent of the animation), Y covers the visible
    range [100 - max_y, max_y]. Y grows upwards.
Surface space:
    Pixel coordinates of the drawing surface, inset by a fixed border. Y grows
    downwards.

The zoom level is the max visible user Y. Zooming in shrinks the visible Y
range, which increases the pixel-per-unit ratio on the Y axis.
"""
from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right

import numpy as np

from keyframecurve.config import SURFACE_INSET, ZOOM_STEPS, DEFAULT_MAX_Y, USER_X_MAX, USER_X_MIN
from keyframecurve.model.geometry_primitives import Dot, DotSpace, Point

logger = logging.getLogger(__name__)

FULL_SCALE = 100.0


class CoordinateMapper:
    """
    Maps points between user and surface space for a given surface size and zoom.

    Re-applying the same surface size and zoom always yields the same ratios.
    """

    def __init__(
        self,
        width: float,
        height: float,
        max_y: float = DEFAULT_MAX_Y,
        inset: float = SURFACE_INSET,
        zoom_steps: tuple[float, ...] = ZOOM_STEPS,
    ) -> None:
        self.inset = float(inset)
        self.zoom_steps = tuple(sorted(zoom_steps))
        self.width = float(width)
        self.height = float(height)
        self.max_y = self._clamp_zoom(max_y)
        self.px_per_x = 1.0
        self.px_per_y = 1.0
        self._recompute()

    # ------------------------------------------------------------------------------
    # Layout / zoom
    # ------------------------------------------------------------------------------

    @property
    def min_y(self) -> float:
        # Visible range is centred on the 0..100 band
        return FULL_SCALE - self.max_y

    @property
    def y_range(self) -> tuple[float, float]:
        return self.min_y, self.max_y

    def relayout(self, width: float, height: float) -> None:
        """Recompute the ratios for a new surface size."""
        self.width = float(width)
        self.height = float(height)
        self._recompute()

    def set_zoom(self, max_y: float) -> float:
        """Set the max visible user Y (clamped to the zoom table). Returns the applied value."""
        self.max_y = self._clamp_zoom(max_y)
        self._recompute()
        return self.max_y

    def zoom_in(self) -> float:
        """Step to the next smaller visible range. Returns the new max Y."""
        i = bisect_left(self.zoom_steps, self.max_y) - 1
        if i >= 0:
            self.set_zoom(self.zoom_steps[i])
        return self.max_y

    def zoom_out(self) -> float:
        """Step to the next larger visible range. Returns the new max Y."""
        i = bisect_right(self.zoom_steps, self.max_y)
        if i < len(self.zoom_steps):
            self.set_zoom(self.zoom_steps[i])
        return self.max_y

    def _clamp_zoom(self, max_y: float) -> float:
        return max(self.zoom_steps[0], min(float(max_y), self.zoom_steps[-1]))

    def _recompute(self) -> None:
        # Degenerate surfaces (not laid out yet) still get a usable ratio
        plot_w = max(1.0, self.width - 2 * self.inset)
        plot_h = max(1.0, self.height - 2 * self.inset)
        self.px_per_x = plot_w / (USER_X_MAX - USER_X_MIN)
        self.px_per_y = plot_h / (self.max_y - self.min_y)
        logger.debug(
            f"Mapper layout {self.width:g}x{self.height:g}, y range {self.y_range}, "
            f"ratios ({self.px_per_x:.4f}, {self.px_per_y:.4f})"
        )

    # ------------------------------------------------------------------------------
    # Scalar conversions
    # ------------------------------------------------------------------------------

    def to_surface_x(self, x: float) -> float:
        return self.inset + (x - USER_X_MIN) * self.px_per_x

    def to_surface_y(self, y: float) -> float:
        return self.inset + (self.max_y - y) * self.px_per_y

    def to_user_x(self, sx: float) -> float:
        return (sx - self.inset) / self.px_per_x + USER_X_MIN

    def to_user_y(self, sy: float) -> float:
        return self.max_y - (sy - self.inset) / self.px_per_y

    # ------------------------------------------------------------------------------
    # Point / dot conversions
    # ------------------------------------------------------------------------------

    def to_surface(self, p: Point) -> Point:
        return Point(self.to_surface_x(p.x), self.to_surface_y(p.y))

    def to_user(self, p: Point) -> Point:
        return Point(self.to_user_x(p.x), self.to_user_y(p.y))

    def to_surface_array(self, points: np.ndarray) -> np.ndarray:
        """(N, 2) user-space array to surface space."""
        out = np.empty_like(points, dtype=float)
        out[:, 0] = self.inset + (points[:, 0] - USER_X_MIN) * self.px_per_x
        out[:, 1] = self.inset + (self.max_y - points[:, 1]) * self.px_per_y
        return out

    def dot_to_surface(self, dot: Dot) -> Dot:
        """Copy of a user-space dot converted to surface space."""
        if dot.space != DotSpace.USER:
            raise ValueError(f"Expected a user space dot, got '{dot.space}'.")
        return Dot(
            x=self.to_surface_x(dot.x),
            y=self.to_surface_y(dot.y),
            type=dot.type,
            h1=self.to_surface(dot.h1),
            h2=self.to_surface(dot.h2),
            space=DotSpace.SURFACE,
        )

    def dot_to_user(self, dot: Dot) -> Dot:
        """Copy of a surface-space dot converted to user space."""
        if dot.space != DotSpace.SURFACE:
            raise ValueError(f"Expected a surface space dot, got '{dot.space}'.")
        return Dot(
            x=self.to_user_x(dot.x),
            y=self.to_user_y(dot.y),
            type=dot.type,
            h1=self.to_user(dot.h1),
            h2=self.to_user(dot.h2),
            space=DotSpace.USER,
        )

    # ------------------------------------------------------------------------------
    # Surface bounds
    # ------------------------------------------------------------------------------

    def plot_rect(self) -> tuple[float, float, float, float]:
        """(left, top, right, bottom) of the inset plot area in px."""
        return self.inset, self.inset, self.width - self.inset, self.height - self.inset

    def clamp_to_plot(self, sx: float, sy: float) -> tuple[float, float]:
        left, top, right, bottom = self.plot_rect()
        return max(left, min(sx, right)), max(top, min(sy, bottom))
