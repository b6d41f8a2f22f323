"""
Interaction Engine
==================
Pointer and keyboard driven editing of the active layer's curve.

Why is this file needed?
------------------------
1. Host independence: The engine only sees `PointerEvent`/`KeyEvent` values in
   surface pixels and draws through the `Surface` protocol. The Qt widget (or
   a test double) translates its native events and paints the `Scene`.
2. State machine: DEFAULT (select), DRAGGING (dot or handle past the drag
   threshold) and ADDING (live preview until a press commits a new dot).
3. Redraw coalescing: every change requests a frame from a `FrameScheduler`;
   requests made before the frame runs collapse into one draw.

Layers are stored in user space. Pointer positions are converted from surface
space before any curve mutation.
"""
from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Optional, Protocol, Union

import numpy as np

from keyframecurve.config import (
    DEFAULT_MAX_Y,
    DRAG_THRESHOLD,
    HIT_RADIUS,
    MIN_DOT_GAP,
    NUDGE_STEP,
    NUDGE_STEP_LARGE,
    USER_X_MAX,
    USER_X_MIN,
)
from keyframecurve.model import curve as curve_ops
from keyframecurve.model.coordinates import CoordinateMapper
from keyframecurve.model.geometry_primitives import Dot, DotType, HandleSelector, Point, create_corner, near_point
from keyframecurve.model.layers import Layer, LayerManager, LayerSet
from keyframecurve.model.properties import color_for
from keyframecurve.model.sampler import find_y_for_x_in_curve, segment_controls, segment_polyline

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------------------
# Host interface
# ------------------------------------------------------------------------------

class Modifier(enum.Flag):
    NONE = 0
    SHIFT = enum.auto()
    CTRL = enum.auto()
    ALT = enum.auto()
    META = enum.auto()


PRIMARY_BUTTON = 1


@dataclass(frozen=True)
class PointerEvent:
    """Pointer position in surface px, held buttons as a bit mask."""
    x: float
    y: float
    buttons: int = 0
    modifiers: Modifier = Modifier.NONE
    click_count: int = 1


@dataclass(frozen=True)
class KeyEvent:
    """`key` uses DOM-style names: "ArrowUp", "Delete", "Escape", "Shift", "c", "."."""
    key: str
    modifiers: Modifier = Modifier.NONE


class Surface(Protocol):
    def surface_size(self) -> tuple[float, float]: ...

    def render(self, scene: Scene) -> None: ...


class FrameScheduler(Protocol):
    def schedule(self, callback: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class ImmediateScheduler:
    """Runs frames synchronously. Used when the host has no frame clock."""

    def schedule(self, callback: Callable[[], None]) -> None:
        callback()

    def cancel(self, handle: Any) -> None:
        pass


class EditorState(StrEnum):
    DEFAULT = "default"
    DRAGGING = "dragging"
    ADDING = "adding"


@dataclass(frozen=True)
class DragDot:
    """Dragging a dot body; X stays within [min_x, max_x] (user units)."""
    layer_id: str
    index: int
    min_x: float
    max_x: float


@dataclass(frozen=True)
class DragHandle:
    layer_id: str
    index: int
    selector: HandleSelector


Drag = Union[DragDot, DragHandle]


# ------------------------------------------------------------------------------
# Scene (what hosts paint, all in surface px)
# ------------------------------------------------------------------------------

@dataclass
class GridLine:
    position: float
    kind: str  # "minor", "major" or "zero"


@dataclass
class SceneDot:
    position: Point
    type: DotType
    selected: bool = False


@dataclass
class CurvePath:
    color: str
    points: np.ndarray  # (N, 2)


@dataclass
class Scene:
    width: float
    height: float
    plot_rect: tuple[float, float, float, float]
    grid_x: list[GridLine] = field(default_factory=list)
    grid_y: list[GridLine] = field(default_factory=list)
    axis_labels: list[tuple[Point, str]] = field(default_factory=list)
    background_curves: list[CurvePath] = field(default_factory=list)
    curve: Optional[CurvePath] = None
    samples: list[Point] = field(default_factory=list)
    dots: list[SceneDot] = field(default_factory=list)
    handles: list[tuple[Point, Point]] = field(default_factory=list)
    add_marker: Optional[Point] = None
    baseline_y: float = 0.0


def _grid_step(y_range: float) -> int:
    if y_range <= 300:
        return 10
    if y_range <= 1000:
        return 50
    return 100


# ------------------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------------------

class Editor:
    """
    Editing handle returned by `create_editor`.

    Callbacks:
        on_change(): after every curve mutation or selection change.
        on_adding_state_changed(bool): entering/leaving ADDING.
        on_dragging_state_changed(bool): a drag passed the threshold / ended.
    """

    def __init__(
        self,
        surface: Surface,
        manager: LayerManager,
        scheduler: Optional[FrameScheduler] = None,
        max_y: float = DEFAULT_MAX_Y,
    ) -> None:
        self.surface = surface
        self.manager = manager
        self.scheduler: FrameScheduler = scheduler if scheduler is not None else ImmediateScheduler()
        width, height = surface.surface_size()
        self.mapper = CoordinateMapper(width, height, max_y)

        self.snap_to_grid = True
        self.label_y_axis = True

        self.on_change: Optional[Callable[[], None]] = None
        self.on_adding_state_changed: Optional[Callable[[bool], None]] = None
        self.on_dragging_state_changed: Optional[Callable[[bool], None]] = None

        self.state = EditorState.DEFAULT
        self._selected_index: Optional[int] = None
        self._drag: Optional[Drag] = None
        self._drag_origin: Optional[Point] = None
        self._adding_at: Optional[Point] = None
        self._last_pointer: Optional[Point] = None

        self._frame_pending = False
        self._frame_handle: Any = None
        self.frames_drawn = 0
        self._destroyed = False

    # ------------------------------------------------------------------------------
    # Lifecycle / drawing
    # ------------------------------------------------------------------------------

    def _usable(self, operation: str) -> bool:
        if not self._destroyed:
            return True
        logger.warning(f"Ignoring '{operation}' on a destroyed editor.")
        assert not self._destroyed, f"'{operation}' called on a destroyed editor"
        return False

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        if self._destroyed:
            return
        self.end_adding_dot()
        self.end_drag()
        if self._frame_pending:
            self.scheduler.cancel(self._frame_handle)
            self._frame_pending = False
            self._frame_handle = None
        self._destroyed = True
        logger.info("Editor destroyed.")

    def draw(self) -> None:
        """Request a redraw on the next frame. Repeated requests collapse into one."""
        if self._destroyed:
            return
        if self._frame_pending:
            logger.debug("Redraw already scheduled, skipping.")
            return
        self._frame_pending = True
        handle = self.scheduler.schedule(self._draw_now)
        if self._frame_pending:
            self._frame_handle = handle

    def _draw_now(self) -> None:
        self._frame_pending = False
        self._frame_handle = None
        if self._destroyed:
            return
        self.surface.render(self.build_scene())
        self.frames_drawn += 1

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _curve_changed(self) -> None:
        self.manager.invalidate_active()
        self.draw()
        self._notify()

    def _selection_changed(self) -> None:
        self.draw()
        self._notify()

    def resize(self, width: float, height: float) -> None:
        if not self._usable("resize"):
            return
        self.mapper.relayout(width, height)
        self.draw()

    def set_snap_to_grid(self, snap: bool) -> None:
        if not self._usable("set_snap_to_grid"):
            return
        self.snap_to_grid = bool(snap)

    def set_label_y_axis(self, label: bool) -> None:
        if not self._usable("set_label_y_axis"):
            return
        self.label_y_axis = bool(label)
        self.draw()

    # ------------------------------------------------------------------------------
    # Zoom
    # ------------------------------------------------------------------------------

    def _zoomed(self) -> float:
        self.manager.invalidate_all()
        self.draw()
        return self.mapper.max_y

    def zoom_in(self) -> float:
        if not self._usable("zoom_in"):
            return self.mapper.max_y
        self.mapper.zoom_in()
        return self._zoomed()

    def zoom_out(self) -> float:
        if not self._usable("zoom_out"):
            return self.mapper.max_y
        self.mapper.zoom_out()
        return self._zoomed()

    def set_zoom(self, max_y: float) -> float:
        if not self._usable("set_zoom"):
            return self.mapper.max_y
        self.mapper.set_zoom(max_y)
        return self._zoomed()

    # ------------------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------------------

    @property
    def dots(self) -> list[Dot]:
        return self.manager.get_active_dots()

    @property
    def selected_index(self) -> Optional[int]:
        return self._selected_index

    @property
    def is_adding(self) -> bool:
        return self.state == EditorState.ADDING

    @property
    def is_dragging(self) -> bool:
        return self.state == EditorState.DRAGGING

    def _set_selected_index(self, index: Optional[int]) -> None:
        if index == self._selected_index:
            return
        self._selected_index = index
        self._selection_changed()

    def _selected_dot(self) -> Optional[Dot]:
        i = self._selected_index
        if i is None or not 0 <= i < len(self.dots):
            return None
        return self.dots[i]

    def get_selected_dot(self) -> Optional[Dot]:
        """Copy of the selected dot in user space."""
        dot = self._selected_dot()
        return None if dot is None else dot.copy()

    def update_selected_dot(self, **changes: Any) -> bool:
        """
        Apply inspector edits to the selected dot.

        Accepts `x`, `y`, `type`, `h1`, `h2`. Moving the dot carries its handles
        along, and X stays between the neighbouring dots.
        """
        if not self._usable("update_selected_dot"):
            return False
        unknown = set(changes) - {"x", "y", "type", "h1", "h2"}
        if unknown:
            raise TypeError(f"Unknown dot fields: {sorted(unknown)}")

        dot = self._selected_dot()
        if dot is None:
            return False
        index = self._selected_index

        x = curve_ops.clamp_x(self.dots, index, float(changes.get("x", dot.x)))
        y = float(changes.get("y", dot.y))
        curve_ops.move_dot(dot, x, y)
        if "type" in changes:
            dot.type = DotType(changes["type"])
        for key in ("h1", "h2"):
            if key in changes:
                p = changes[key]
                setattr(dot, key, Point(float(p.x), float(p.y)))

        self._curve_changed()
        return True

    def clear_selection(self) -> None:
        self._set_selected_index(None)

    def select_next(self) -> None:
        if not self.dots:
            return
        i = self._selected_index
        if i is None:
            self._set_selected_index(0)
        elif i < len(self.dots) - 1:
            self._set_selected_index(i + 1)

    def select_prev(self) -> None:
        if not self.dots:
            return
        i = self._selected_index
        if i is None:
            self._set_selected_index(len(self.dots) - 1)
        elif i > 0:
            self._set_selected_index(i - 1)

    # ------------------------------------------------------------------------------
    # Dot operations
    # ------------------------------------------------------------------------------

    def delete_selected_dot(self) -> bool:
        if not self._usable("delete_selected_dot"):
            return False
        i = self._selected_index
        if i is None or curve_ops.remove_at(self.dots, i) is None:
            return False

        self.end_drag()
        if not self.dots:
            self._selected_index = None
        elif i != 0:
            self._selected_index = i - 1
        else:
            self._selected_index = 0
        self._curve_changed()
        return True

    def toggle_selected_type(self) -> bool:
        dot = self._selected_dot()
        if dot is None:
            return False
        curve_ops.toggle_type(dot)
        self._curve_changed()
        return True

    def nudge_selected(self, dx: float, dy: float) -> bool:
        """Move the selected dot by a user-space delta, never past a neighbour."""
        dot = self._selected_dot()
        if dot is None:
            return False
        bounds = curve_ops.drag_bounds(self.dots, self._selected_index, MIN_DOT_GAP)
        if curve_ops.move_dot(dot, dot.x + dx, dot.y + dy, self.snap_to_grid, bounds):
            self._curve_changed()
            return True
        return False

    def set_sample_count(self, n: int) -> int:
        if not self._usable("set_sample_count"):
            return self.manager.active_layer.sample_count
        applied = self.manager.set_sample_count(n)
        self.draw()
        self._notify()
        return applied

    def get_samples(self) -> list[Point]:
        """User-space samples of the active layer."""
        return list(self.manager.get_active_samples())

    # ------------------------------------------------------------------------------
    # Layer operations
    # ------------------------------------------------------------------------------

    def _layer_switched(self) -> None:
        self.end_drag()
        self._selected_index = None
        self._selection_changed()

    def add_layer(self, prop: Optional[str] = None) -> Optional[Layer]:
        layer = self.manager.add_layer(prop)
        if layer is not None:
            self._layer_switched()
        return layer

    def delete_layer(self, layer_id: str) -> bool:
        was_active = layer_id == self.manager.active_id
        deleted = self.manager.delete_layer(layer_id)
        if deleted and was_active:
            self._layer_switched()
        elif deleted:
            self.draw()
        return deleted

    def set_active_layer(self, layer_id: str) -> Layer:
        previous = self.manager.active_id
        layer = self.manager.set_active(layer_id)
        if layer.id != previous:
            self._layer_switched()
        return layer

    def next_layer(self) -> bool:
        moved = self.manager.next_layer()
        if moved:
            self._layer_switched()
        return moved

    def prev_layer(self) -> bool:
        moved = self.manager.prev_layer()
        if moved:
            self._layer_switched()
        return moved

    def set_layer_sample_count(self, n: int) -> int:
        return self.set_sample_count(n)

    def set_layer_flipped(self, flipped: bool) -> None:
        self.manager.set_flipped(flipped)
        self._notify()

    def set_layer_units(self, units: str) -> str:
        applied = self.manager.set_units(units)
        self._notify()
        return applied

    def set_layer_property(self, prop: str) -> bool:
        changed = self.manager.set_property(prop)
        if changed:
            self.draw()
            self._notify()
        return changed

    # ------------------------------------------------------------------------------
    # Dragging
    # ------------------------------------------------------------------------------

    def _hit_test(self, sx: float, sy: float) -> tuple[Optional[int], Optional[Drag]]:
        """Dot bodies first, then the handles of ROUND dots."""
        dots = self.dots
        layer_id = self.manager.active_id
        surface_dots = [self.mapper.dot_to_surface(d) for d in dots]

        for i, sd in enumerate(surface_dots):
            if near_point(sd, sx, sy, HIT_RADIUS):
                lo, hi = curve_ops.drag_bounds(dots, i, MIN_DOT_GAP)
                return i, DragDot(layer_id, i, lo, hi)

        for i, sd in enumerate(surface_dots):
            if not sd.is_round:
                continue
            for selector in (HandleSelector.H1, HandleSelector.H2):
                if near_point(sd.handle(selector), sx, sy, HIT_RADIUS):
                    return i, DragHandle(layer_id, i, selector)

        return None, None

    def end_drag(self) -> None:
        was_dragging = self.state == EditorState.DRAGGING
        self._drag = None
        self._drag_origin = None
        if was_dragging:
            self.state = EditorState.DEFAULT
            if self.on_dragging_state_changed is not None:
                self.on_dragging_state_changed(False)

    def _apply_drag(self, sx: float, sy: float) -> None:
        drag = self._drag
        dots = self.dots
        if drag.layer_id != self.manager.active_id or not 0 <= drag.index < len(dots):
            logger.debug("Drag target is gone, ending drag.")
            self.end_drag()
            return

        sx, sy = self.mapper.clamp_to_plot(sx, sy)
        ux = self.mapper.to_user_x(sx)
        uy = self.mapper.to_user_y(sy)
        dot = dots[drag.index]

        match drag:
            case DragHandle(selector=selector):
                curve_ops.move_handle(dot, selector, ux, uy)
                self._curve_changed()
            case DragDot(min_x=min_x, max_x=max_x):
                if curve_ops.move_dot(dot, ux, uy, self.snap_to_grid, (min_x, max_x)):
                    self._curve_changed()

    # ------------------------------------------------------------------------------
    # Adding
    # ------------------------------------------------------------------------------

    def begin_adding_dot(self, at: Optional[Point] = None) -> None:
        """Enter ADDING. `at` (surface px) seeds the preview position."""
        if not self._usable("begin_adding_dot") or self.state == EditorState.ADDING:
            return
        self.end_drag()
        self.state = EditorState.ADDING
        self._adding_at = Point(*self.mapper.clamp_to_plot(at.x, at.y)) if at is not None else None
        self.draw()
        if self.on_adding_state_changed is not None:
            self.on_adding_state_changed(True)

    def end_adding_dot(self) -> None:
        was_adding = self.state == EditorState.ADDING
        self._adding_at = None
        if not was_adding:
            return
        self.state = EditorState.DEFAULT
        self.draw()
        if self.on_adding_state_changed is not None:
            self.on_adding_state_changed(False)

    def cancel(self) -> None:
        if not self._usable("cancel"):
            return
        self.end_adding_dot()
        self.end_drag()

    def adding_preview(self) -> Optional[Point]:
        """
        User-space position a committed dot would take: the curve's Y where the
        curve covers the X, the pointer's Y elsewhere.
        """
        if self._adding_at is None:
            return None
        x = max(USER_X_MIN, min(self.mapper.to_user_x(self._adding_at.x), USER_X_MAX))
        y = find_y_for_x_in_curve(x, self.dots)
        if y is None:
            y = self.mapper.to_user_y(self._adding_at.y)
        return Point(x, y)

    def _commit_add(self) -> None:
        preview = self.adding_preview()
        if preview is not None:
            x, y = preview.x, preview.y
            if self.snap_to_grid:
                x, y = curve_ops.round_half_up(x), curve_ops.round_half_up(y)
            if any(abs(d.x - x) < MIN_DOT_GAP for d in self.dots):
                logger.debug(f"A dot already sits within {MIN_DOT_GAP:g} of x={x:g}, not adding.")
            else:
                index = curve_ops.insert_sorted(self.dots, create_corner(x, y))
                self._selected_index = index
                self._curve_changed()
        self.end_adding_dot()

    # ------------------------------------------------------------------------------
    # Input events
    # ------------------------------------------------------------------------------

    def on_pointer_down(self, event: PointerEvent) -> None:
        if not self._usable("on_pointer_down"):
            return
        self._last_pointer = Point(event.x, event.y)

        if self.state == EditorState.ADDING:
            self._adding_at = Point(*self.mapper.clamp_to_plot(event.x, event.y))
            self._commit_add()
            return

        self.end_drag()
        index, drag = self._hit_test(event.x, event.y)
        logger.debug(f"Hit test at ({event.x:.1f}, {event.y:.1f}): {drag}")

        convert_click = event.modifiers == Modifier.ALT or event.click_count >= 2
        if convert_click:
            if isinstance(drag, DragDot):
                curve_ops.toggle_type(self.dots[index])
                self._selected_index = index
                self._curve_changed()
            return

        self._set_selected_index(index)
        if drag is not None:
            self._drag = drag
            self._drag_origin = Point(event.x, event.y)

    def on_pointer_move(self, event: PointerEvent) -> None:
        if not self._usable("on_pointer_move"):
            return
        self._last_pointer = Point(event.x, event.y)

        if self.state == EditorState.ADDING:
            # Preview only, the model is untouched
            self._adding_at = Point(*self.mapper.clamp_to_plot(event.x, event.y))
            self.draw()
            return

        if self._drag is None:
            return
        if event.buttons == 0:
            self.end_drag()
            return

        if self.state != EditorState.DRAGGING:
            if near_point(self._drag_origin, event.x, event.y, DRAG_THRESHOLD):
                return
            self.state = EditorState.DRAGGING
            logger.debug(f"Drag threshold passed for {self._drag}")
            if self.on_dragging_state_changed is not None:
                self.on_dragging_state_changed(True)

        self._apply_drag(event.x, event.y)

    def on_pointer_up(self, event: Optional[PointerEvent] = None) -> None:
        if not self._usable("on_pointer_up"):
            return
        if self._drag is not None:
            self.end_drag()

    def on_pointer_leave(self, event: Optional[PointerEvent] = None) -> None:
        if not self._usable("on_pointer_leave"):
            return
        if self.state == EditorState.ADDING:
            self.end_adding_dot()
        elif self._drag is not None and (event is None or event.buttons == 0):
            self.end_drag()

    def on_key_down(self, event: KeyEvent) -> bool:
        """Returns True if the key was handled."""
        if not self._usable("on_key_down"):
            return False

        step = NUDGE_STEP_LARGE if Modifier.CTRL in event.modifiers else NUDGE_STEP

        match event.key:
            case "Escape":
                self.cancel()
            case "Shift":
                self.begin_adding_dot(self._last_pointer)
            case "Delete" | "Backspace":
                self.delete_selected_dot()
            case "c":
                self.toggle_selected_type()
            case ".":
                self.select_next()
            case ",":
                self.select_prev()
            case "ArrowUp":
                self.nudge_selected(0.0, step)
            case "ArrowDown":
                self.nudge_selected(0.0, -step)
            case "ArrowLeft":
                self.nudge_selected(-step, 0.0)
            case "ArrowRight":
                self.nudge_selected(step, 0.0)
            case "[":
                self.prev_layer()
            case "]":
                self.next_layer()
            case "=" | "w":
                self.zoom_in()
            case "-" | "s":
                self.zoom_out()
            case _:
                return False
        return True

    def on_key_up(self, event: KeyEvent) -> bool:
        if not self._usable("on_key_up"):
            return False
        if event.key == "Shift":
            self.end_adding_dot()
            return True
        return False

    # ------------------------------------------------------------------------------
    # Scene
    # ------------------------------------------------------------------------------

    def _curve_path(self, dots: list[Dot], color: str) -> Optional[CurvePath]:
        if len(dots) < 2:
            return None
        pieces = [segment_polyline(segment_controls(a, b)) for a, b in zip(dots[:-1], dots[1:])]
        return CurvePath(color, self.mapper.to_surface_array(np.vstack(pieces)))

    def build_scene(self) -> Scene:
        m = self.mapper
        scene = Scene(width=m.width, height=m.height, plot_rect=m.plot_rect(), baseline_y=m.to_surface_y(0.0))

        for x in range(0, 101, 10):
            scene.grid_x.append(GridLine(m.to_surface_x(x), "major" if x % 50 == 0 else "minor"))

        step = _grid_step(m.max_y - m.min_y)
        y = math.ceil(m.min_y / step) * step
        while y <= m.max_y:
            kind = "zero" if y == 0 else "major" if y % 100 == 0 else "minor"
            scene.grid_y.append(GridLine(m.to_surface_y(y), kind))
            if self.label_y_axis and y % 100 == 0:
                text = "0" if y == 0 else f"{y}%"
                scene.axis_labels.append((m.to_surface(Point(1.5, y)), text))
            y += step

        for layer in self.manager.background_layers():
            path = self._curve_path(layer.dots, color_for(layer.prop))
            if path is not None:
                scene.background_curves.append(path)

        active = self.manager.active_layer
        scene.curve = self._curve_path(active.dots, color_for(active.prop))
        scene.samples = [m.to_surface(p) for p in active.samples()]

        adding = self.state == EditorState.ADDING
        for i, dot in enumerate(active.dots):
            sd = m.dot_to_surface(dot)
            selected = i == self._selected_index and not adding
            scene.dots.append(SceneDot(sd.position, sd.type, selected))
            if i == self._selected_index and sd.is_round:
                scene.handles.extend([(sd.position, sd.h1), (sd.position, sd.h2)])

        preview = self.adding_preview()
        if preview is not None:
            scene.add_marker = m.to_surface(preview)

        return scene


def create_editor(
    surface: Surface,
    initial_layers: Union[LayerSet, LayerManager, None] = None,
    scheduler: Optional[FrameScheduler] = None,
    max_y: float = DEFAULT_MAX_Y,
) -> Editor:
    """
    Attach an editor to a surface and schedule the first frame.

    Args:
        surface: Where scenes are rendered.
        initial_layers: A LayerSet (wrapped in a new LayerManager), an existing
            LayerManager, or None for the default layer.
        scheduler: Frame clock used to coalesce redraws.
        max_y: Initial zoom (max visible user Y).
    """
    if isinstance(initial_layers, LayerManager):
        manager = initial_layers
    else:
        manager = LayerManager(initial_layers)

    editor = Editor(surface, manager, scheduler, max_y)
    width, height = surface.surface_size()
    logger.info(f"Editor created on a {width:g}x{height:g} surface with {len(manager.layers)} layer(s).")
    editor.draw()
    return editor
