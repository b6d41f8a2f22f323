from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, QPointF, QRectF, Qt, QTimer, Signal
from PySide6.QtGui import QBrush, QColor, QCursor, QFont, QKeyEvent, QMouseEvent, QPainter, QPainterPath, QPen, QPolygonF
from PySide6.QtWidgets import QApplication, QSizePolicy, QWidget

from keyframecurve.config import FRAME_INTERVAL_MS
from keyframecurve.model.editor import Editor, KeyEvent, Modifier, PointerEvent, Scene
from keyframecurve.model.geometry_primitives import DotType, Point

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------------
# Frame scheduling
# -------------------------------------------------------------------------------

class QtFrameScheduler:
    """Runs redraw callbacks on the next tick of a single-shot QTimer."""

    def __init__(self, parent: Optional[QObject] = None, interval_ms: int = FRAME_INTERVAL_MS) -> None:
        self._parent = parent
        self._interval_ms = interval_ms

    def schedule(self, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setInterval(self._interval_ms)
        timer.timeout.connect(callback)
        timer.timeout.connect(timer.deleteLater)
        timer.start()
        return timer

    def cancel(self, handle: Optional[QTimer]) -> None:
        if handle is not None:
            handle.stop()
            handle.deleteLater()


# -------------------------------------------------------------------------------
# Key / modifier translation
# -------------------------------------------------------------------------------

_KEY_NAMES = {
    Qt.Key.Key_Escape: "Escape",
    Qt.Key.Key_Shift: "Shift",
    Qt.Key.Key_Delete: "Delete",
    Qt.Key.Key_Backspace: "Backspace",
    Qt.Key.Key_Up: "ArrowUp",
    Qt.Key.Key_Down: "ArrowDown",
    Qt.Key.Key_Left: "ArrowLeft",
    Qt.Key.Key_Right: "ArrowRight",
}


def to_modifiers(mods: Qt.KeyboardModifier) -> Modifier:
    out = Modifier.NONE
    if mods & Qt.KeyboardModifier.ShiftModifier:
        out |= Modifier.SHIFT
    if mods & Qt.KeyboardModifier.ControlModifier:
        out |= Modifier.CTRL
    if mods & Qt.KeyboardModifier.AltModifier:
        out |= Modifier.ALT
    if mods & Qt.KeyboardModifier.MetaModifier:
        out |= Modifier.META
    return out


def to_key_event(event: QKeyEvent) -> Optional[KeyEvent]:
    key = _KEY_NAMES.get(Qt.Key(event.key()))
    if key is None:
        key = event.text()
    if not key:
        return None
    return KeyEvent(key=key, modifiers=to_modifiers(event.modifiers()))


def to_pointer_state(
    pos: QPointF,
    buttons: Qt.MouseButton,
    mods: Qt.KeyboardModifier,
    click_count: int = 1,
) -> PointerEvent:
    """Only the left button counts as held."""
    return PointerEvent(
        x=pos.x(),
        y=pos.y(),
        buttons=1 if buttons & Qt.MouseButton.LeftButton else 0,
        modifiers=to_modifiers(mods),
        click_count=click_count,
    )


def to_pointer_event(event: QMouseEvent, click_count: int = 1) -> PointerEvent:
    return to_pointer_state(event.position(), event.buttons(), event.modifiers(), click_count)


# -------------------------------------------------------------------------------
# Widget
# -------------------------------------------------------------------------------

GRID_COLORS = {"minor": "#e5e7eb", "major": "#9ca3af", "zero": "#6b7280"}
SELECT_COLOR = "#2563eb"


class TimelineView(QWidget):
    """
    Drawing surface for the curve editor.

    Forwards mouse/key events to the attached editor and paints the last scene
    it rendered. Implements the editor's `Surface` protocol.
    """
    resized = Signal(float, float)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent=parent)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMouseTracking(True)
        self.setMinimumSize(320, 200)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        self.editor: Editor | None = None
        self._scene: Scene | None = None

    # ------------------------------------------------------------------------------
    # Surface protocol
    # ------------------------------------------------------------------------------

    def surface_size(self) -> tuple[float, float]:
        return float(self.width()), float(self.height())

    def render(self, scene: Scene) -> None:  # type: ignore[override]
        self._scene = scene
        self.update()

    def attach(self, editor: Editor | None) -> None:
        self.editor = editor

    # ------------------------------------------------------------------------------
    # Qt events
    # ------------------------------------------------------------------------------

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        if self.editor is not None and not self.editor.is_destroyed:
            self.editor.resize(self.width(), self.height())
        self.resized.emit(float(self.width()), float(self.height()))

    def mousePressEvent(self, event: QMouseEvent) -> None:
        if self.editor is not None and event.button() == Qt.MouseButton.LeftButton:
            self.editor.on_pointer_down(to_pointer_event(event))
        super().mousePressEvent(event)

    def mouseDoubleClickEvent(self, event: QMouseEvent) -> None:
        if self.editor is not None and event.button() == Qt.MouseButton.LeftButton:
            self.editor.on_pointer_down(to_pointer_event(event, click_count=2))

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        if self.editor is not None:
            self.editor.on_pointer_move(to_pointer_event(event))
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if self.editor is not None and event.button() == Qt.MouseButton.LeftButton:
            self.editor.on_pointer_up(to_pointer_event(event))
        super().mouseReleaseEvent(event)

    def leaveEvent(self, event) -> None:
        if self.editor is not None:
            # leave events carry no pointer state
            pos = QPointF(self.mapFromGlobal(QCursor.pos()))
            self.editor.on_pointer_leave(
                to_pointer_state(pos, QApplication.mouseButtons(), QApplication.keyboardModifiers())
            )
        super().leaveEvent(event)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        key_event = to_key_event(event)
        if self.editor is None or key_event is None or event.isAutoRepeat() and key_event.key == "Shift":
            super().keyPressEvent(event)
            return
        if not self.editor.on_key_down(key_event):
            super().keyPressEvent(event)

    def keyReleaseEvent(self, event: QKeyEvent) -> None:
        key_event = to_key_event(event)
        if self.editor is None or key_event is None or event.isAutoRepeat():
            super().keyReleaseEvent(event)
            return
        if not self.editor.on_key_up(key_event):
            super().keyReleaseEvent(event)

    def focusInEvent(self, event) -> None:
        super().focusInEvent(event)
        if self.editor is not None:
            self.editor.draw()

    def focusOutEvent(self, event) -> None:
        super().focusOutEvent(event)
        if self.editor is not None:
            self.editor.draw()

    # ------------------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------------------

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), QColor("#f9fafb"))

        scene = self._scene
        if scene is None:
            painter.end()
            return

        left, top, right, bottom = scene.plot_rect
        plot = QRectF(left, top, right - left, bottom - top)
        painter.fillRect(plot, QColor("white"))

        painter.save()
        painter.setClipRect(plot)
        self._paint_grid(painter, scene, plot)
        for path in scene.background_curves:
            self._paint_curve(painter, path.points, path.color, 1.0, alpha=0.4)
        if scene.curve is not None:
            self._paint_samples(painter, scene, scene.curve.color)
            self._paint_curve(painter, scene.curve.points, scene.curve.color, 3.0)
        self._paint_handles(painter, scene)
        painter.restore()

        border = QPen(QColor(SELECT_COLOR if self.hasFocus() else "#111827"), 2 if self.hasFocus() else 1)
        painter.setPen(border)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(plot)

        self._paint_dots(painter, scene)
        self._paint_add_marker(painter, scene, plot)
        painter.end()

    def _paint_grid(self, painter: QPainter, scene: Scene, plot: QRectF) -> None:
        for line in scene.grid_x:
            painter.setPen(QPen(QColor(GRID_COLORS[line.kind]), 1))
            painter.drawLine(QPointF(line.position, plot.top()), QPointF(line.position, plot.bottom()))
        for line in scene.grid_y:
            painter.setPen(QPen(QColor(GRID_COLORS[line.kind]), 1))
            painter.drawLine(QPointF(plot.left(), line.position), QPointF(plot.right(), line.position))

        painter.setFont(QFont("sans-serif", 9))
        painter.setPen(QColor("#9ca3af"))
        for pos, text in scene.axis_labels:
            painter.drawText(QPointF(pos.x, pos.y + 4), text)

    @staticmethod
    def _paint_curve(painter: QPainter, points, color: str, width: float, alpha: float = 1.0) -> None:
        if len(points) < 2:
            return
        path = QPainterPath(QPointF(*points[0]))
        for x, y in points[1:]:
            path.lineTo(x, y)
        c = QColor(color)
        c.setAlphaF(alpha)
        painter.setPen(QPen(c, width))
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawPath(path)

    @staticmethod
    def _paint_samples(painter: QPainter, scene: Scene, color: str) -> None:
        if not scene.samples:
            return
        pen = QPen(QColor(color), 1, Qt.PenStyle.DashLine)
        painter.setPen(pen)
        for s in scene.samples:
            painter.drawLine(QPointF(s.x, scene.baseline_y), QPointF(s.x, s.y))

        # Sample area
        fill = QColor(color)
        fill.setAlphaF(0.1)
        left, _, right, _ = scene.plot_rect
        poly = QPolygonF([QPointF(left, scene.baseline_y)] + [QPointF(s.x, s.y) for s in scene.samples]
                         + [QPointF(right, scene.baseline_y)])
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(fill))
        painter.drawPolygon(poly)

    @staticmethod
    def _paint_handles(painter: QPainter, scene: Scene) -> None:
        painter.setPen(QPen(QColor(SELECT_COLOR), 1, Qt.PenStyle.DashLine))
        for anchor, handle in scene.handles:
            painter.drawLine(QPointF(anchor.x, anchor.y), QPointF(handle.x, handle.y))
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QColor(SELECT_COLOR))
        for _, h in scene.handles:
            painter.drawPolygon(QPolygonF([
                QPointF(h.x, h.y - 5), QPointF(h.x + 5, h.y), QPointF(h.x, h.y + 5), QPointF(h.x - 5, h.y),
            ]))

    @staticmethod
    def _paint_dots(painter: QPainter, scene: Scene) -> None:
        for dot in scene.dots:
            p = QPointF(dot.position.x, dot.position.y)
            painter.setPen(QPen(QColor("black"), 1.5))
            painter.setBrush(QColor("white"))
            if dot.type == DotType.CORNER:
                painter.drawRect(QRectF(p.x() - 5, p.y() - 5, 10, 10))
            else:
                painter.drawEllipse(p, 6, 6)
            if dot.selected:
                painter.setPen(Qt.PenStyle.NoPen)
                painter.setBrush(QColor(SELECT_COLOR))
                painter.drawEllipse(p, 3, 3)

    @staticmethod
    def _paint_add_marker(painter: QPainter, scene: Scene, plot: QRectF) -> None:
        marker: Point | None = scene.add_marker
        if marker is None:
            return
        painter.setPen(QPen(QColor(SELECT_COLOR), 1))
        painter.drawLine(QPointF(marker.x, plot.top()), QPointF(marker.x, plot.bottom()))
        painter.setBrush(QColor("white"))
        painter.drawEllipse(QPointF(marker.x, marker.y), 7, 7)
        painter.setBrush(QColor(SELECT_COLOR))
        painter.drawEllipse(QPointF(marker.x, marker.y), 3, 3)
