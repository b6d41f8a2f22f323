from __future__ import annotations

from typing import Callable

import pytest

from keyframecurve.model.coordinates import CoordinateMapper
from keyframecurve.model.editor import Editor, Scene, create_editor
from keyframecurve.model.geometry_primitives import Point, create_corner, create_round
from keyframecurve.model.layers import Layer, LayerManager, LayerSet

SURFACE_WIDTH = 1020.0
SURFACE_HEIGHT = 240.0


class FakeSurface:
    """Surface double that keeps every rendered scene."""

    def __init__(self, width: float = SURFACE_WIDTH, height: float = SURFACE_HEIGHT) -> None:
        self.width = width
        self.height = height
        self.scenes: list[Scene] = []

    def surface_size(self) -> tuple[float, float]:
        return self.width, self.height

    def render(self, scene: Scene) -> None:
        self.scenes.append(scene)

    @property
    def last_scene(self) -> Scene:
        return self.scenes[-1]


class ManualScheduler:
    """Frame clock that only runs callbacks when `flush()` is called."""

    def __init__(self) -> None:
        self._next = 0
        self.pending: dict[int, Callable[[], None]] = {}

    def schedule(self, callback: Callable[[], None]) -> int:
        self._next += 1
        self.pending[self._next] = callback
        return self._next

    def cancel(self, handle: int) -> None:
        self.pending.pop(handle, None)

    def flush(self) -> int:
        callbacks = list(self.pending.values())
        self.pending.clear()
        for cb in callbacks:
            cb()
        return len(callbacks)


@pytest.fixture
def mapper() -> CoordinateMapper:
    return CoordinateMapper(SURFACE_WIDTH, SURFACE_HEIGHT)


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def seed_layer() -> Layer:
    """translateX layer with a corner, a round dot and a corner."""
    round_dot = create_round(50.0, 50.0)
    return Layer(
        prop="translateX",
        dots=[create_corner(0.0, 0.0), round_dot, create_corner(100.0, 100.0)],
    )


@pytest.fixture
def manager(seed_layer: Layer) -> LayerManager:
    return LayerManager(LayerSet([seed_layer]))


@pytest.fixture
def editor(surface: FakeSurface, manager: LayerManager) -> Editor:
    ed = create_editor(surface, manager)
    ed.set_snap_to_grid(False)
    return ed


def surface_point(editor: Editor, x: float, y: float) -> Point:
    """Surface position of a user-space point for the editor's current layout."""
    return editor.mapper.to_surface(Point(x, y))
