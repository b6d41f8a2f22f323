import logging

import pytest

from conftest import FakeSurface, ManualScheduler, surface_point
from keyframecurve.config import ZOOM_STEPS
from keyframecurve.model import curve as curve_ops
from keyframecurve.model.editor import EditorState, KeyEvent, Modifier, PointerEvent, create_editor
from keyframecurve.model.geometry_primitives import DotType, Point, create_corner
from keyframecurve.model.layers import Layer, LayerManager, LayerSet


def press(editor, x, y, **kwargs):
    p = surface_point(editor, x, y)
    editor.on_pointer_down(PointerEvent(p.x, p.y, buttons=1, **kwargs))


def move(editor, x, y, buttons=1):
    p = surface_point(editor, x, y)
    editor.on_pointer_move(PointerEvent(p.x, p.y, buttons=buttons))


def key(editor, name, modifiers=Modifier.NONE):
    return editor.on_key_down(KeyEvent(name, modifiers))


def editor_with_dots(surface, points, snap=False):
    layer = Layer(prop="opacity", dots=[create_corner(x, y) for x, y in points])
    editor = create_editor(surface, LayerManager(LayerSet([layer])))
    editor.set_snap_to_grid(snap)
    return editor


@pytest.fixture
def changes(editor):
    calls = []
    editor.on_change = lambda: calls.append(1)
    return calls


# ------------------------------------------------------------------------------
# Drawing
# ------------------------------------------------------------------------------

def test_create_editor_draws_first_frame(editor, surface):
    assert len(surface.scenes) == 1
    assert editor.frames_drawn == 1


def test_redraws_are_coalesced(surface, manager):
    scheduler = ManualScheduler()
    editor = create_editor(surface, manager, scheduler)
    editor.draw()
    editor.zoom_out()
    editor.draw()
    assert len(scheduler.pending) == 1
    assert surface.scenes == []
    assert scheduler.flush() == 1
    assert len(surface.scenes) == 1
    editor.draw()
    assert len(scheduler.pending) == 1


def test_create_editor_accepts_layer_set(surface):
    editor = create_editor(surface, LayerSet([Layer(prop="opacity")]))
    assert editor.manager.active_layer.prop == "opacity"
    assert create_editor(FakeSurface()).manager.active_layer.prop == "translateX"


def test_destroy_cancels_pending_frame(surface, manager):
    scheduler = ManualScheduler()
    editor = create_editor(surface, manager, scheduler)
    editor.destroy()
    assert scheduler.pending == {}
    editor.draw()
    assert scheduler.pending == {}
    assert editor.is_destroyed


def test_destroyed_editor_rejects_use(editor, caplog):
    editor.destroy()
    with caplog.at_level(logging.WARNING), pytest.raises(AssertionError):
        editor.on_pointer_down(PointerEvent(0, 0))
    assert "destroyed editor" in caplog.text


# ------------------------------------------------------------------------------
# Selection and dragging
# ------------------------------------------------------------------------------

def test_press_selects_dot(editor, changes):
    press(editor, 50, 50)
    assert editor.selected_index == 1
    assert changes
    selected = editor.get_selected_dot()
    assert (selected.x, selected.y) == (50, 50)
    # a copy, not the live dot
    selected.x = 0
    assert editor.dots[1].x == 50


def test_press_on_empty_space_clears_selection(editor):
    press(editor, 50, 50)
    press(editor, 75, 10)
    assert editor.selected_index is None


def test_drag_threshold(editor):
    press(editor, 50, 50)
    p = surface_point(editor, 50, 50)
    editor.on_pointer_move(PointerEvent(p.x + 1, p.y, buttons=1))
    assert editor.dots[1].x == 50
    assert not editor.is_dragging


def test_drag_dot_moves_handles(editor, changes):
    states = []
    editor.on_dragging_state_changed = states.append

    press(editor, 50, 50)
    move(editor, 55, 60)
    dot = editor.dots[1]
    assert dot.x == pytest.approx(55)
    assert dot.y == pytest.approx(60)
    assert dot.h1.x == pytest.approx(45)
    assert dot.h2.y == pytest.approx(60)
    assert editor.is_dragging
    assert changes

    editor.on_pointer_up()
    assert states == [True, False]
    assert editor.state == EditorState.DEFAULT


def test_drag_clamps_between_neighbours(editor):
    press(editor, 50, 50)
    move(editor, 100, 50)
    assert editor.dots[1].x == pytest.approx(99)
    move(editor, -20, 50)
    assert editor.dots[1].x == pytest.approx(1)
    assert [d.x for d in editor.dots] == sorted(d.x for d in editor.dots)


def test_drag_last_dot_respects_domain(editor):
    press(editor, 100, 100)
    move(editor, 140, 100)
    assert editor.dots[2].x == pytest.approx(100)


def test_drag_with_snap_rounds(editor):
    editor.set_snap_to_grid(True)
    press(editor, 50, 50)
    move(editor, 62.4, 57.7)
    assert (editor.dots[1].x, editor.dots[1].y) == (62, 58)


def test_vertical_drag_keeps_x_of_crowded_dot(surface):
    editor = editor_with_dots(surface, [(0, 0), (10, 20), (10.3, 30), (100, 100)])
    press(editor, 10, 20)
    move(editor, 10, 40)
    dot = editor.dots[1]
    assert (dot.x, dot.y) == (pytest.approx(10), pytest.approx(40))
    assert curve_ops.is_sorted(editor.dots)


def test_snapped_drag_stays_clear_of_crowded_neighbour(surface):
    editor = editor_with_dots(surface, [(0, 0), (9.6, 20), (10.3, 30), (100, 100)], snap=True)
    press(editor, 9.6, 20)
    move(editor, 9.6, 40)
    dot = editor.dots[1]
    # rounding to 10 would come within the gap of 10.3
    assert (dot.x, dot.y) == (pytest.approx(9.6), 40)
    assert curve_ops.is_sorted(editor.dots)


def test_drag_handle_mirrors(editor):
    press(editor, 60, 50)  # h2 of the round dot
    assert editor.selected_index == 1
    move(editor, 70, 60)
    dot = editor.dots[1]
    assert (dot.h2.x, dot.h2.y) == (pytest.approx(70), pytest.approx(60))
    assert (dot.h1.x, dot.h1.y) == (pytest.approx(30), pytest.approx(40))
    assert (dot.x, dot.y) == (50, 50)


def test_corner_handles_are_not_hit(editor):
    press(editor, 10, 0)  # h2 of the first (corner) dot
    assert editor.selected_index is None


def test_move_without_buttons_ends_drag(editor):
    press(editor, 50, 50)
    move(editor, 60, 50)
    move(editor, 70, 50, buttons=0)
    assert not editor.is_dragging
    move(editor, 80, 50)
    assert editor.dots[1].x == pytest.approx(60)


def test_leaving_with_button_held_keeps_drag(editor):
    press(editor, 50, 50)
    move(editor, 60, 50)
    p = surface_point(editor, 60, 50)
    editor.on_pointer_leave(PointerEvent(p.x, p.y, buttons=1))
    assert editor.is_dragging
    editor.on_pointer_leave(PointerEvent(p.x, p.y, buttons=0))
    assert not editor.is_dragging


def test_escape_ends_drag(editor):
    press(editor, 50, 50)
    move(editor, 60, 50)
    assert key(editor, "Escape")
    assert not editor.is_dragging


def test_alt_click_toggles_type(editor):
    press(editor, 0, 0, modifiers=Modifier.ALT)
    assert editor.dots[0].type == DotType.ROUND
    assert editor.selected_index == 0
    move(editor, 30, 30)
    assert editor.dots[0].x == 0


def test_double_click_toggles_type(editor):
    press(editor, 50, 50, click_count=2)
    assert editor.dots[1].type == DotType.CORNER


def test_hit_test_with_no_dots(surface):
    manager = LayerManager(LayerSet([Layer(prop="opacity", dots=[])]))
    editor = create_editor(surface, manager)
    press(editor, 50, 50)
    assert editor.selected_index is None
    assert editor.get_samples() == []


# ------------------------------------------------------------------------------
# Adding
# ------------------------------------------------------------------------------

def test_adding_snaps_to_curve(editor, changes):
    states = []
    editor.on_adding_state_changed = states.append
    editor.begin_adding_dot(surface_point(editor, 25, 90))
    assert editor.is_adding
    preview = editor.adding_preview()
    assert preview.x == pytest.approx(25)
    assert preview.y < 50
    assert not changes

    press(editor, 25, 90)
    assert [d.x for d in editor.dots] == [0, pytest.approx(25), 50, 100]
    assert editor.dots[1].type == DotType.CORNER
    assert editor.dots[1].y == pytest.approx(preview.y)
    assert editor.selected_index == 1
    assert editor.state == EditorState.DEFAULT
    assert states == [True, False]


def test_adding_outside_curve_follows_pointer(surface):
    layer = Layer(prop="opacity", dots=[create_corner(20, 0), create_corner(80, 100)])
    editor = create_editor(surface, LayerManager(LayerSet([layer])))
    editor.set_snap_to_grid(False)
    editor.begin_adding_dot()
    move(editor, 10, 30, buttons=0)
    preview = editor.adding_preview()
    assert (preview.x, preview.y) == (pytest.approx(10), pytest.approx(30))
    press(editor, 10, 30)
    assert editor.dots[0].x == pytest.approx(10)


def test_adding_with_snap_rounds(editor):
    editor.set_snap_to_grid(True)
    editor.begin_adding_dot()
    press(editor, 30.4, 0)
    assert editor.dots[1].x == 30
    assert editor.dots[1].y == float(round(editor.dots[1].y))


def test_adding_refuses_existing_x(editor):
    editor.begin_adding_dot()
    press(editor, 50, 10)
    assert len(editor.dots) == 3
    assert not editor.is_adding


def test_adding_refuses_x_next_to_a_dot(editor):
    editor.begin_adding_dot()
    press(editor, 50.5, 10)
    assert [d.x for d in editor.dots] == [0, 50, 100]
    assert not editor.is_adding


def test_adding_preview_does_not_touch_model(editor, changes):
    before = [d.copy() for d in editor.dots]
    editor.begin_adding_dot()
    move(editor, 30, 30, buttons=0)
    move(editor, 70, 10, buttons=0)
    assert editor.dots == before
    assert changes == []
    assert editor.build_scene().add_marker is not None


def test_escape_cancels_adding(editor):
    editor.begin_adding_dot(surface_point(editor, 30, 30))
    key(editor, "Escape")
    assert not editor.is_adding
    assert len(editor.dots) == 3
    assert editor.build_scene().add_marker is None


def test_leaving_surface_cancels_adding(editor):
    editor.begin_adding_dot(surface_point(editor, 30, 30))
    editor.on_pointer_leave()
    assert not editor.is_adding
    assert len(editor.dots) == 3


def test_shift_chord_adds_at_pointer(editor):
    move(editor, 30, 30, buttons=0)
    key(editor, "Shift", Modifier.SHIFT)
    assert editor.is_adding
    assert editor.adding_preview().x == pytest.approx(30)
    assert editor.on_key_up(KeyEvent("Shift"))
    assert not editor.is_adding


# ------------------------------------------------------------------------------
# Keyboard
# ------------------------------------------------------------------------------

def test_selection_navigation(editor):
    key(editor, ".")
    assert editor.selected_index == 0
    key(editor, ".")
    key(editor, ".")
    key(editor, ".")
    assert editor.selected_index == 2
    key(editor, ",")
    assert editor.selected_index == 1
    editor.clear_selection()
    key(editor, ",")
    assert editor.selected_index == 2


def test_arrow_nudges(editor):
    press(editor, 50, 50)
    key(editor, "ArrowRight")
    key(editor, "ArrowUp")
    assert (editor.dots[1].x, editor.dots[1].y) == (51, 51)
    key(editor, "ArrowLeft", Modifier.CTRL)
    key(editor, "ArrowDown", Modifier.CTRL)
    assert (editor.dots[1].x, editor.dots[1].y) == (41, 41)
    assert editor.dots[1].h2.x == 51


def test_arrow_nudge_cannot_cross_neighbour(editor):
    press(editor, 50, 50)
    for _ in range(10):
        key(editor, "ArrowRight", Modifier.CTRL)
    assert editor.dots[1].x == 99


@pytest.mark.parametrize("snap", [False, True])
def test_vertical_nudge_keeps_x_of_crowded_dot(surface, snap):
    editor = editor_with_dots(surface, [(0, 0), (10, 20), (10.3, 30), (10.6, 40), (100, 100)], snap=snap)
    for _ in range(3):
        key(editor, ".")
    assert editor.selected_index == 2

    assert key(editor, "ArrowUp")
    assert (editor.dots[2].x, editor.dots[2].y) == (10.3, 31)
    assert curve_ops.is_sorted(editor.dots)


def test_crowded_dot_can_move_away_but_not_closer(surface):
    editor = editor_with_dots(surface, [(0, 0), (10, 20), (10.3, 30), (100, 100)])
    for _ in range(3):
        key(editor, ".")
    assert not editor.nudge_selected(-1, 0)
    assert editor.dots[2].x == 10.3
    assert editor.nudge_selected(1, 0)
    assert editor.dots[2].x == pytest.approx(11.3)


def test_nudge_without_selection_is_noop(editor, changes):
    assert not editor.nudge_selected(1, 1)
    assert changes == []


def test_toggle_key(editor):
    press(editor, 0, 0)
    key(editor, "c")
    assert editor.dots[0].type == DotType.ROUND


def test_delete_reselects_previous(editor):
    press(editor, 100, 100)
    key(editor, "Delete")
    assert [d.x for d in editor.dots] == [0, 50]
    assert editor.selected_index == 1
    key(editor, "Backspace")
    assert [d.x for d in editor.dots] == [0]
    assert editor.selected_index == 0
    key(editor, "Delete")
    assert editor.dots == []
    assert editor.selected_index is None
    assert editor.get_samples() == []
    assert not editor.delete_selected_dot()


def test_delete_first_keeps_index_zero(editor):
    press(editor, 0, 0)
    editor.delete_selected_dot()
    assert editor.selected_index == 0
    assert editor.dots[0].x == 50


def test_unhandled_key(editor):
    assert not key(editor, "q")


# ------------------------------------------------------------------------------
# Inspector edits
# ------------------------------------------------------------------------------

def test_update_selected_dot(editor, changes):
    press(editor, 50, 50)
    assert editor.update_selected_dot(x=120, y=30, type=DotType.CORNER, h1=Point(1, 2))
    dot = editor.dots[1]
    assert (dot.x, dot.y, dot.type) == (99, 30, DotType.CORNER)
    assert dot.h1 == Point(1, 2)
    assert changes


def test_update_selected_dot_validation(editor):
    assert not editor.update_selected_dot(x=5)
    press(editor, 50, 50)
    with pytest.raises(TypeError):
        editor.update_selected_dot(colour="red")


# ------------------------------------------------------------------------------
# Zoom, samples and layers
# ------------------------------------------------------------------------------

def test_zoom_invalidates_every_layer(surface, manager, scheduler):
    editor = create_editor(surface, manager, scheduler)
    assert editor.add_layer() is not None
    for layer in manager.layers:
        layer.samples()

    assert editor.zoom_out() == ZOOM_STEPS[1]
    assert not any(layer.has_cached_samples for layer in manager.layers)

    # the next frame resamples the active layer only
    scheduler.flush()
    assert manager.active_layer.has_cached_samples
    assert sum(layer.has_cached_samples for layer in manager.layers) == 1


def test_zoom_steps(editor):
    assert editor.zoom_in() == ZOOM_STEPS[0]
    assert editor.zoom_out() == ZOOM_STEPS[1]
    assert editor.set_zoom(1e9) == ZOOM_STEPS[-1]
    assert key(editor, "=")
    assert editor.mapper.max_y == ZOOM_STEPS[-2]


def test_editing_invalidates_active_samples(editor):
    before = editor.get_samples()
    press(editor, 50, 50)
    key(editor, "ArrowUp", Modifier.CTRL)
    after = editor.get_samples()
    assert after != before


def test_set_sample_count(editor, changes):
    assert editor.set_sample_count(200) == 50
    assert len(editor.get_samples()) == 50
    assert changes


def test_layer_switch_clears_selection(editor):
    press(editor, 50, 50)
    layer = editor.add_layer("opacity")
    assert layer is not None
    assert editor.selected_index is None
    assert editor.manager.active_id == layer.id

    key(editor, "[")
    assert editor.manager.active_layer.prop == "translateX"
    key(editor, "]")
    assert editor.manager.active_layer.prop == "opacity"

    assert editor.delete_layer(layer.id)
    assert not editor.delete_layer(editor.manager.active_id)


def test_layer_proxies(editor, changes):
    assert editor.set_layer_units("px") == "px"
    editor.set_layer_flipped(True)
    assert editor.manager.active_layer.is_flipped
    assert editor.set_layer_sample_count(4) == 4
    assert editor.set_layer_property("rotate")
    assert editor.manager.active_layer.prop == "rotate"
    assert len(changes) == 4


def test_active_layer_switch_ends_drag(editor):
    other = editor.add_layer("opacity")
    editor.set_active_layer(editor.manager.layers[0].id)
    press(editor, 50, 50)
    move(editor, 60, 50)
    editor.set_active_layer(other.id)
    assert not editor.is_dragging
    assert editor.selected_index is None


# ------------------------------------------------------------------------------
# Scene
# ------------------------------------------------------------------------------

def test_scene_content(editor, surface):
    editor.add_layer("opacity")
    editor.set_active_layer(editor.manager.layers[0].id)
    press(editor, 50, 50)
    scene = surface.last_scene

    assert len(scene.dots) == 3
    assert [d.selected for d in scene.dots] == [False, True, False]
    assert len(scene.handles) == 2
    assert len(scene.background_curves) == 1
    assert scene.curve is not None and scene.curve.points.shape[1] == 2
    assert len(scene.samples) == 10
    assert len(scene.grid_x) == 11
    assert any(line.kind == "zero" for line in scene.grid_y)
    assert ("100%" in [text for _, text in scene.axis_labels])


def test_scene_without_axis_labels(editor, surface):
    editor.set_label_y_axis(False)
    assert surface.last_scene.axis_labels == []


def test_resize_relayouts(editor, surface):
    editor.resize(520, 240)
    assert editor.mapper.px_per_x == pytest.approx(5)
    assert surface.last_scene.width == 520
