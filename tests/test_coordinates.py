import numpy as np
import pytest

from keyframecurve.config import SURFACE_INSET, ZOOM_STEPS
from keyframecurve.model.coordinates import CoordinateMapper
from keyframecurve.model.geometry_primitives import DotSpace, Point, create_round


@pytest.mark.parametrize("p", [Point(0, 0), Point(100, 100), Point(33.3, -7.25), Point(12.5, 109.9)])
def test_round_trip(mapper, p):
    back = mapper.to_user(mapper.to_surface(p))
    assert back.x == pytest.approx(p.x, abs=1e-9)
    assert back.y == pytest.approx(p.y, abs=1e-9)


def test_corners_land_on_plot_inset(mapper):
    left, top, right, bottom = mapper.plot_rect()
    assert mapper.to_surface_x(0) == SURFACE_INSET == left
    assert mapper.to_surface_x(100) == pytest.approx(right)
    # Y is inverted: max visible Y is at the top
    assert mapper.to_surface_y(mapper.max_y) == pytest.approx(top)
    assert mapper.to_surface_y(mapper.min_y) == pytest.approx(bottom)


def test_zoom_steps_and_clamping(mapper):
    assert mapper.max_y == ZOOM_STEPS[0]
    assert mapper.zoom_in() == ZOOM_STEPS[0]
    assert mapper.zoom_out() == ZOOM_STEPS[1]
    assert mapper.min_y == 100 - ZOOM_STEPS[1]
    assert mapper.set_zoom(10_000) == ZOOM_STEPS[-1]
    assert mapper.zoom_out() == ZOOM_STEPS[-1]
    assert mapper.zoom_in() == ZOOM_STEPS[-2]


def test_relayout_is_idempotent(mapper):
    mapper.set_zoom(200)
    mapper.relayout(800, 400)
    ratios = (mapper.px_per_x, mapper.px_per_y)
    mapper.relayout(800, 400)
    mapper.set_zoom(200)
    assert (mapper.px_per_x, mapper.px_per_y) == ratios


def test_degenerate_surface_has_usable_ratio():
    m = CoordinateMapper(0, 0)
    assert m.px_per_x > 0 and m.px_per_y > 0


def test_dot_conversion_tags_space(mapper):
    dot = create_round(50, 50)
    sd = mapper.dot_to_surface(dot)
    assert sd.space == DotSpace.SURFACE
    assert sd.h1.x == pytest.approx(mapper.to_surface_x(40))

    back = mapper.dot_to_user(sd)
    assert back.space == DotSpace.USER
    assert back.h2.x == pytest.approx(60)

    with pytest.raises(ValueError):
        mapper.dot_to_user(dot)
    with pytest.raises(ValueError):
        mapper.dot_to_surface(sd)


def test_surface_array_matches_scalar_conversion(mapper):
    pts = np.array([[0.0, 0.0], [25.0, 50.0], [100.0, 100.0]])
    out = mapper.to_surface_array(pts)
    for (x, y), (sx, sy) in zip(pts, out):
        assert sx == pytest.approx(mapper.to_surface_x(x))
        assert sy == pytest.approx(mapper.to_surface_y(y))


def test_clamp_to_plot(mapper):
    left, top, right, bottom = mapper.plot_rect()
    assert mapper.clamp_to_plot(-50, 1e6) == (left, bottom)
    assert mapper.clamp_to_plot(500, 100) == (500, 100)
