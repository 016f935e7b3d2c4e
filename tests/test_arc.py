import math

import pytest

from pattern_core import (
    Point,
    arc_midpoint,
    arc_path_d,
    arc_radius,
    is_clockwise_minor_arc,
    is_point_near_arc,
    is_point_on_arc_sweep,
    normalize_arc,
    project_point_to_circle,
    resolve_arc_sweep,
)


def _arc(start=(10, 0), end=(0, 10), large_arc=False, clockwise=True, center=(0, 0)):
    return {
        'id': 'arc-1',
        'kind': 'arc',
        'center': Point(*center),
        'start': Point(*start),
        'end': Point(*end),
        'clockwise': clockwise,
        'large_arc': large_arc,
        'color': '#111',
        'stroke_width': 2,
    }


def test_clockwise_minor_arc():
    assert is_clockwise_minor_arc(Point(0, 0), Point(10, 0), Point(0, 10))
    assert not is_clockwise_minor_arc(Point(0, 0), Point(0, 10), Point(10, 0))


def test_resolve_sweep_minor_and_major():
    _, clockwise, delta = resolve_arc_sweep(_arc())
    assert clockwise
    assert delta == pytest.approx(math.pi / 2)

    _, clockwise, delta = resolve_arc_sweep(_arc(large_arc=True))
    assert not clockwise
    assert delta == pytest.approx(3 * math.pi / 2)


def test_normalize_reprojects_onto_larger_radius():
    normalized = normalize_arc(_arc(end=(0, 12), clockwise=False))
    assert arc_radius(normalized) == pytest.approx(12)
    assert normalized['start'].x == pytest.approx(12)
    assert normalized['end'].y == pytest.approx(12)
    assert normalized['clockwise'] is True


def test_normalize_keeps_minor_direction_for_large_arcs():
    normalized = normalize_arc(_arc(large_arc=True, clockwise=False))
    # clockwise describes the minor arc, large_arc flips the traced sweep
    assert normalized['clockwise'] is True
    assert normalized['large_arc'] is True


def test_normalize_does_not_mutate():
    arc = _arc(end=(0, 12))
    normalize_arc(arc)
    assert arc['end'] == (0, 12)


def test_arc_midpoint_follows_sweep():
    mid = arc_midpoint(_arc())
    assert mid.x == pytest.approx(10 / math.sqrt(2))
    assert mid.y == pytest.approx(10 / math.sqrt(2))

    mid = arc_midpoint(_arc(large_arc=True))
    assert mid.x == pytest.approx(-10 / math.sqrt(2))
    assert mid.y == pytest.approx(-10 / math.sqrt(2))


def test_point_on_arc_sweep():
    arc = _arc()
    assert is_point_on_arc_sweep(Point(7.0711, 7.0711), arc)
    assert is_point_on_arc_sweep(Point(10, 0), arc)
    assert not is_point_on_arc_sweep(Point(-7.0711, -7.0711), arc)
    assert is_point_on_arc_sweep(Point(-7.0711, -7.0711), _arc(large_arc=True))


def test_point_near_arc_body_and_endpoints():
    arc = _arc()
    assert is_point_near_arc(Point(7.5, 7.5), arc, 1)
    assert not is_point_near_arc(Point(-7.5, -7.5), arc, 1)
    # just past the start, off the sweep but close to the endpoint
    assert is_point_near_arc(Point(10.5, -0.4), arc, 1)


def test_project_point_to_circle():
    assert project_point_to_circle(Point(0, 0), 5, Point(10, 0)) == (5, 0)
    assert project_point_to_circle(Point(1, 1), 5, Point(1, 1)) == (6, 1)
    assert project_point_to_circle(Point(1, 1), 0, Point(4, 4)) == (1, 1)


def test_arc_path_d():
    assert arc_path_d(_arc()) == 'M 10 0 A 10 10 0 0 1 0 10'
    assert arc_path_d(_arc(large_arc=True)) == 'M 10 0 A 10 10 0 1 0 0 10'


def test_arc_path_d_uses_quantized_numbers():
    arc = _arc(start=(1 / 3, 0), end=(0, 1 / 3))
    assert arc_path_d(arc) == 'M 0.3333 0 A 0.3333 0.3333 0 0 1 0 0.3333'
    assert arc_path_d(arc, precision=2) == 'M 0.33 0 A 0.33 0.33 0 0 1 0 0.33'
