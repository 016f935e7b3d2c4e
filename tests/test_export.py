import pytest

from pattern_core import DEFAULT_STROKE_WIDTH, Point, get_tile_polygon
from pattern_export import (
    build_preview_svg,
    build_single_tile_svg,
    build_tiled_svg,
    clip_primitive,
    collect_tiled_fragments,
    convex_polygon_edges,
    format_number,
    fragment_path_d,
    pattern_bounds,
)
from pattern_project import get_preset, make_line


def _line(a, b, id='l1', color='#111111'):
    return {'id': id, 'kind': 'line', 'a': Point(*a), 'b': Point(*b), 'color': color,
            'stroke_width': 2}


def _circle(center, radius, id='c1'):
    return {'id': id, 'kind': 'circle', 'center': Point(*center), 'radius': radius,
            'color': '#111111', 'stroke_width': 2}


def _project(primitives, size=50, shape='square'):
    return {'tile': {'shape': shape, 'size': size}, 'primitives': primitives}


ONE_CELL = {'columns': 1, 'rows': 1}


def test_line_inside_one_cell_exports_one_path():
    svg = build_tiled_svg(_project([_line((-20, 0), (20, 0))]), ONE_CELL)
    assert svg.count('<path') == 1
    assert '<line' not in svg
    assert 'clip' not in svg
    assert 'M -20 0 L 20 0' in svg


def test_shared_boundary_is_drawn_once():
    project = _project([_line((10, -10), (10, 10))], size=10)
    pattern = {'columns': 2, 'rows': 1}
    assert len(collect_tiled_fragments(project, pattern)) == 4
    svg = build_tiled_svg(project, pattern)
    assert svg.count('<path') == 3


def test_small_circle_stays_a_circle():
    svg = build_tiled_svg(_project([_circle((0, 0), 8)], size=120), ONE_CELL)
    assert svg.count('<circle') == 1
    assert '<path' not in svg


def test_large_circle_is_cut_into_arcs():
    svg = build_tiled_svg(_project([_circle((0, 0), 60)]), ONE_CELL)
    assert '<circle' not in svg
    assert svg.count('<path') >= 4
    assert ' A 60 60 ' in svg


def test_background_rectangle():
    project = _project([_line((-20, 0), (20, 0))])
    assert 'fill="#ffffff"' in build_tiled_svg(project, ONE_CELL, background='#ffffff')
    assert '<rect' not in build_tiled_svg(project, ONE_CELL)


def test_unjoined_lines_stay_separate():
    project = _project([_line((-20, 0), (0, 0)), _line((0, 0), (20, 0), id='l2')])
    assert build_tiled_svg(project, ONE_CELL).count('<path') == 1
    svg = build_tiled_svg(project, ONE_CELL, params={'join_lines': False})
    assert svg.count('<path') == 2


def test_single_tile_arc_export():
    arc = {'id': 'a1', 'kind': 'arc', 'center': Point(0, 0), 'start': Point(10, 0),
           'end': Point(0, 10), 'clockwise': True, 'large_arc': False, 'color': '#111111',
           'stroke_width': 2}
    svg = build_single_tile_svg(_project([arc]))
    assert '<path' in svg
    assert 'M 10 0 A 10 10 0 0 1 0 10' in svg


def test_hex_export_has_literal_geometry():
    project = _project([_line((-30, 0), (30, 0)), _circle((0, 0), 5)], size=20,
                       shape='hex-pointy')
    svg = build_tiled_svg(project, {'columns': 2, 'rows': 2})
    assert '<path' in svg
    assert svg.count('<circle') == 4
    assert 'clip' not in svg


def test_preview_uses_clip_paths():
    svg = build_preview_svg(_project([_line((-20, 0), (20, 0))]), {'columns': 2, 'rows': 1})
    assert 'clip-path' in svg
    assert '<clipPath' in svg


def test_clip_primitive_rejects_unknown_kind():
    with pytest.raises(ValueError):
        clip_primitive({'kind': 'spline'}, [])


def test_format_number():
    assert format_number(20.0) == '20'
    assert format_number(12.5) == '12.5'
    assert format_number(1 / 3) == '0.3333'
    assert format_number(-0.00001) == '0'
    assert format_number(2.123456, precision=2) == '2.12'


def test_fragment_path_d_for_paths():
    fragment = {'kind': 'path', 'points': [Point(0, 0), Point(1.5, 0), Point(1.5, 2)]}
    assert fragment_path_d(fragment) == 'M 0 0 L 1.5 0 L 1.5 2'


def test_pattern_bounds_square():
    bounds = pattern_bounds({'shape': 'square', 'size': 10}, {'columns': 2, 'rows': 1})
    assert bounds['min_x'] == pytest.approx(-12)
    assert bounds['min_y'] == pytest.approx(-12)
    assert bounds['width'] == pytest.approx(44)
    assert bounds['height'] == pytest.approx(24)


def test_pattern_bounds_without_margin():
    bounds = pattern_bounds({'shape': 'square', 'size': 10}, ONE_CELL, margin=0)
    assert bounds == {'min_x': -10, 'min_y': -10, 'width': 20, 'height': 20}


def test_inscribed_circle_stays_a_circle():
    svg = build_tiled_svg(_project([_circle((0, 0), 50)]), ONE_CELL)
    assert svg.count('<circle') == 1
    assert '<path' not in svg


def test_hex_star_ring_is_one_circle():
    project, _ = get_preset('hex-star')
    svg = build_tiled_svg(project, ONE_CELL)
    assert svg.count('<circle') == 1
    assert ' A ' not in svg


def test_missing_stroke_width_uses_the_shared_default():
    fragments = clip_primitive({'kind': 'line', 'a': Point(0, 0), 'b': Point(1, 0)},
                               convex_polygon_edges(get_tile_polygon({'shape': 'square',
                                                                      'size': 10})))
    assert fragments[0]['stroke_width'] == DEFAULT_STROKE_WIDTH
    assert make_line((0, 0), (1, 0))['stroke_width'] == DEFAULT_STROKE_WIDTH
