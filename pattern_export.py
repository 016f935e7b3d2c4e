import logging
import math

import drawsvg as draw
from shapely.geometry import LineString, Polygon, box
from shapely.ops import unary_union
from shapely.prepared import prep

from pattern_core import (
    DEFAULT_STROKE_WIDTH,
    EPSILON,
    TAU,
    Point,
    add,
    almost_equal,
    arc_path_d,
    arc_radius,
    arc_travel,
    cell_offset,
    distance,
    dot,
    format_fixed,
    format_number,
    get_tile_polygon,
    normalize_arc,
    point_at_arc_travel,
    point_key,
    polygon_edges,
    replicate_with_neighbors,
    resolve_arc_sweep,
    scale,
    segment_circle_parameters,
    subtract,
    translate_points,
)


log = logging.getLogger(__name__)

# Default export parameters (can be overridden via build_tiled_svg)
DEFAULT_EXPORT_PARAMS = {
    'precision': 4,         # digits for dedup keys and SVG numbers
    'margin': 0.2,          # blank border, as a fraction of tile size
    'join_lines': True,     # merge same-style line fragments into paths
    'outline_color': '#cbd5e1',  # tile outlines in the preview document
}

# Slack added around a cell before the cheap Shapely reject test
_CELL_PAD = 1e-3


def _params(params):
    merged = dict(DEFAULT_EXPORT_PARAMS)
    if params:
        merged.update(params)
    return merged


# ============================================================================
# CONVEX POLYGON CLIPPING
# ============================================================================

def signed_area(polygon):
    total = 0.0
    for a, b in polygon_edges(polygon):
        total += a[0] * b[1] - b[0] * a[1]
    return total / 2


def convex_polygon_edges(polygon):
    """Edges of a convex polygon as dicts with 'a', 'b' and a unit inward 'normal'.

    Winding is read from the signed area so either orientation works.
    """
    winding = 1.0 if signed_area(polygon) >= 0 else -1.0
    edges = []
    for a, b in polygon_edges(polygon):
        d = subtract(b, a)
        length = math.hypot(d.x, d.y)
        if length < EPSILON:
            continue
        normal = Point(-d.y / length * winding, d.x / length * winding)
        edges.append({'a': Point(a[0], a[1]), 'b': Point(b[0], b[1]), 'normal': normal})
    return edges


def point_in_convex_polygon(point, edges, epsilon=EPSILON):
    """Half-plane containment against every edge; the boundary counts as inside."""
    for edge in edges:
        if dot(subtract(point, edge['a']), edge['normal']) < -epsilon:
            return False
    return True


def clip_line(a, b, edges):
    """Clip segment a-b to a convex polygon, Liang-Barsky style.

    Returns the surviving (a, b) pair or None when nothing (or only a point)
    is left inside.
    """
    d = subtract(b, a)
    length = math.hypot(d.x, d.y)
    if length < EPSILON:
        return None

    t_enter, t_exit = 0.0, 1.0
    for edge in edges:
        num = dot(subtract(a, edge['a']), edge['normal'])
        den = dot(d, edge['normal'])
        if abs(den) < EPSILON:
            if num < -EPSILON:
                return None
            continue
        t = -num / den
        if den > 0:
            t_enter = max(t_enter, t)
        else:
            t_exit = min(t_exit, t)
        if t_enter > t_exit:
            return None

    if (t_exit - t_enter) * length <= EPSILON:
        return None
    start = Point(a[0], a[1]) if t_enter == 0.0 else add(a, scale(d, t_enter))
    end = Point(b[0], b[1]) if t_exit == 1.0 else add(a, scale(d, t_exit))
    return start, end


def _circle_crossings(center, radius, edges):
    """Points where the circle meets the polygon boundary."""
    points = []
    for edge in edges:
        a, b = edge['a'], edge['b']
        d = subtract(b, a)
        for t in segment_circle_parameters(a, b, center, radius, 0.0 - EPSILON, 1.0 + EPSILON):
            points.append(add(a, scale(d, t)))
    return points


def _unique_sorted(values, period=None):
    values = sorted(values)
    unique = []
    for value in values:
        if not unique or not almost_equal(value, unique[-1]):
            unique.append(value)
    if period is not None and len(unique) > 1 and unique[0] + period - unique[-1] <= EPSILON:
        unique.pop()
    return unique


def _point_at_angle(center, radius, angle):
    return Point(center[0] + radius * math.cos(angle), center[1] + radius * math.sin(angle))


def clip_circle(center, radius, edges):
    """Clip a full circle to a convex polygon.

    Returns geometry dicts: a single circle when the circle lies inside,
    touching the boundary or not, otherwise one arc per surviving angular
    gap between consecutive crossings.
    """
    if radius < EPSILON:
        return []

    angles = []
    for point in _circle_crossings(center, radius, edges):
        angle = math.atan2(point.y - center[1], point.x - center[0])
        angles.append(angle + TAU if angle < 0 else angle)
    angles = _unique_sorted(angles, period=TAU)

    whole = {'kind': 'circle', 'center': Point(center[0], center[1]), 'radius': radius}
    if not angles:
        sample = Point(center[0] + radius, center[1])
        return [whole] if point_in_convex_polygon(sample, edges) else []

    out = []
    clipped = False
    for i, a0 in enumerate(angles):
        a1 = angles[i + 1] if i + 1 < len(angles) else angles[0] + TAU
        if a1 - a0 < EPSILON:
            continue
        if not point_in_convex_polygon(_point_at_angle(center, radius, (a0 + a1) / 2), edges):
            clipped = True
            continue
        out.append({
            'kind': 'arc',
            'center': Point(center[0], center[1]),
            'radius': radius,
            'start': _point_at_angle(center, radius, a0),
            'end': _point_at_angle(center, radius, a1),
            'clockwise': True,
            'large_arc': a1 - a0 > math.pi,
        })
    # only touches the boundary, nothing was cut away
    if out and not clipped:
        return [whole]
    return out


def clip_arc(arc, edges):
    """Clip an arc primitive to a convex polygon.

    Crossings are measured as travel along the arc's own sweep, so the
    pieces keep the direction the arc is actually traced in. The returned
    arc geometry carries literal SVG flags: 'clockwise' is the traced
    direction and 'large_arc' is set for pieces longer than half a turn.
    """
    normalized = normalize_arc(arc)
    center = normalized['center']
    radius = arc_radius(normalized)
    if radius <= EPSILON:
        return []
    _, clockwise, delta = resolve_arc_sweep(normalized)
    if delta < EPSILON:
        return []

    travels = []
    for point in _circle_crossings(center, radius, edges):
        travel = arc_travel(normalized, point)
        if EPSILON < travel < delta - EPSILON:
            travels.append(travel)
    breaks = [0.0] + _unique_sorted(travels) + [delta]

    out = []
    for t0, t1 in zip(breaks, breaks[1:]):
        if t1 - t0 < EPSILON:
            continue
        if not point_in_convex_polygon(point_at_arc_travel(normalized, (t0 + t1) / 2), edges):
            continue
        start = normalized['start'] if t0 == 0.0 else point_at_arc_travel(normalized, t0)
        end = normalized['end'] if t1 == delta else point_at_arc_travel(normalized, t1)
        out.append({
            'kind': 'arc',
            'center': center,
            'radius': radius,
            'start': start,
            'end': end,
            'clockwise': clockwise,
            'large_arc': t1 - t0 > math.pi,
        })
    return out


def primitive_style(primitive):
    return {
        'color': primitive.get('color', '#000000'),
        'stroke_width': primitive.get('stroke_width', DEFAULT_STROKE_WIDTH),
    }


def clip_primitive(primitive, edges):
    """Render fragments of ``primitive`` inside the polygon described by ``edges``."""
    kind = primitive['kind']
    style = primitive_style(primitive)
    if kind == 'line':
        clipped = clip_line(primitive['a'], primitive['b'], edges)
        if clipped is None:
            return []
        return [dict({'kind': 'line', 'a': clipped[0], 'b': clipped[1]}, **style)]
    if kind == 'circle':
        pieces = clip_circle(primitive['center'], primitive['radius'], edges)
    elif kind == 'arc':
        pieces = clip_arc(primitive, edges)
    else:
        raise ValueError('Unknown primitive kind: {!r}'.format(kind))
    return [dict(piece, **style) for piece in pieces]


def _envelope(primitive):
    """Shapely geometry covering the primitive, for quick rejection."""
    kind = primitive['kind']
    if kind == 'line':
        return LineString([tuple(primitive['a']), tuple(primitive['b'])])
    if kind == 'circle':
        center, radius = primitive['center'], primitive['radius']
    else:
        center, radius = primitive['center'], arc_radius(normalize_arc(primitive))
    return box(center[0] - radius, center[1] - radius, center[0] + radius, center[1] + radius)


def _is_degenerate(primitive):
    kind = primitive['kind']
    if kind == 'line':
        return distance(primitive['a'], primitive['b']) < EPSILON
    if kind == 'circle':
        return primitive['radius'] < EPSILON
    return arc_radius(normalize_arc(primitive)) <= EPSILON


def clip_to_cell(primitives, cell_polygon):
    """Clip every primitive to one tile cell, skipping those clear of it."""
    edges = convex_polygon_edges(cell_polygon)
    region = prep(Polygon([tuple(p) for p in cell_polygon]).buffer(_CELL_PAD, join_style=2))
    fragments = []
    for primitive in primitives:
        if _is_degenerate(primitive):
            continue
        if not region.intersects(_envelope(primitive)):
            continue
        fragments.extend(clip_primitive(primitive, edges))
    return fragments


def collect_tiled_fragments(project, pattern):
    """Clipped fragments for every cell of the pattern grid.

    Each cell receives the primitives at its own offset plus the 8 periodic
    neighbour copies, so geometry crossing a tile edge shows up in the cell
    it spills into.
    """
    tile = project['tile']
    base = get_tile_polygon(tile)
    fragments = []
    for row in range(pattern['rows']):
        for col in range(pattern['columns']):
            offset = cell_offset(tile, col, row)
            copies = replicate_with_neighbors(project['primitives'], tile, offset)
            fragments.extend(clip_to_cell(copies, translate_points(base, offset)))
    return fragments


# ============================================================================
# FRAGMENT DEDUPLICATION
# ============================================================================

def fragment_key(fragment, precision=4):
    """Order-independent key: a fragment and its reversed twin hash the same."""
    style = (fragment['color'], format_fixed(fragment['stroke_width'], precision))
    kind = fragment['kind']
    if kind == 'line':
        ends = sorted((point_key(fragment['a'], precision), point_key(fragment['b'], precision)))
        return ('line',) + tuple(ends) + style
    if kind == 'circle':
        return ('circle', point_key(fragment['center'], precision),
                format_fixed(fragment['radius'], precision)) + style
    if kind == 'arc':
        start, end = fragment['start'], fragment['end']
        if not fragment['clockwise']:
            start, end = end, start
        return ('arc', point_key(fragment['center'], precision),
                format_fixed(fragment['radius'], precision),
                point_key(start, precision), point_key(end, precision),
                bool(fragment['large_arc'])) + style
    raise ValueError('Unknown fragment kind: {!r}'.format(kind))


def dedupe_fragments(fragments, precision=4):
    """Keep the first fragment for every key, preserving order."""
    seen = {}
    for fragment in fragments:
        key = fragment_key(fragment, precision)
        if key not in seen:
            seen[key] = fragment
    return list(seen.values())


# ============================================================================
# PLOTTER PATH JOINING
# ============================================================================

def _walk_trails(edges, node_points):
    """Greedy Eulerian-style walk over an undirected multigraph.

    ``edges`` is a list of (key_a, key_b) node pairs. Each trail starts at a
    node with odd unused degree when one exists, since such a node has to
    be a trail end. Returns lists of points.
    """
    adjacency = {}
    for index, (ka, kb) in enumerate(edges):
        adjacency.setdefault(ka, []).append(index)
        adjacency.setdefault(kb, []).append(index)
    used = [False] * len(edges)
    # per-node position of the first possibly unused edge
    cursor = dict.fromkeys(adjacency, 0)
    # nodes whose unused degree is odd; a dict keeps the pick order stable
    odd = {key: True for key, indices in adjacency.items() if len(indices) % 2 == 1}

    def toggle(key):
        if key in odd:
            del odd[key]
        else:
            odd[key] = True

    def next_unused(key):
        indices = adjacency[key]
        position = cursor[key]
        while position < len(indices) and used[indices[position]]:
            position += 1
        cursor[key] = position
        return indices[position] if position < len(indices) else None

    trails = []
    edge_cursor = 0
    while True:
        if odd:
            start = next(iter(odd))
        else:
            while edge_cursor < len(edges) and used[edge_cursor]:
                edge_cursor += 1
            if edge_cursor == len(edges):
                break
            start = edges[edge_cursor][0]

        current = start
        keys = [start]
        while True:
            index = next_unused(current)
            if index is None:
                break
            used[index] = True
            ka, kb = edges[index]
            toggle(ka)
            toggle(kb)
            current = kb if ka == current else ka
            if current != keys[-1]:
                keys.append(current)
        trails.append([node_points[key] for key in keys])
    return trails


def join_line_fragments(fragments, precision=4):
    """Merge same-style line fragments into multi-point path fragments.

    Only 'line' fragments take part; anything else is ignored. Each result
    is a dict of kind 'path' with a 'points' list.
    """
    groups = {}
    for fragment in fragments:
        if fragment['kind'] != 'line':
            continue
        style = (fragment['color'], format_fixed(fragment['stroke_width'], precision))
        groups.setdefault(style, []).append(fragment)

    paths = []
    for members in groups.values():
        node_points = {}
        edges = []
        for fragment in members:
            ka = point_key(fragment['a'], precision)
            kb = point_key(fragment['b'], precision)
            if ka == kb:
                continue
            node_points.setdefault(ka, fragment['a'])
            node_points.setdefault(kb, fragment['b'])
            edges.append((ka, kb))
        style = primitive_style(members[0])
        for points in _walk_trails(edges, node_points):
            paths.append(dict({'kind': 'path', 'points': points}, **style))
    return paths


def optimize_fragments(fragments, precision=4, join_lines=True):
    """Dedupe fragments and turn line fragments into plotter paths."""
    unique = dedupe_fragments(fragments, precision)
    lines = [f for f in unique if f['kind'] == 'line']
    others = [f for f in unique if f['kind'] != 'line']
    if join_lines:
        paths = join_line_fragments(lines, precision)
    else:
        paths = [dict({'kind': 'path', 'points': [f['a'], f['b']]}, **primitive_style(f))
                 for f in lines]
    log.debug('%d fragments, %d after dedup, %d line paths',
              len(fragments), len(unique), len(paths))
    return paths + others


# ============================================================================
# SVG ASSEMBLY
# ============================================================================

def fragment_path_d(fragment, precision=4):
    """SVG path data for a 'path' or 'arc' fragment."""
    def n(value):
        return format_number(value, precision)

    kind = fragment['kind']
    if kind == 'path':
        points = fragment['points']
        parts = ['M {} {}'.format(n(points[0][0]), n(points[0][1]))]
        for point in points[1:]:
            parts.append('L {} {}'.format(n(point[0]), n(point[1])))
        return ' '.join(parts)
    if kind == 'arc':
        start, end, r = fragment['start'], fragment['end'], fragment['radius']
        return 'M {} {} A {} {} 0 {} {} {} {}'.format(
            n(start[0]), n(start[1]), n(r), n(r),
            1 if fragment['large_arc'] else 0, 1 if fragment['clockwise'] else 0,
            n(end[0]), n(end[1]))
    raise ValueError('No path data for fragment kind: {!r}'.format(kind))


def fragment_element(fragment, precision=4):
    common = {
        'stroke': fragment['color'],
        'stroke_width': format_number(fragment['stroke_width'], precision),
        'fill': 'none',
    }
    kind = fragment['kind']
    if kind == 'circle':
        center = fragment['center']
        return draw.Circle(format_number(center[0], precision),
                           format_number(center[1], precision),
                           format_number(fragment['radius'], precision), **common)
    if kind == 'path':
        return draw.Path(d=fragment_path_d(fragment, precision),
                         stroke_linecap='round', stroke_linejoin='round', **common)
    return draw.Path(d=fragment_path_d(fragment, precision), **common)


def pattern_bounds(tile, pattern, margin=0.2):
    """Bounds of the union of all pattern cells, padded by margin * tile size."""
    base = get_tile_polygon(tile)
    cells = []
    for row in range(pattern['rows']):
        for col in range(pattern['columns']):
            moved = translate_points(base, cell_offset(tile, col, row))
            cells.append(Polygon([tuple(p) for p in moved]))
    min_x, min_y, max_x, max_y = unary_union(cells).bounds
    pad = tile['size'] * margin
    return {
        'min_x': min_x - pad,
        'min_y': min_y - pad,
        'width': max_x - min_x + pad * 2,
        'height': max_y - min_y + pad * 2,
    }


def _new_drawing(bounds, background, precision):
    width = round(bounds['width'], precision)
    height = round(bounds['height'], precision)
    d = draw.Drawing(width, height,
                     origin=(round(bounds['min_x'], precision), round(bounds['min_y'], precision)))
    if background:
        d.append(draw.Rectangle(format_number(bounds['min_x'], precision),
                                format_number(bounds['min_y'], precision),
                                format_number(bounds['width'], precision),
                                format_number(bounds['height'], precision),
                                fill=background))
    return d


def build_tiled_svg(project, pattern, background=None, params=None):
    """Render a project as a plotter-ready SVG string.

    Every primitive is pre-clipped to the tile cells, so the document holds
    literal geometry only: no clip paths, masks or external references.

    Args:
        project: dict with 'tile' and 'primitives'
        pattern: dict with 'columns' and 'rows'
        background: fill colour for a backing rectangle, or None for none
        params: overrides for DEFAULT_EXPORT_PARAMS
    """
    params = _params(params)
    precision = params['precision']
    bounds = pattern_bounds(project['tile'], pattern, params['margin'])
    fragments = collect_tiled_fragments(project, pattern)
    optimized = optimize_fragments(fragments, precision, params['join_lines'])

    d = _new_drawing(bounds, background, precision)
    for fragment in optimized:
        d.append(fragment_element(fragment, precision))
    return d.as_svg()


def build_single_tile_svg(project, background=None, params=None):
    """Export just the canonical tile, with neighbour spill-over clipped in."""
    return build_tiled_svg(project, {'columns': 1, 'rows': 1},
                           background=background, params=params)


def primitive_element(primitive):
    """Unclipped drawsvg element for a primitive."""
    style = primitive_style(primitive)
    common = {'stroke': style['color'], 'stroke_width': style['stroke_width'], 'fill': 'none'}
    kind = primitive['kind']
    if kind == 'line':
        a, b = primitive['a'], primitive['b']
        return draw.Line(a[0], a[1], b[0], b[1], stroke_linecap='round', **common)
    if kind == 'circle':
        center = primitive['center']
        return draw.Circle(center[0], center[1], primitive['radius'], **common)
    if kind == 'arc':
        return draw.Path(d=arc_path_d(primitive), **common)
    raise ValueError('Unknown primitive kind: {!r}'.format(kind))


def build_preview_svg(project, pattern, background=None, params=None):
    """Screen preview of the pattern using per-cell clip paths.

    Cheaper than the plotter export and drawn with tile outlines; not meant
    for cutting or plotting.
    """
    params = _params(params)
    tile = project['tile']
    base = get_tile_polygon(tile)
    bounds = pattern_bounds(tile, pattern, params['margin'])

    d = _new_drawing(bounds, background, params['precision'])
    for row in range(pattern['rows']):
        for col in range(pattern['columns']):
            offset = cell_offset(tile, col, row)
            coords = [c for p in translate_points(base, offset) for c in p]
            clip = draw.ClipPath()
            clip.append(draw.Lines(*coords, close=True))
            group = draw.Group(clip_path=clip)
            for primitive in replicate_with_neighbors(project['primitives'], tile, offset):
                group.append(primitive_element(primitive))
            d.append(group)
            d.append(draw.Lines(*coords, close=True, fill='none',
                                stroke=params['outline_color'], stroke_width=0.5))
    return d.as_svg()
