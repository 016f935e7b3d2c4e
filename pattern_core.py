import math
from collections import namedtuple

from shapely.geometry import MultiPoint


# ============================================================================
# MATH PRIMITIVES
# ============================================================================

EPSILON = 1e-6
TAU = math.pi * 2

DEFAULT_STROKE_WIDTH = 2

Point = namedtuple('Point', ['x', 'y'])


def add(a, b):
    return Point(a[0] + b[0], a[1] + b[1])


def subtract(a, b):
    return Point(a[0] - b[0], a[1] - b[1])


def scale(p, k):
    return Point(p[0] * k, p[1] * k)


def dot(a, b):
    return a[0] * b[0] + a[1] * b[1]


def cross(a, b):
    return a[0] * b[1] - a[1] * b[0]


def distance(a, b):
    return math.hypot(a[0] - b[0], a[1] - b[1])


def clamp(value, lo, hi):
    return min(hi, max(lo, value))


def almost_equal(a, b, epsilon=EPSILON):
    return abs(a - b) <= epsilon


def format_fixed(value, precision=4):
    """Fixed-precision string for a number, with negative zero folded to zero."""
    text = '{:.{}f}'.format(value, precision)
    if text.startswith('-') and float(text) == 0:
        text = text[1:]
    return text


def format_number(value, precision=4):
    """Quantized number text with trailing zeros trimmed ('20', '12.5')."""
    text = format_fixed(value, precision)
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return '0' if text == '-0' else text


def point_key(point, precision=4):
    """Quantized string key for deduplicating points computed along different paths."""
    return '{}:{}'.format(format_fixed(point[0], precision),
                          format_fixed(point[1], precision))


def midpoint(a, b):
    return Point((a[0] + b[0]) / 2, (a[1] + b[1]) / 2)


# ============================================================================
# TILE GEOMETRY
# ============================================================================

TILE_SHAPES = ('square', 'hex-pointy')


def get_tile_polygon(tile):
    """Canonical tile polygon centered at the origin.

    Square: side 2*size, corners in the order (-s,-s), (s,-s), (s,s), (-s,s).
    Pointy hex: 6 vertices at -90 + i*60 degrees, radius size (vertex up).
    """
    shape = tile['shape']
    s = tile['size']
    if shape == 'square':
        return [Point(-s, -s), Point(s, -s), Point(s, s), Point(-s, s)]
    if shape == 'hex-pointy':
        points = []
        for i in range(6):
            angle = math.radians(-90 + i * 60)
            points.append(Point(s * math.cos(angle), s * math.sin(angle)))
        return points
    raise ValueError('Unknown tile shape: {!r}'.format(shape))


def polygon_edges(polygon):
    """Consecutive (a, b) vertex pairs, closing back to the first vertex."""
    n = len(polygon)
    return [(polygon[i], polygon[(i + 1) % n]) for i in range(n)]


def get_seed_snap_points(tile):
    polygon = get_tile_polygon(tile)
    midpoints = [midpoint(a, b) for a, b in polygon_edges(polygon)]
    return polygon + midpoints + [Point(0.0, 0.0)]


def tile_basis_vectors(tile):
    """Lattice vectors (u, v) that translate the tile onto its neighbours."""
    shape = tile['shape']
    size = tile['size']
    if shape == 'square':
        d = size * 2
        return Point(d, 0.0), Point(0.0, d)
    if shape == 'hex-pointy':
        sqrt3 = math.sqrt(3)
        return Point(sqrt3 * size, 0.0), Point(sqrt3 * size / 2, 3 * size / 2)
    raise ValueError('Unknown tile shape: {!r}'.format(shape))


def cell_offset(tile, col, row):
    u, v = tile_basis_vectors(tile)
    return Point(col * u.x + row * v.x, col * u.y + row * v.y)


def periodic_neighbor_offsets(tile):
    """The 9 offsets i*u + j*v for i, j in {-1, 0, 1}, zero offset included."""
    u, v = tile_basis_vectors(tile)
    offsets = []
    for i in (-1, 0, 1):
        for j in (-1, 0, 1):
            offsets.append(Point(i * u.x + j * v.x, i * u.y + j * v.y))
    return offsets


def translate_points(points, offset):
    return [Point(p[0] + offset[0], p[1] + offset[1]) for p in points]


def polygon_bounds(points):
    """Axis-aligned bounds as a dict with min_x, min_y, max_x, max_y."""
    min_x, min_y, max_x, max_y = MultiPoint([tuple(p) for p in points]).bounds
    return {'min_x': min_x, 'min_y': min_y, 'max_x': max_x, 'max_y': max_y}


def point_in_polygon(point, polygon):
    """Ray-casting parity test."""
    inside = False
    px, py = point[0], point[1]
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i][0], polygon[i][1]
        xj, yj = polygon[j][0], polygon[j][1]
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


# ============================================================================
# ARCS
# ============================================================================
#
# Arcs are stored as (center, start, end, clockwise, large_arc). Angles follow
# screen coordinates (y down), so increasing atan2 angle is clockwise on
# screen and matches the SVG sweep flag.

def _normalize_angle(value):
    normalized = math.fmod(value, TAU)
    return normalized + TAU if normalized < 0 else normalized


def _angle_from_center(center, point):
    return math.atan2(point[1] - center[1], point[0] - center[0])


def _sweep_delta(start_angle, end_angle, clockwise):
    if clockwise:
        return _normalize_angle(end_angle - start_angle)
    return _normalize_angle(start_angle - end_angle)


def arc_radius(arc):
    return distance(arc['center'], arc['start'])


def project_point_to_circle(center, radius, point):
    if radius < EPSILON:
        return Point(center[0], center[1])
    offset_x = point[0] - center[0]
    offset_y = point[1] - center[1]
    magnitude = math.hypot(offset_x, offset_y)
    if magnitude < EPSILON:
        return Point(center[0] + radius, center[1])
    k = radius / magnitude
    return Point(center[0] + offset_x * k, center[1] + offset_y * k)


def is_clockwise_minor_arc(center, start, end):
    """True when travelling clockwise from start to end is the shorter (or equal) way."""
    start_angle = _angle_from_center(center, start)
    end_angle = _angle_from_center(center, end)
    clockwise_delta = _sweep_delta(start_angle, end_angle, True)
    counterclockwise_delta = _sweep_delta(start_angle, end_angle, False)
    return clockwise_delta <= counterclockwise_delta


def resolve_arc_sweep(arc):
    """Actual traced sweep of an arc as (start_angle, clockwise, delta).

    The minor arc between start and end is taken as-is; with large_arc set
    the sweep is its complement, travelling the other way round.
    """
    center = arc['center']
    start_angle = _angle_from_center(center, arc['start'])
    end_angle = _angle_from_center(center, arc['end'])
    clockwise_minor = is_clockwise_minor_arc(center, arc['start'], arc['end'])
    minor_delta = _sweep_delta(start_angle, end_angle, clockwise_minor)
    if arc['large_arc']:
        return start_angle, not clockwise_minor, TAU - minor_delta
    return start_angle, clockwise_minor, minor_delta


def normalize_arc(arc):
    """Re-project start/end onto a common radius and recompute ``clockwise``.

    The common radius is the larger of the two stored radii. ``clockwise``
    is reset to the minor-arc direction even when ``large_arc`` is set.
    """
    center = arc['center']
    radius = max(EPSILON, distance(center, arc['start']), distance(center, arc['end']))
    start = project_point_to_circle(center, radius, arc['start'])
    end = project_point_to_circle(center, radius, arc['end'])
    return dict(arc, start=start, end=end,
                clockwise=is_clockwise_minor_arc(center, start, end))


def arc_path_d(arc, precision=4):
    """SVG path data for a single arc primitive."""
    normalized = normalize_arc(arc)
    radius = format_number(arc_radius(normalized), precision)
    _, clockwise, _ = resolve_arc_sweep(normalized)
    start, end = normalized['start'], normalized['end']
    return 'M {} {} A {} {} 0 {} {} {} {}'.format(
        format_number(start.x, precision), format_number(start.y, precision), radius, radius,
        1 if normalized['large_arc'] else 0, 1 if clockwise else 0,
        format_number(end.x, precision), format_number(end.y, precision))


def arc_travel(arc, point):
    """Angular travel from the arc start to ``point`` along the actual sweep."""
    start_angle, clockwise, _ = resolve_arc_sweep(arc)
    return _sweep_delta(start_angle, _angle_from_center(arc['center'], point), clockwise)


def point_at_arc_travel(arc, travel):
    """Point reached after ``travel`` radians along the arc's actual sweep."""
    start_angle, clockwise, _ = resolve_arc_sweep(arc)
    angle = start_angle + travel if clockwise else start_angle - travel
    radius = arc_radius(arc)
    center = arc['center']
    return Point(center[0] + radius * math.cos(angle), center[1] + radius * math.sin(angle))


def is_point_on_arc_sweep(point, arc, epsilon=EPSILON):
    normalized = normalize_arc(arc)
    _, _, delta = resolve_arc_sweep(normalized)
    traveled = arc_travel(normalized, point)
    # a point a hair before the start wraps round to almost a full turn
    if traveled > TAU - epsilon:
        traveled -= TAU
    return -epsilon <= traveled <= delta + epsilon


def arc_midpoint(arc):
    normalized = normalize_arc(arc)
    _, _, delta = resolve_arc_sweep(normalized)
    return point_at_arc_travel(normalized, delta / 2)


def is_point_near_arc(point, arc, tolerance):
    """Within tolerance of the arc body, or of either endpoint."""
    normalized = normalize_arc(arc)
    radial_error = abs(distance(point, normalized['center']) - arc_radius(normalized))
    if radial_error <= tolerance and is_point_on_arc_sweep(point, normalized):
        return True
    return (distance(point, normalized['start']) <= tolerance
            or distance(point, normalized['end']) <= tolerance)


# ============================================================================
# INTERSECTIONS
# ============================================================================

ARC_SWEEP_EPSILON = 1e-4


def segment_intersection(p, p2, q, q2):
    """Crossing point of segments p-p2 and q-q2, or None if parallel or apart."""
    r = subtract(p2, p)
    s = subtract(q2, q)
    rxs = cross(r, s)
    if abs(rxs) < EPSILON:
        return None
    qmp = subtract(q, p)
    t = cross(qmp, s) / rxs
    u = cross(qmp, r) / rxs
    if t < -EPSILON or t > 1 + EPSILON or u < -EPSILON or u > 1 + EPSILON:
        return None
    return add(p, scale(r, t))


def segment_circle_parameters(a, b, center, radius, lo=-EPSILON, hi=1 + EPSILON):
    """Line parameters t in [lo, hi] where a + t*(b - a) meets the circle."""
    d = subtract(b, a)
    f = subtract(a, center)
    qa = dot(d, d)
    if qa < EPSILON * EPSILON:
        return []
    qb = 2 * dot(f, d)
    qc = dot(f, f) - radius * radius
    discriminant = qb * qb - 4 * qa * qc
    if discriminant < -EPSILON:
        return []
    if abs(discriminant) < EPSILON:
        roots = [-qb / (2 * qa)]
    else:
        root = math.sqrt(max(0.0, discriminant))
        roots = [(-qb + root) / (2 * qa), (-qb - root) / (2 * qa)]
    return [t for t in roots if lo <= t <= hi]


def _line_line(a, b):
    point = segment_intersection(a['a'], a['b'], b['a'], b['b'])
    return [] if point is None else [point]


def _line_circle(line, center, radius):
    if radius < EPSILON:
        return []
    a, b = line['a'], line['b']
    d = subtract(b, a)
    return [add(a, scale(d, t)) for t in segment_circle_parameters(a, b, center, radius)]


def circle_circle_intersections(c1, r1, c2, r2):
    if r1 < EPSILON or r2 < EPSILON:
        return []
    d = distance(c1, c2)
    if d < EPSILON:
        return []
    if d > r1 + r2 + EPSILON:
        return []
    if d < abs(r1 - r2) - EPSILON:
        return []

    # distance from c1 to the radical line, along the centre line
    p2 = (r1 * r1 - r2 * r2 + d * d) / (2 * d)
    h2 = r1 * r1 - p2 * p2
    if h2 < -EPSILON:
        return []
    h = math.sqrt(max(0.0, h2))
    vx = (c2[0] - c1[0]) / d
    vy = (c2[1] - c1[1]) / d
    base = Point(c1[0] + p2 * vx, c1[1] + p2 * vy)
    if h < EPSILON:
        return [base]
    return [Point(base.x - vy * h, base.y + vx * h),
            Point(base.x + vy * h, base.y - vx * h)]


def _supporting_circle(primitive):
    if primitive['kind'] == 'circle':
        return primitive['center'], primitive['radius']
    normalized = normalize_arc(primitive)
    return normalized['center'], arc_radius(normalized)


def _on_arcs(points, *arcs):
    normalized = [normalize_arc(arc) for arc in arcs]
    return [p for p in points
            if all(is_point_on_arc_sweep(p, arc, ARC_SWEEP_EPSILON) for arc in normalized)]


def pair_intersections(a, b):
    """Intersection points between two primitives of any kind."""
    kinds = (a['kind'], b['kind'])
    if kinds == ('line', 'line'):
        return _line_line(a, b)
    if a['kind'] != 'line' and b['kind'] == 'line':
        a, b = b, a
    if a['kind'] == 'line':
        center, radius = _supporting_circle(b)
        points = _line_circle(a, center, radius)
        return _on_arcs(points, b) if b['kind'] == 'arc' else points
    if a['kind'] in ('circle', 'arc') and b['kind'] in ('circle', 'arc'):
        c1, r1 = _supporting_circle(a)
        c2, r2 = _supporting_circle(b)
        points = circle_circle_intersections(c1, r1, c2, r2)
        arcs = [p for p in (a, b) if p['kind'] == 'arc']
        return _on_arcs(points, *arcs) if arcs else points
    raise ValueError('Unknown primitive kinds: {!r}'.format(kinds))


def intersections(primitives):
    """All pairwise intersection points, deduplicated by point key."""
    dedup = {}
    for i in range(len(primitives)):
        for j in range(i + 1, len(primitives)):
            for point in pair_intersections(primitives[i], primitives[j]):
                dedup[point_key(point)] = point
    return list(dedup.values())


# ============================================================================
# HIT TESTING
# ============================================================================

def project_point_to_segment(point, a, b):
    ab = subtract(b, a)
    denom = dot(ab, ab)
    if denom == 0:
        return Point(a[0], a[1])
    t = clamp(dot(subtract(point, a), ab) / denom, 0.0, 1.0)
    return Point(a[0] + ab[0] * t, a[1] + ab[1] * t)


def distance_to_segment(point, a, b):
    return distance(point, project_point_to_segment(point, a, b))


def distance_to_primitive(point, primitive):
    kind = primitive['kind']
    if kind == 'line':
        return distance_to_segment(point, primitive['a'], primitive['b'])
    if kind == 'circle':
        return abs(distance(point, primitive['center']) - primitive['radius'])
    if kind == 'arc':
        normalized = normalize_arc(primitive)
        if is_point_on_arc_sweep(point, normalized):
            return abs(distance(point, normalized['center']) - arc_radius(normalized))
        return min(distance(point, normalized['start']), distance(point, normalized['end']))
    raise ValueError('Unknown primitive kind: {!r}'.format(kind))


def hit_test_primitive(point, primitives, tolerance):
    """Nearest primitive within tolerance of ``point``, or None."""
    best = None
    best_distance = math.inf
    for primitive in primitives:
        d = distance_to_primitive(point, primitive)
        if d <= tolerance and d < best_distance:
            best = primitive
            best_distance = d
    return best


# ============================================================================
# SNAPPING
# ============================================================================

# Tolerances are fractions of the tile size
DEFAULT_SNAP_PARAMS = {
    'snap_tolerance': 0.08,
    'line_pass_tolerance': 0.05,
    'edit_handle_tolerance': 0.09,
}

PASS_THROUGH_MIN_ALONG = 0.05
PASS_THROUGH_MAX_ALONG = 0.98


def snap_tolerances(tile, params=None):
    """Absolute snap tolerances for a tile, keyed like DEFAULT_SNAP_PARAMS."""
    merged = dict(DEFAULT_SNAP_PARAMS)
    if params:
        merged.update(params)
    return {key: value * tile['size'] for key, value in merged.items()}


def gather_snap_points(primitives, tile):
    """Snap candidates: endpoints, midpoints, centres, intersections and tile seeds."""
    points = []
    for primitive in primitives:
        kind = primitive['kind']
        if kind == 'line':
            points.extend([primitive['a'], primitive['b'],
                           midpoint(primitive['a'], primitive['b'])])
        elif kind == 'circle':
            points.append(primitive['center'])
        elif kind == 'arc':
            normalized = normalize_arc(primitive)
            points.extend([normalized['center'], normalized['start'], normalized['end'],
                           arc_midpoint(normalized)])
        else:
            raise ValueError('Unknown primitive kind: {!r}'.format(kind))

    points.extend(intersections(primitives))
    points.extend(get_seed_snap_points(tile))

    dedup = {}
    for point in points:
        dedup[point_key(point)] = Point(point[0], point[1])
    return list(dedup.values())


def segment_key(a, b):
    return '|'.join(sorted((point_key(a), point_key(b))))


def gather_snap_segments(primitives, tile):
    """Every line segment plus every tile edge, as (a, b) pairs."""
    segments = [(p['a'], p['b']) for p in primitives if p['kind'] == 'line']
    segments.extend(polygon_edges(get_tile_polygon(tile)))

    dedup = {}
    for a, b in segments:
        key = segment_key(a, b)
        if key not in dedup:
            dedup[key] = (Point(a[0], a[1]), Point(b[0], b[1]))
    return list(dedup.values())


def get_snap_point(raw, points, tolerance):
    best = None
    best_distance = math.inf
    for point in points:
        d = distance(raw, point)
        if d < tolerance and d < best_distance:
            best = point
            best_distance = d
    return best


def get_snap_point_on_segments(raw, segments, tolerance):
    """Nearest point anywhere along a segment within tolerance, or None."""
    best = None
    best_distance = math.inf
    for a, b in segments:
        projected = project_point_to_segment(raw, a, b)
        d = distance(raw, projected)
        if d < tolerance and d < best_distance:
            best = projected
            best_distance = d
    return best


def get_line_pass_through_snap(start, raw_end, points, tolerance):
    """Rescale a line end so the line runs exactly through a nearby snap point.

    Only points lying inside the drawn segment body qualify; hits close to
    either end are left to endpoint snapping.
    """
    direction = subtract(raw_end, start)
    length = math.hypot(direction.x, direction.y)
    if length < EPSILON:
        return None

    length_sq = length * length
    best_point = None
    best_distance = math.inf
    for point in points:
        from_start = subtract(point, start)
        along = dot(from_start, direction) / length_sq
        if along <= PASS_THROUGH_MIN_ALONG or along >= PASS_THROUGH_MAX_ALONG:
            continue
        perp_distance = abs(cross(direction, from_start)) / length
        point_distance = math.hypot(from_start.x, from_start.y)
        if perp_distance <= tolerance and point_distance <= length + tolerance:
            if perp_distance < best_distance:
                best_distance = perp_distance
                best_point = point

    if best_point is None:
        return None

    axis = subtract(best_point, start)
    axis_length = math.hypot(axis.x, axis.y)
    if axis_length < EPSILON:
        return None
    return add(start, scale(axis, length / axis_length))


def get_directional_snap_on_segments(start, direction_end, raw_end, segments, tolerance):
    """Where the ray start -> direction_end crosses a segment near raw_end.

    Keeps the exact direction of the ray and terminates it on a boundary.
    """
    direction = subtract(direction_end, start)
    if math.hypot(direction.x, direction.y) < EPSILON:
        return None

    best = None
    best_distance = math.inf
    for a, b in segments:
        s = subtract(b, a)
        rxs = cross(direction, s)
        if abs(rxs) < EPSILON:
            continue
        qmp = subtract(a, start)
        t = cross(qmp, s) / rxs
        u = cross(qmp, direction) / rxs
        if t <= EPSILON or u < -EPSILON or u > 1 + EPSILON:
            continue
        candidate = add(start, scale(direction, t))
        d = distance(candidate, raw_end)
        if d <= tolerance and d < best_distance:
            best = candidate
            best_distance = d
    return best


def resolve_point(raw, points, segments, tolerance):
    """Free point resolution: snap point, then segment projection, then raw."""
    snapped = get_snap_point(raw, points, tolerance)
    if snapped is not None:
        return snapped
    snapped = get_snap_point_on_segments(raw, segments, tolerance)
    if snapped is not None:
        return snapped
    return Point(raw[0], raw[1])


def resolve_line_end(start, raw_end, points, segments, snap_tolerance, line_pass_tolerance):
    """Resolve the free end of a line being drawn from ``start``.

    Order: endpoint snap, pass-through snap (refined onto a segment when the
    ray crosses one near the raw end), segment projection, raw point.
    """
    snapped = get_snap_point(raw_end, points, snap_tolerance)
    if snapped is not None:
        return snapped

    through = get_line_pass_through_snap(start, raw_end, points, line_pass_tolerance)
    if through is not None:
        on_segment = get_directional_snap_on_segments(start, through, raw_end, segments,
                                                      snap_tolerance)
        return on_segment if on_segment is not None else through

    snapped = get_snap_point_on_segments(raw_end, segments, snap_tolerance)
    if snapped is not None:
        return snapped
    return Point(raw_end[0], raw_end[1])


# ============================================================================
# TRANSFORMS & PATTERN REPLICATION
# ============================================================================

def translate_primitive(primitive, offset):
    """New primitive of the same kind with every point field shifted by offset."""
    kind = primitive['kind']
    if kind == 'line':
        return dict(primitive, a=add(primitive['a'], offset), b=add(primitive['b'], offset))
    if kind == 'circle':
        return dict(primitive, center=add(primitive['center'], offset))
    if kind == 'arc':
        return dict(primitive,
                    center=add(primitive['center'], offset),
                    start=add(primitive['start'], offset),
                    end=add(primitive['end'], offset))
    raise ValueError('Unknown primitive kind: {!r}'.format(kind))


def replicate_pattern(primitives, tile, pattern):
    """Unclipped periodic copies of every primitive, one set per pattern cell."""
    out = []
    for row in range(pattern['rows']):
        for col in range(pattern['columns']):
            offset = cell_offset(tile, col, row)
            for primitive in primitives:
                out.append(translate_primitive(primitive, offset))
    return out


def replicate_with_neighbors(primitives, tile, offset):
    """Copies of every primitive at ``offset`` plus each periodic neighbour offset."""
    out = []
    for neighbor in periodic_neighbor_offsets(tile):
        shift = add(offset, neighbor)
        for primitive in primitives:
            out.append(translate_primitive(primitive, shift))
    return out
