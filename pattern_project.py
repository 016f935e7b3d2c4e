import itertools
import json
import logging
import math
import time
from pathlib import Path

from pattern_core import DEFAULT_STROKE_WIDTH, TILE_SHAPES, Point, get_tile_polygon, midpoint


log = logging.getLogger(__name__)

PROJECT_VERSION = 1

DEFAULT_TILE_SIZE = 120
DEFAULT_TILE_SHAPE = 'square'
DEFAULT_PATTERN = {'columns': 4, 'rows': 3}

MIN_STROKE_WIDTH = 0.5
MAX_STROKE_WIDTH = 12
STROKE_WIDTH_STEP = 0.5

DEFAULT_COLORS = [
    '#0f172a',
    '#14532d',
    '#1d4ed8',
    '#9f1239',
    '#b45309',
    '#111827',
]

_id_counter = itertools.count(1)


def create_id(prefix='p'):
    return '{}-{}-{}'.format(prefix, int(time.time() * 1000), next(_id_counter))


def normalize_stroke_width(value):
    """Clamp to the allowed range and round to the stroke step; junk becomes the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return DEFAULT_STROKE_WIDTH
    clamped = min(MAX_STROKE_WIDTH, max(MIN_STROKE_WIDTH, value))
    return round(clamped / STROKE_WIDTH_STEP) * STROKE_WIDTH_STEP


# ============================================================================
# VALUE CONSTRUCTORS
# ============================================================================

def make_tile_config(shape=DEFAULT_TILE_SHAPE, size=DEFAULT_TILE_SIZE):
    if shape not in TILE_SHAPES:
        raise ValueError('Unknown tile shape: {!r}'.format(shape))
    return {'shape': shape, 'size': float(size)}


def make_pattern_size(columns=DEFAULT_PATTERN['columns'], rows=DEFAULT_PATTERN['rows']):
    if columns < 1 or rows < 1:
        raise ValueError('Pattern needs at least one column and one row')
    return {'columns': int(columns), 'rows': int(rows)}


def make_line(a, b, color=DEFAULT_COLORS[0], stroke_width=DEFAULT_STROKE_WIDTH, id=None):
    return {
        'id': id or create_id('line'),
        'kind': 'line',
        'a': Point(*a),
        'b': Point(*b),
        'color': color,
        'stroke_width': stroke_width,
    }


def make_circle(center, radius, color=DEFAULT_COLORS[0], stroke_width=DEFAULT_STROKE_WIDTH,
                id=None):
    return {
        'id': id or create_id('circle'),
        'kind': 'circle',
        'center': Point(*center),
        'radius': radius,
        'color': color,
        'stroke_width': stroke_width,
    }


def make_arc(center, start, end, clockwise=True, large_arc=False, color=DEFAULT_COLORS[0],
             stroke_width=DEFAULT_STROKE_WIDTH, id=None):
    return {
        'id': id or create_id('arc'),
        'kind': 'arc',
        'center': Point(*center),
        'start': Point(*start),
        'end': Point(*end),
        'clockwise': clockwise,
        'large_arc': large_arc,
        'color': color,
        'stroke_width': stroke_width,
    }


def make_project(tile=None, primitives=None):
    return {
        'tile': tile if tile is not None else make_tile_config(),
        'primitives': list(primitives or []),
    }


def set_tile_shape(project, shape):
    """New project with a different tile shape; drawn geometry is dropped."""
    if shape == project['tile']['shape']:
        return project
    return dict(project, tile=make_tile_config(shape, project['tile']['size']), primitives=[])


# ============================================================================
# JSON PERSISTENCE
# ============================================================================
#
# Files use the camelCase field names of the browser editor so projects can
# move between the two.

def _point_to_json(point):
    return {'x': point[0], 'y': point[1]}


def _primitive_to_json(primitive):
    out = {'id': primitive['id'], 'kind': primitive['kind']}
    kind = primitive['kind']
    if kind == 'line':
        out['a'] = _point_to_json(primitive['a'])
        out['b'] = _point_to_json(primitive['b'])
    elif kind == 'circle':
        out['center'] = _point_to_json(primitive['center'])
        out['radius'] = primitive['radius']
    elif kind == 'arc':
        out['center'] = _point_to_json(primitive['center'])
        out['start'] = _point_to_json(primitive['start'])
        out['end'] = _point_to_json(primitive['end'])
        out['clockwise'] = primitive['clockwise']
        out['largeArc'] = primitive['large_arc']
    else:
        raise ValueError('Unknown primitive kind: {!r}'.format(kind))
    out['color'] = primitive['color']
    out['strokeWidth'] = primitive.get('stroke_width', DEFAULT_STROKE_WIDTH)
    return out


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _point_from_json(value):
    if not isinstance(value, dict) or not _is_number(value.get('x')) or not _is_number(value.get('y')):
        return None
    return Point(float(value['x']), float(value['y']))


def _primitive_from_json(value):
    """Primitive dict from its JSON form, or None when malformed."""
    if not isinstance(value, dict):
        return None
    if not isinstance(value.get('id'), str) or not isinstance(value.get('color'), str):
        return None
    stroke_width = value.get('strokeWidth')
    if stroke_width is not None and not _is_number(stroke_width):
        return None
    stroke_width = normalize_stroke_width(stroke_width)

    kind = value.get('kind')
    if kind == 'line':
        a, b = _point_from_json(value.get('a')), _point_from_json(value.get('b'))
        if a is None or b is None:
            return None
        return make_line(a, b, value['color'], stroke_width, id=value['id'])
    if kind == 'circle':
        center = _point_from_json(value.get('center'))
        if center is None or not _is_number(value.get('radius')):
            return None
        return make_circle(center, float(value['radius']), value['color'], stroke_width,
                           id=value['id'])
    if kind == 'arc':
        center = _point_from_json(value.get('center'))
        start = _point_from_json(value.get('start'))
        end = _point_from_json(value.get('end'))
        if center is None or start is None or end is None:
            return None
        if not isinstance(value.get('clockwise'), bool) or not isinstance(value.get('largeArc'), bool):
            return None
        return make_arc(center, start, end, value['clockwise'], value['largeArc'],
                        value['color'], stroke_width, id=value['id'])
    return None


def serialize_project(project, pattern):
    payload = {
        'version': PROJECT_VERSION,
        'project': {
            'tile': {'shape': project['tile']['shape'], 'size': project['tile']['size']},
            'primitives': [_primitive_to_json(p) for p in project['primitives']],
            'activeTool': 'line',
            'activeColor': DEFAULT_COLORS[0],
            'activeStrokeWidth': DEFAULT_STROKE_WIDTH,
            'history': {'past': [], 'future': []},
        },
        'pattern': {'columns': pattern['columns'], 'rows': pattern['rows']},
    }
    return json.dumps(payload, indent=2)


def deserialize_project(text):
    """Parse a saved project into (project, pattern).

    Raises ValueError with a readable message when the file is unusable.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        raise ValueError('Project file is not valid JSON.')
    if not isinstance(parsed, dict):
        raise ValueError('Project file has invalid format.')
    if parsed.get('version') != PROJECT_VERSION:
        raise ValueError('Unsupported project version.')

    state = parsed.get('project')
    if not isinstance(state, dict) or not isinstance(state.get('tile'), dict):
        raise ValueError('Project state is invalid.')
    tile = state['tile']
    if tile.get('shape') not in TILE_SHAPES or not _is_number(tile.get('size')) or tile['size'] <= 0:
        raise ValueError('Project state is invalid.')

    raw_primitives = state.get('primitives')
    if not isinstance(raw_primitives, list):
        raise ValueError('Project state is invalid.')
    primitives = [_primitive_from_json(p) for p in raw_primitives]
    if any(p is None for p in primitives):
        raise ValueError('Project state is invalid.')

    pattern = parsed.get('pattern')
    if (not isinstance(pattern, dict)
            or not _is_number(pattern.get('columns')) or not _is_number(pattern.get('rows'))
            or pattern['columns'] < 1 or pattern['rows'] < 1):
        raise ValueError('Pattern dimensions are invalid.')

    project = make_project(make_tile_config(tile['shape'], tile['size']), primitives)
    return project, make_pattern_size(pattern['columns'], pattern['rows'])


def save_project(path, project, pattern):
    Path(path).write_text(serialize_project(project, pattern), encoding='utf-8')


def load_project(path):
    text = Path(path).read_text(encoding='utf-8')
    try:
        return deserialize_project(text)
    except ValueError as exc:
        log.warning('Rejected project file %s: %s', path, exc)
        raise


# ============================================================================
# PRESETS
# ============================================================================

def _preset_square_weave():
    s = DEFAULT_TILE_SIZE
    color = DEFAULT_COLORS[0]
    primitives = [
        make_line((-s, 0), (0, -s), color, id='weave-1'),
        make_line((0, -s), (s, 0), color, id='weave-2'),
        make_line((s, 0), (0, s), color, id='weave-3'),
        make_line((0, s), (-s, 0), color, id='weave-4'),
        make_circle((0, 0), s / 2, DEFAULT_COLORS[2], id='weave-5'),
    ]
    return make_project(make_tile_config('square', s), primitives), make_pattern_size(4, 3)


def _preset_truchet():
    s = DEFAULT_TILE_SIZE
    color = DEFAULT_COLORS[3]
    primitives = [
        make_arc((-s, -s), (0, -s), (-s, 0), color=color, id='truchet-1'),
        make_arc((s, s), (0, s), (s, 0), color=color, id='truchet-2'),
        make_circle((0, 0), s / 4, DEFAULT_COLORS[4], id='truchet-3'),
    ]
    return make_project(make_tile_config('square', s), primitives), make_pattern_size(5, 4)


def _preset_hex_star():
    s = DEFAULT_TILE_SIZE
    tile = make_tile_config('hex-pointy', s)
    vertices = get_tile_polygon(tile)
    primitives = []
    for i, vertex in enumerate(vertices):
        opposite = midpoint(vertices[(i + 2) % 6], vertices[(i + 3) % 6])
        primitives.append(make_line(vertex, opposite, DEFAULT_COLORS[1], id='star-{}'.format(i)))
    primitives.append(make_circle((0, 0), s * math.sqrt(3) / 2, DEFAULT_COLORS[2], id='star-ring'))
    return make_project(tile, primitives), make_pattern_size(4, 4)


PRESET_GALLERY = [
    {'id': 'square-weave', 'name': 'Square weave',
     'description': 'Diamond lattice with a centred ring.', 'build': _preset_square_weave},
    {'id': 'truchet', 'name': 'Truchet arcs',
     'description': 'Quarter-circle arcs that chain into meanders.', 'build': _preset_truchet},
    {'id': 'hex-star', 'name': 'Hex star',
     'description': 'Six spokes and the inscribed circle of a pointy hex.', 'build': _preset_hex_star},
]


def get_preset(preset_id):
    """(project, pattern) for a gallery preset id."""
    for preset in PRESET_GALLERY:
        if preset['id'] == preset_id:
            return preset['build']()
    raise ValueError('Unknown preset: {!r}'.format(preset_id))
