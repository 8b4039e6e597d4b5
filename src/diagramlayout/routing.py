"""Relationship path computation.

Straight connectors join the nearest boundary points of two boxes.
Orthogonal connectors are found with A* over a sparse grid built from the
edges of every obstacle (grown by a clearance), with a penalty per bend so
routes prefer few turns. Containment routes (descendant to ancestor) use the
same search with the ancestor's margin band as the goal.
"""
from __future__ import annotations

import heapq
import itertools
import math
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .geometry import EPSILON, Box, Point

RIGHT, DOWN, LEFT, UP = 0, 1, 2, 3
_STEPS = {RIGHT: (1, 0), DOWN: (0, 1), LEFT: (-1, 0), UP: (0, -1)}
# Port order is also the tie-break order between equally short routes.
_SIDES = (RIGHT, DOWN, LEFT, UP)

_Port = Tuple[Point, Point, int]  # boundary point, approach point, side


def nearest_boundary_points(a: Box, b: Box) -> Tuple[Point, Point]:
    """Closest pair of boundary points of two disjoint boxes.

    When the boxes overlap on one axis the connector runs perpendicular to it,
    centred on the shared span; otherwise it joins the facing corners.
    """
    lo_x = max(a.left, b.left)
    hi_x = min(a.right, b.right)
    lo_y = max(a.top, b.top)
    hi_y = min(a.bottom, b.bottom)

    if lo_x <= hi_x:
        x = (lo_x + hi_x) / 2.0
        if a.bottom <= b.top:
            return (x, a.bottom), (x, b.top)
        if b.bottom <= a.top:
            return (x, a.top), (x, b.bottom)
    if lo_y <= hi_y:
        y = (lo_y + hi_y) / 2.0
        if a.right <= b.left:
            return (a.right, y), (b.left, y)
        if b.right <= a.left:
            return (a.left, y), (b.right, y)

    ax = a.right if a.right <= b.left else a.left
    bx = b.left if a.right <= b.left else b.right
    ay = a.bottom if a.bottom <= b.top else a.top
    by = b.top if a.bottom <= b.top else b.bottom
    return (ax, ay), (bx, by)


def self_loop(box: Box, size: float) -> List[Point]:
    """Rectilinear loop leaving the right edge and re-entering the top edge."""
    cx, cy = box.center
    exit_y = box.top + min(box.height / 4.0, size * 2)
    entry_x = box.right - min(box.width / 4.0, size * 2)
    return [
        (box.right, exit_y),
        (box.right + size, exit_y),
        (box.right + size, box.top - size),
        (entry_x, box.top - size),
        (entry_x, box.top),
    ]


def route_orthogonal(
    start: Box,
    end: Box,
    obstacles: Sequence[Box],
    clearance: float,
    *,
    end_encloses_start: bool = False,
    band: float = 0.0,
    bend_penalty: float = 20.0,
) -> Optional[List[Point]]:
    """Shortest rectilinear route from ``start``'s boundary to ``end``'s.

    ``obstacles`` are avoided with ``clearance`` to spare. When
    ``end_encloses_start`` is set the route finishes on the inside of
    ``end``, approaching its boundary through the band of width ``band``
    just inside it. Returns ``None`` when no route exists.
    """
    blockers = [box.inflate(clearance) for box in obstacles]
    blockers.append(start.inflate(clearance))
    if not end_encloses_start:
        blockers.append(end.inflate(clearance))

    start_ports = _ports(start, clearance, inward=False)
    inner_gap = min(clearance, band / 2.0) if band > 0 else clearance
    end_ports = _ports(end, inner_gap if end_encloses_start else clearance, inward=end_encloses_start)

    xs: Set[float] = set()
    ys: Set[float] = set()
    for blocker in blockers:
        xs.update((blocker.left, blocker.right))
        ys.update((blocker.top, blocker.bottom))
    for _boundary, approach, _side in itertools.chain(start_ports, end_ports):
        xs.add(approach[0])
        ys.add(approach[1])
    if end_encloses_start:
        inner = end.inflate(-inner_gap)
        xs.update((inner.left, inner.right))
        ys.update((inner.top, inner.bottom))

    grid_x = sorted(_dedupe(xs))
    grid_y = sorted(_dedupe(ys))
    x_index = {x: i for i, x in enumerate(grid_x)}
    y_index = {y: i for i, y in enumerate(grid_y)}

    def _node(point: Point) -> Tuple[int, int]:
        return x_index[_closest(grid_x, point[0])], y_index[_closest(grid_y, point[1])]

    blocked_cache: Dict[Tuple[int, int, int], bool] = {}

    def _segment_blocked(xi: int, yi: int, direction: int) -> bool:
        key = (xi, yi, direction)
        if key in blocked_cache:
            return blocked_cache[key]
        dx, dy = _STEPS[direction]
        x1, y1 = grid_x[xi], grid_y[yi]
        x2, y2 = grid_x[xi + dx], grid_y[yi + dy]
        result = any(_segment_hits(x1, y1, x2, y2, blocker) for blocker in blockers)
        blocked_cache[key] = result
        return result

    goals: Dict[Tuple[int, int], List[int]] = {}
    for port_idx, (_boundary, approach, _direction) in enumerate(end_ports):
        if _point_blocked(approach, blockers):
            continue
        goals.setdefault(_node(approach), []).append(port_idx)
    if not goals:
        return None

    def _heuristic(node: Tuple[int, int]) -> float:
        px, py = grid_x[node[0]], grid_y[node[1]]
        return min(abs(px - grid_x[g[0]]) + abs(py - grid_y[g[1]]) for g in goals)

    counter = itertools.count()
    open_set: List[Tuple[float, float, int, tuple]] = []
    best: Dict[tuple, float] = {}
    came_from: Dict[tuple, Optional[tuple]] = {}
    for port_idx, (_boundary, approach, direction) in enumerate(start_ports):
        if _point_blocked(approach, blockers):
            continue
        node = _node(approach)
        state = ("node", node[0], node[1], direction, port_idx)
        key = state[:4]
        if key in best:
            continue
        best[key] = 0.0
        came_from[state] = None
        heapq.heappush(open_set, (_heuristic(node), 0.0, next(counter), state))

    finished: Optional[tuple] = None
    while open_set:
        _f, cost, _tie, state = heapq.heappop(open_set)
        if state[0] == "goal":
            finished = state
            break
        _tag, xi, yi, direction, _origin = state
        if cost > best.get(state[:4], math.inf) + EPSILON:
            continue

        for port_idx in goals.get((xi, yi), ()):
            boundary, approach, side = end_ports[port_idx]
            hop = abs(boundary[0] - approach[0]) + abs(boundary[1] - approach[1])
            # Last hop runs outward through an enclosing boundary, inward otherwise.
            final_direction = side if end_encloses_start else (side + 2) % 4
            total = cost + hop + (bend_penalty if final_direction != direction else 0.0)
            goal_state = ("goal", port_idx, state)
            came_from[goal_state] = state
            heapq.heappush(open_set, (total, total, next(counter), goal_state))

        for step_direction in _SIDES:
            if step_direction == (direction + 2) % 4:
                continue
            dx, dy = _STEPS[step_direction]
            nxi, nyi = xi + dx, yi + dy
            if not (0 <= nxi < len(grid_x) and 0 <= nyi < len(grid_y)):
                continue
            if _segment_blocked(xi, yi, step_direction):
                continue
            length = abs(grid_x[nxi] - grid_x[xi]) + abs(grid_y[nyi] - grid_y[yi])
            new_cost = cost + length + (bend_penalty if step_direction != direction else 0.0)
            next_state = ("node", nxi, nyi, step_direction, state[4])
            key = next_state[:4]
            if new_cost < best.get(key, math.inf) - EPSILON:
                best[key] = new_cost
                came_from[next_state] = state
                heapq.heappush(
                    open_set,
                    (new_cost + _heuristic((nxi, nyi)), new_cost, next(counter), next_state),
                )

    if finished is None:
        return None

    end_boundary, _approach, _direction = end_ports[finished[1]]
    trail: List[Point] = [end_boundary]
    cursor: Optional[tuple] = finished[2]
    origin_port = cursor[4]
    while cursor is not None:
        trail.append((grid_x[cursor[1]], grid_y[cursor[2]]))
        origin_port = cursor[4]
        cursor = came_from.get(cursor)
    trail.append(start_ports[origin_port][0])
    trail.reverse()
    return simplify_path(trail)


def simplify_path(path: Sequence[Point]) -> List[Point]:
    """Drop repeated and collinear intermediate points."""
    deduped: List[Point] = []
    for point in path:
        if deduped and _same_point(deduped[-1], point):
            continue
        deduped.append(point)
    if len(deduped) <= 2:
        return deduped
    result: List[Point] = [deduped[0]]
    for i in range(1, len(deduped) - 1):
        px, py = result[-1]
        cx, cy = deduped[i]
        nx, ny = deduped[i + 1]
        cross = (cx - px) * (ny - cy) - (cy - py) * (nx - cx)
        if abs(cross) > EPSILON:
            result.append(deduped[i])
    result.append(deduped[-1])
    return result


def path_length(points: Sequence[Point]) -> float:
    return sum(math.hypot(b[0] - a[0], b[1] - a[1]) for a, b in zip(points, points[1:]))


def path_midpoint(points: Sequence[Point]) -> Tuple[Point, Point]:
    """Point halfway along ``points`` and the unit direction of its segment."""
    half = path_length(points) / 2.0
    walked = 0.0
    for a, b in zip(points, points[1:]):
        seg = math.hypot(b[0] - a[0], b[1] - a[1])
        if seg <= EPSILON:
            continue
        if walked + seg >= half - EPSILON:
            t = (half - walked) / seg
            direction = ((b[0] - a[0]) / seg, (b[1] - a[1]) / seg)
            return (a[0] + t * (b[0] - a[0]), a[1] + t * (b[1] - a[1])), direction
        walked += seg
    return points[0], (1.0, 0.0)


def crosses_any(points: Sequence[Point], boxes: Iterable[Box]) -> bool:
    """True when any segment of ``points`` passes through a box interior."""
    for box in boxes:
        for a, b in zip(points, points[1:]):
            if _line_intersects_rect(a[0], a[1], b[0], b[1], box.inflate(-EPSILON * 10)):
                return True
    return False


def _ports(box: Box, distance: float, *, inward: bool) -> List[_Port]:
    cx, cy = box.center
    boundaries = {
        RIGHT: (box.right, cy),
        DOWN: (cx, box.bottom),
        LEFT: (box.left, cy),
        UP: (cx, box.top),
    }
    sign = -1.0 if inward else 1.0
    ports: List[_Port] = []
    for side in _SIDES:
        bx, by = boundaries[side]
        dx, dy = _STEPS[side]
        ports.append(((bx, by), (bx + sign * dx * distance, by + sign * dy * distance), side))
    return ports


def _dedupe(values: Iterable[float]) -> List[float]:
    result: List[float] = []
    for value in sorted(values):
        if result and abs(result[-1] - value) <= EPSILON:
            continue
        result.append(value)
    return result


def _closest(sorted_values: Sequence[float], value: float) -> float:
    return min(sorted_values, key=lambda candidate: abs(candidate - value))


def _same_point(a: Point, b: Point) -> bool:
    return abs(a[0] - b[0]) <= EPSILON and abs(a[1] - b[1]) <= EPSILON


def _point_blocked(point: Point, blockers: Sequence[Box]) -> bool:
    return any(blocker.inflate(-EPSILON).contains_point(point) for blocker in blockers)


def _segment_hits(x1: float, y1: float, x2: float, y2: float, rect: Box) -> bool:
    """Axis-aligned segment passes through the open interior of ``rect``."""
    if abs(y1 - y2) <= EPSILON:
        lo, hi = min(x1, x2), max(x1, x2)
        return rect.top + EPSILON < y1 < rect.bottom - EPSILON and lo < rect.right - EPSILON and hi > rect.left + EPSILON
    lo, hi = min(y1, y2), max(y1, y2)
    return rect.left + EPSILON < x1 < rect.right - EPSILON and lo < rect.bottom - EPSILON and hi > rect.top + EPSILON


def _line_intersects_rect(x1: float, y1: float, x2: float, y2: float, rect: Box) -> bool:
    """Liang-Barsky clipping test for an arbitrary segment."""
    dx = x2 - x1
    dy = y2 - y1
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x1 - rect.left), (dx, rect.right - x1), (-dy, y1 - rect.top), (dy, rect.bottom - y1)):
        if abs(p) < 1e-12:
            if q < 0:
                return False
            continue
        t = q / p
        if p < 0:
            t0 = max(t0, t)
        else:
            t1 = min(t1, t)
    return t0 < t1


__all__ = [
    "crosses_any",
    "nearest_boundary_points",
    "path_length",
    "path_midpoint",
    "route_orthogonal",
    "self_loop",
    "simplify_path",
]
