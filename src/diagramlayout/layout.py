"""Layout engine: scene graph + constraints to a resolved geometry model.

Single deterministic pass:

1. atomic elements take their declared size, or a default grown to fit the
   label;
2. containers are sized bottom-up: members are flow-packed (left to right,
   wrapping at a row-width budget derived from the target aspect ratio) and
   the container wraps them with its margin and label header;
3. top-level elements are flow-packed onto the canvas and positions are
   pushed down the containment forest;
4. relationships are routed and their labels placed greedily in
   declaration order.
"""
from __future__ import annotations

import heapq
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .constraints import ConstraintSet
from .errors import UnsatisfiableConstraints
from .geometry import (
    EPSILON,
    Box,
    ElementGeometry,
    GeometryModel,
    LabelPlacement,
    Point,
    RelationshipGeometry,
    bounding_box,
    fmt,
    snap,
    snap_point,
)
from .model import LOOP, NESTED, Relationship, SceneGraph
from .options import LayoutOptions
from .routing import nearest_boundary_points, path_midpoint, route_orthogonal, self_loop
from .text import TextMeasurer, ceil_size

logger = logging.getLogger(__name__)

_Group = Optional[int]


@dataclass
class _Frame:
    """Working size and member offsets for one element."""

    width: float = 0.0
    height: float = 0.0
    offsets: List[Point] = field(default_factory=list)
    label_size: Optional[Tuple[float, float]] = None


def compute_layout(
    scene: SceneGraph,
    constraints: ConstraintSet,
    options: Optional[LayoutOptions] = None,
    measurer: Optional[TextMeasurer] = None,
) -> GeometryModel:
    """Resolve positions, sizes, paths and label placements for ``scene``."""
    options = options or LayoutOptions()
    if measurer is None:
        measurer = TextMeasurer(options.text_metrics, options.font_family, options.font_path)

    sequences = _sequence_members(scene, constraints)
    margins = _margins(scene, constraints, options)
    gaps = _gaps(scene, constraints, options)

    frames = _size_elements(scene, sequences, margins, gaps, options, measurer)
    boxes = _place_elements(scene, sequences, frames, gaps, options)
    _verify(scene, constraints, boxes)

    element_labels = _element_labels(scene, boxes, frames, margins, options)
    paths = [_route(scene, rel, boxes, margins, options) for rel in scene.relationships]
    relationship_labels = _place_relationship_labels(
        scene, boxes, paths, element_labels, options, measurer
    )
    canvas = _canvas(boxes, paths, relationship_labels, options)

    elements = tuple(
        ElementGeometry(
            id=element.id,
            kind=element.kind,
            shape=element.shape,
            parent=scene.elements[element.parent].id if element.parent is not None else None,
            depth=scene.depth(element.index),
            box=boxes[element.index].snapped(),
            label=_snap_label(element_labels.get(element.index)),
            style=element.style,
        )
        for element in scene.elements
    )
    relationships = tuple(
        RelationshipGeometry(
            id=rel.id,
            source=rel.source,
            target=rel.target,
            directed=rel.directed,
            kind=rel.kind,
            routing=rel.routing,
            points=tuple(snap_point(p) for p in paths[rel.index]),
            label=_snap_label(relationship_labels[rel.index]),
            style=rel.style,
        )
        for rel in scene.relationships
    )
    model = GeometryModel(
        canvas=canvas.snapped(),
        elements=elements,
        relationships=relationships,
        font_family=options.font_family,
    )
    logger.debug(
        "layout resolved: canvas %sx%s, %d elements, %d relationships",
        fmt(model.canvas.width),
        fmt(model.canvas.height),
        len(elements),
        len(relationships),
    )
    return model


def flow_pack(
    sizes: Sequence[Tuple[float, float]],
    gap: float,
    budget: Optional[float],
    aspect_ratio: float,
) -> Tuple[List[Point], float, float]:
    """Place boxes left to right, wrapping rows at a width budget.

    Without an explicit ``budget`` the row width allows about
    ``ceil(sqrt(n * aspect_ratio))`` average-width boxes per row. Returns the
    top-left offset of every box and the packed content width and height.
    """
    if not sizes:
        return [], 0.0, 0.0
    widest = max(w for w, _ in sizes)
    if budget is None:
        count = len(sizes)
        columns = min(count, math.ceil(math.sqrt(count * aspect_ratio) - 1e-9))
        mean_width = sum(w for w, _ in sizes) / count
        budget = max(widest, mean_width * columns + gap * (columns - 1))

    offsets: List[Point] = []
    x = y = row_height = content_width = 0.0
    for width, height in sizes:
        if x > 0 and x + width > budget + EPSILON:
            y += row_height + gap
            x = 0.0
            row_height = 0.0
        offsets.append((x, y))
        content_width = max(content_width, x + width)
        row_height = max(row_height, height)
        x += width + gap
    return offsets, content_width, y + row_height


def _sequence_members(scene: SceneGraph, constraints: ConstraintSet) -> Dict[_Group, List[int]]:
    """Order every container's members (and the roots) by the ordering constraints."""
    groups: List[Tuple[_Group, Tuple[int, ...]]] = [(None, scene.roots())]
    groups.extend((e.index, e.children) for e in scene.elements if e.is_container)

    edges: Dict[_Group, List[Tuple[int, int]]] = {}
    for constraint in constraints.ordering:
        group = scene.index[constraint.container] if constraint.container is not None else None
        before = scene.index[constraint.before]
        after = scene.index[constraint.after]
        edges.setdefault(group, []).append((before, after))

    sequences: Dict[_Group, List[int]] = {}
    for group, members in groups:
        member_set = set(members)
        successors: Dict[int, List[int]] = {m: [] for m in members}
        indegree: Dict[int, int] = {m: 0 for m in members}
        for before, after in edges.get(group, ()):
            if before not in member_set or after not in member_set:
                raise UnsatisfiableConstraints(
                    [scene.elements[before].id, scene.elements[after].id],
                    "ordering constraint relates elements that are not members of the same container",
                )
            successors[before].append(after)
            indegree[after] += 1

        ready = [m for m in members if indegree[m] == 0]
        heapq.heapify(ready)
        order: List[int] = []
        while ready:
            current = heapq.heappop(ready)
            order.append(current)
            for nxt in successors[current]:
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    heapq.heappush(ready, nxt)
        if len(order) != len(members):
            done = set(order)
            stuck = [scene.elements[m].id for m in members if m not in done]
            raise UnsatisfiableConstraints(stuck, f"ordering constraints form a cycle among {', '.join(stuck)}")
        sequences[group] = order
    return sequences


def _margins(scene: SceneGraph, constraints: ConstraintSet, options: LayoutOptions) -> Dict[int, float]:
    by_id: Dict[str, float] = {}
    for constraint in constraints.containment:
        by_id.setdefault(constraint.container, constraint.margin)
    margins: Dict[int, float] = {}
    for element in scene.elements:
        if not element.is_container:
            continue
        if element.id in by_id:
            margins[element.index] = by_id[element.id]
        elif element.margin is not None:
            margins[element.index] = element.margin
        else:
            margins[element.index] = options.margin
    return margins


def _gaps(scene: SceneGraph, constraints: ConstraintSet, options: LayoutOptions) -> Dict[_Group, float]:
    gaps: Dict[_Group, float] = {}
    for constraint in constraints.separation:
        group = scene.element(constraint.first).parent
        gaps[group] = max(gaps.get(group, 0.0), constraint.gap)
    gaps.setdefault(None, options.gutter)
    for element in scene.elements:
        if element.is_container and element.index not in gaps:
            gaps[element.index] = element.gap if element.gap is not None else options.gutter
    return gaps


def _size_elements(
    scene: SceneGraph,
    sequences: Dict[_Group, List[int]],
    margins: Dict[int, float],
    gaps: Dict[_Group, float],
    options: LayoutOptions,
    measurer: TextMeasurer,
) -> Dict[int, _Frame]:
    frames: Dict[int, _Frame] = {}
    for idx in scene.post_order():
        element = scene.elements[idx]
        frame = _Frame()
        if element.label is not None:
            width, height = measurer.measure(element.label, options.font_size)
            frame.label_size = (ceil_size(width), ceil_size(height))

        if not element.is_container:
            pad = 2 * options.label_padding
            natural_w = options.default_width
            natural_h = options.default_height
            if frame.label_size is not None:
                natural_w = max(natural_w, frame.label_size[0] + pad)
                natural_h = max(natural_h, frame.label_size[1] + pad)
            frame.width = _resolve_extent(element.id, "width", element.width, element.min_width, 0.0, natural_w)
            frame.height = _resolve_extent(element.id, "height", element.height, element.min_height, 0.0, natural_h)
        else:
            _size_container(scene, idx, sequences[idx], frames, frame, margins[idx], gaps[idx], options)
        frames[idx] = frame
    return frames


def _size_container(
    scene: SceneGraph,
    idx: int,
    members: List[int],
    frames: Dict[int, _Frame],
    frame: _Frame,
    margin: float,
    gap: float,
    options: LayoutOptions,
) -> None:
    element = scene.elements[idx]
    header = 0.0
    header_width = 0.0
    if frame.label_size is not None:
        header_width = frame.label_size[0]
        header = frame.label_size[1] + options.label_padding

    sizes = [(frames[m].width, frames[m].height) for m in members]
    budget: Optional[float] = None
    if element.width is not None:
        budget = element.width - 2 * margin
        widest = max([w for w, _ in sizes] + [header_width])
        if widest > budget + EPSILON:
            raise UnsatisfiableConstraints(
                [element.id],
                f'container "{element.id}" declares width {fmt(element.width)} but its widest member '
                f"needs {fmt(widest + 2 * margin)} including margins",
                required=(widest + 2 * margin, 0.0),
                declared=(element.width, element.height),
            )

    offsets, content_w, content_h = flow_pack(sizes, gap, budget, options.aspect_ratio)
    frame.offsets = [(margin + ox, margin + header + oy) for ox, oy in offsets]

    natural_w = max(content_w, header_width) + 2 * margin
    natural_h = content_h + header + 2 * margin
    if not members:
        natural_w = max(natural_w, options.default_width)
        natural_h = max(natural_h, options.default_height)
    required_w = max(natural_w, element.min_width or 0.0)
    required_h = max(natural_h, element.min_height or 0.0)
    if (element.width is not None and element.width < required_w - EPSILON) or (
        element.height is not None and element.height < required_h - EPSILON
    ):
        raise UnsatisfiableConstraints(
            [element.id] + [scene.elements[m].id for m in members],
            f'container "{element.id}" declares size '
            f"{fmt(element.width) if element.width is not None else 'auto'}x"
            f"{fmt(element.height) if element.height is not None else 'auto'} "
            f"but its contents need {fmt(required_w)}x{fmt(required_h)}",
            required=(required_w, required_h),
            declared=(element.width, element.height),
        )
    frame.width = element.width if element.width is not None else required_w
    frame.height = element.height if element.height is not None else required_h


def _resolve_extent(
    element_id: str,
    axis: str,
    declared: Optional[float],
    minimum: Optional[float],
    required: float,
    natural: float,
) -> float:
    floor = max(required, minimum or 0.0)
    if declared is not None:
        if declared < floor - EPSILON:
            raise UnsatisfiableConstraints(
                [element_id],
                f'element "{element_id}" declares {axis} {fmt(declared)} below its minimum {fmt(floor)}',
            )
        return declared
    return max(natural, floor)


def _place_elements(
    scene: SceneGraph,
    sequences: Dict[_Group, List[int]],
    frames: Dict[int, _Frame],
    gaps: Dict[_Group, float],
    options: LayoutOptions,
) -> Dict[int, Box]:
    roots = sequences[None]
    sizes = [(frames[r].width, frames[r].height) for r in roots]
    offsets, _w, _h = flow_pack(sizes, gaps[None], None, options.aspect_ratio)

    origin: Dict[int, Point] = {}
    pad = options.canvas_padding
    for root, (ox, oy) in zip(roots, offsets):
        origin[root] = (pad + ox, pad + oy)

    boxes: Dict[int, Box] = {}
    for idx in scene.pre_order():
        x, y = origin[idx]
        frame = frames[idx]
        boxes[idx] = Box(x, y, frame.width, frame.height)
        if scene.elements[idx].is_container:
            for member, (ox, oy) in zip(sequences[idx], frame.offsets):
                origin[member] = (x + ox, y + oy)
    return boxes


def _verify(scene: SceneGraph, constraints: ConstraintSet, boxes: Dict[int, Box]) -> None:
    for constraint in constraints.containment:
        outer = boxes[scene.index[constraint.container]]
        inner = boxes[scene.index[constraint.member]]
        if not outer.contains(inner, constraint.margin):
            raise UnsatisfiableConstraints(
                [constraint.container, constraint.member],
                f'"{constraint.member}" does not fit inside "{constraint.container}" '
                f"with margin {fmt(constraint.margin)}",
            )
    for constraint in constraints.ordering:
        before = boxes[scene.index[constraint.before]]
        after = boxes[scene.index[constraint.after]]
        if (before.top, before.left) >= (after.top, after.left):
            raise UnsatisfiableConstraints(
                [constraint.before, constraint.after],
                f'"{constraint.before}" could not be placed before "{constraint.after}"',
            )
    for constraint in constraints.separation:
        first = boxes[scene.index[constraint.first]]
        second = boxes[scene.index[constraint.second]]
        if first.overlaps(second):
            raise UnsatisfiableConstraints(
                [constraint.first, constraint.second],
                f'"{constraint.first}" and "{constraint.second}" overlap',
            )


def _element_labels(
    scene: SceneGraph,
    boxes: Dict[int, Box],
    frames: Dict[int, _Frame],
    margins: Dict[int, float],
    options: LayoutOptions,
) -> Dict[int, LabelPlacement]:
    labels: Dict[int, LabelPlacement] = {}
    for element in scene.elements:
        frame = frames[element.index]
        if element.label is None or frame.label_size is None:
            continue
        width, height = frame.label_size
        box = boxes[element.index]
        if element.is_container:
            margin = margins[element.index]
            cx = box.left + margin + width / 2.0
            cy = box.top + margin + height / 2.0
        else:
            cx, cy = box.center
        labels[element.index] = LabelPlacement(element.label, cx, cy, width, height, options.font_size)
    return labels


def _route(
    scene: SceneGraph,
    rel: Relationship,
    boxes: Dict[int, Box],
    margins: Dict[int, float],
    options: LayoutOptions,
) -> List[Point]:
    source = scene.index[rel.source]
    target = scene.index[rel.target]
    clearance = options.route_clearance

    if rel.kind == LOOP:
        return self_loop(boxes[source], clearance)

    if rel.kind == NESTED:
        if scene.is_ancestor(target, source):
            inner, outer = source, target
        else:
            inner, outer = target, source
        obstacles = _unrelated_boxes(scene, boxes, inner, outer, keep_outer_members=True)
        points = route_orthogonal(
            boxes[inner],
            boxes[outer],
            obstacles,
            clearance,
            end_encloses_start=True,
            band=margins[outer],
            bend_penalty=options.bend_penalty,
        )
        if points is None:
            logger.warning('no detour found for relationship "%s"; drawing a direct connector', rel.id)
            cx = boxes[inner].center[0]
            points = [(cx, boxes[inner].top), (cx, boxes[outer].top)]
        if inner != source:
            points = list(reversed(points))
        return points

    if rel.routing == "orthogonal":
        obstacles = _unrelated_boxes(scene, boxes, source, target, keep_outer_members=False)
        points = route_orthogonal(
            boxes[source],
            boxes[target],
            obstacles,
            clearance,
            bend_penalty=options.bend_penalty,
        )
        if points is not None:
            return points
        logger.warning('no orthogonal route found for relationship "%s"; drawing a straight connector', rel.id)

    start, end = nearest_boundary_points(boxes[source], boxes[target])
    return [start, end]


def _unrelated_boxes(
    scene: SceneGraph,
    boxes: Dict[int, Box],
    first: int,
    second: int,
    *,
    keep_outer_members: bool,
) -> List[Box]:
    """Boxes a connector between ``first`` and ``second`` must stay clear of.

    Endpoints and their ancestors are passable; so are the endpoints'
    descendants, except the members of ``second`` when it encloses ``first``.
    """
    excluded: Set[int] = {first, second}
    excluded.update(scene.ancestors(first))
    excluded.update(scene.ancestors(second))
    obstacles: List[Box] = []
    for idx in scene.pre_order():
        if idx in excluded:
            continue
        lineage = set(scene.ancestors(idx))
        if first in lineage:
            continue
        if second in lineage and not keep_outer_members:
            continue
        obstacles.append(boxes[idx])
    return obstacles


def _place_relationship_labels(
    scene: SceneGraph,
    boxes: Dict[int, Box],
    paths: List[List[Point]],
    element_labels: Dict[int, LabelPlacement],
    options: LayoutOptions,
    measurer: TextMeasurer,
) -> List[Optional[LabelPlacement]]:
    headers = [
        label.box for idx, label in element_labels.items() if scene.elements[idx].is_container
    ]
    placed: List[Box] = []
    labels: List[Optional[LabelPlacement]] = []
    for rel in scene.relationships:
        if rel.label is None:
            labels.append(None)
            continue
        width, height = measurer.measure(rel.label, options.label_font_size)
        width, height = ceil_size(width), ceil_size(height)
        points = paths[rel.index]
        (mx, my), (dx, dy) = path_midpoint(points)
        nx, ny = _label_normal(dx, dy)
        extent = abs(nx) * width / 2.0 + abs(ny) * height / 2.0

        source = scene.index[rel.source]
        target = scene.index[rel.target]
        shared = ({source} | set(scene.ancestors(source))) & ({target} | set(scene.ancestors(target)))
        blockers = [
            boxes[e.index]
            for e in scene.elements
            if not (e.is_container and e.index in shared)
        ]
        blockers.extend(headers)
        blockers.extend(placed)

        candidates = [
            LabelPlacement(
                rel.label,
                mx + sign * nx * distance,
                my + sign * ny * distance,
                width,
                height,
                options.label_font_size,
            )
            for distance in (
                options.label_offset + step * options.label_nudge_step + extent
                for step in range(options.label_nudge_limit + 1)
            )
            for sign in (1.0, -1.0)
        ]
        chosen = next(
            (c for c in candidates if not any(c.box.overlaps(blocker) for blocker in blockers)),
            None,
        )
        if chosen is None:
            logger.debug('label of relationship "%s" overlaps other geometry at every candidate', rel.id)
            chosen = candidates[0]
        placed.append(chosen.box)
        labels.append(chosen)
    return labels


def _label_normal(dx: float, dy: float) -> Point:
    """Unit normal of a segment direction, pointing up (or right when vertical)."""
    n1 = (dy, -dx)
    n2 = (-dy, dx)
    if abs(n1[1] - n2[1]) <= EPSILON:
        return n1 if n1[0] >= n2[0] else n2
    return n1 if n1[1] < n2[1] else n2


def _canvas(
    boxes: Dict[int, Box],
    paths: List[List[Point]],
    labels: List[Optional[LabelPlacement]],
    options: LayoutOptions,
) -> Box:
    pad = options.canvas_padding
    extent: Optional[Box] = None
    for box in boxes.values():
        extent = box if extent is None else extent.union(box)
    for points in paths:
        span = bounding_box(points)
        if span is not None:
            extent = span if extent is None else extent.union(span)
    for label in labels:
        if label is not None:
            extent = label.box if extent is None else extent.union(label.box)
    if extent is None:
        return Box(0.0, 0.0, 2 * pad, 2 * pad)
    return Box.from_edges(
        min(0.0, extent.left - pad),
        min(0.0, extent.top - pad),
        extent.right + pad,
        extent.bottom + pad,
    )


def _snap_label(label: Optional[LabelPlacement]) -> Optional[LabelPlacement]:
    if label is None:
        return None
    return LabelPlacement(
        label.text, snap(label.x), snap(label.y), snap(label.width), snap(label.height), label.font_size
    )


__all__ = ["compute_layout", "flow_pack"]
