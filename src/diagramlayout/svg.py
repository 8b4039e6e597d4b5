"""SVG renderer for a resolved geometry model."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Set

from .geometry import ElementGeometry, GeometryModel, LabelPlacement, RelationshipGeometry, fmt
from .text import LINE_SPACING

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)

CONTAINER_RADIUS = 6.0
ROUNDED_RADIUS = 10.0


def _q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def render_svg(model: GeometryModel, scale: float = 1.0) -> str:
    """Serialize ``model`` as an SVG document.

    Coordinates are written exactly as the geometry model holds them; ``scale``
    only multiplies the outer ``width``/``height`` so the ``viewBox`` keeps the
    layout's coordinate system.
    """
    if scale <= 0:
        raise ValueError(f"scale must be > 0 (got {scale!r})")
    canvas = model.canvas
    svg_root = ET.Element(
        _q("svg"),
        {
            "width": fmt(canvas.width * scale),
            "height": fmt(canvas.height * scale),
            "viewBox": f"{fmt(canvas.x)} {fmt(canvas.y)} {fmt(canvas.width)} {fmt(canvas.height)}",
            "font-family": model.font_family,
        },
    )

    marker_id: Optional[str] = None
    if any(rel.directed for rel in model.relationships):
        taken = {e.id for e in model.elements} | {r.id for r in model.relationships}
        marker_id = _ensure_default_arrow_marker(svg_root, taken)

    for element in _drawing_order(model):
        svg_root.append(_render_element(element))

    for rel in model.relationships:
        svg_root.append(_render_relationship(rel, marker_id))

    return _pretty_xml(svg_root)


def _drawing_order(model: GeometryModel) -> List[ElementGeometry]:
    """Containers before their members so members paint on top."""
    children: Dict[Optional[str], List[ElementGeometry]] = {}
    for element in model.elements:
        children.setdefault(element.parent, []).append(element)
    order: List[ElementGeometry] = []
    stack = list(reversed(children.get(None, [])))
    while stack:
        element = stack.pop()
        order.append(element)
        stack.extend(reversed(children.get(element.id, [])))
    return order


def _render_element(element: ElementGeometry) -> ET.Element:
    g = ET.Element(_q("g"), {"id": element.id, "class": f"element {element.kind}"})
    box = element.box
    attrs: Dict[str, str] = dict(element.style)
    if element.kind == "container" or element.shape != "ellipse":
        attrs.update(
            {
                "x": fmt(box.x),
                "y": fmt(box.y),
                "width": fmt(box.width),
                "height": fmt(box.height),
            }
        )
        if element.kind == "container":
            attrs["rx"] = fmt(CONTAINER_RADIUS)
        elif element.shape == "rounded":
            attrs["rx"] = fmt(min(ROUNDED_RADIUS, box.width / 2.0, box.height / 2.0))
        tag = "rect"
    else:
        cx, cy = box.center
        attrs.update(
            {
                "cx": fmt(cx),
                "cy": fmt(cy),
                "rx": fmt(box.width / 2.0),
                "ry": fmt(box.height / 2.0),
            }
        )
        tag = "ellipse"
    attrs.setdefault("fill", "none" if element.kind == "container" else "#ffffff")
    attrs.setdefault("stroke", "#333")
    attrs.setdefault("stroke-width", "1")
    g.append(ET.Element(_q(tag), attrs))

    if element.label is not None:
        g.append(_render_label(element.label, "#333"))
    return g


def _render_relationship(rel: RelationshipGeometry, marker_id: Optional[str]) -> ET.Element:
    g = ET.Element(_q("g"), {"id": rel.id, "class": f"relationship {rel.kind}"})
    points = rel.points
    if len(points) == 2:
        (x1, y1), (x2, y2) = points
        geometry = {"x1": fmt(x1), "y1": fmt(y1), "x2": fmt(x2), "y2": fmt(y2)}
        tag = "line"
    else:
        geometry = {"points": " ".join(f"{fmt(x)},{fmt(y)}" for x, y in points)}
        tag = "polyline"
    attrs: Dict[str, str] = dict(rel.style)
    attrs.update(geometry)
    attrs.setdefault("stroke", "#555")
    attrs.setdefault("stroke-width", "1")
    attrs.setdefault("fill", "none")
    if rel.directed and marker_id is not None and "marker-end" not in attrs and "marker-start" not in attrs:
        attrs["marker-end"] = f"url(#{marker_id})"
    g.append(ET.Element(_q(tag), attrs))

    if rel.label is not None:
        g.append(_render_label(rel.label, "#555"))
    return g


def _render_label(label: LabelPlacement, fill: str) -> ET.Element:
    attrs = {
        "x": fmt(label.x),
        "y": fmt(label.y),
        "text-anchor": "middle",
        "dominant-baseline": "central",
        "font-size": fmt(label.font_size),
        "fill": fill,
    }
    text = ET.Element(_q("text"), attrs)
    lines = label.lines
    if len(lines) == 1:
        text.text = lines[0]
        return text
    line_height = label.font_size * LINE_SPACING
    first_dy = -(len(lines) - 1) * line_height / 2.0
    for idx, line in enumerate(lines):
        tspan = ET.SubElement(
            text,
            _q("tspan"),
            {"x": fmt(label.x), "dy": fmt(first_dy if idx == 0 else line_height)},
        )
        tspan.text = line
    return text


def _ensure_default_arrow_marker(svg_root: ET.Element, existing_ids: Set[str]) -> str:
    marker_id = "diagramlayout-arrow"
    idx = 0
    while marker_id in existing_ids:
        idx += 1
        marker_id = f"diagramlayout-arrow-{idx}"
    defs = svg_root.find(_q("defs"))
    if defs is None:
        defs = ET.Element(_q("defs"))
        svg_root.insert(0, defs)

    marker = ET.Element(
        _q("marker"),
        {
            "id": marker_id,
            "viewBox": "0 0 10 10",
            "refX": "9",
            "refY": "5",
            "markerWidth": "6",
            "markerHeight": "6",
            "orient": "auto",
        },
    )
    ET.SubElement(marker, _q("path"), {"d": "M 0 0 L 10 5 L 0 10 z", "fill": "#555"})
    defs.append(marker)
    return marker_id


def _pretty_xml(element: ET.Element) -> str:
    ET.indent(element, space="  ")
    # Indentation inside <text> would render as extra spaces between lines.
    for text_node in element.iter(_q("text")):
        if len(text_node):
            text_node.text = None
            for tspan in text_node:
                tspan.tail = None
    return ET.tostring(element, encoding="unicode")


__all__ = ["render_svg", "SVG_NS"]
