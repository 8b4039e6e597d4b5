"""JSON geometry emitter."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from .geometry import Box, ElementGeometry, GeometryModel, LabelPlacement, RelationshipGeometry, json_number

FORMAT_VERSION = 1


def emit_geometry(model: GeometryModel) -> str:
    """Serialize ``model`` as indented JSON.

    Numbers go through the same rounding as the SVG renderer, so a coordinate
    read from either output is identical.
    """
    payload = geometry_payload(model)
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def geometry_payload(model: GeometryModel) -> Dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "canvas": _box(model.canvas),
        "elements": [_element(e) for e in model.elements],
        "relationships": [_relationship(r) for r in model.relationships],
    }


def _box(box: Box) -> Dict[str, Any]:
    return {
        "x": json_number(box.x),
        "y": json_number(box.y),
        "width": json_number(box.width),
        "height": json_number(box.height),
    }


def _label(label: Optional[LabelPlacement]) -> Optional[Dict[str, Any]]:
    if label is None:
        return None
    return {
        "text": label.text,
        "x": json_number(label.x),
        "y": json_number(label.y),
        "width": json_number(label.width),
        "height": json_number(label.height),
        "font_size": json_number(label.font_size),
    }


def _element(element: ElementGeometry) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": element.id,
        "kind": element.kind,
        "shape": element.shape,
        "parent": element.parent,
        "depth": element.depth,
    }
    data.update(_box(element.box))
    data["label"] = _label(element.label)
    data["style"] = dict(element.style)
    return data


def _relationship(rel: RelationshipGeometry) -> Dict[str, Any]:
    return {
        "id": rel.id,
        "source": rel.source,
        "target": rel.target,
        "directed": rel.directed,
        "kind": rel.kind,
        "routing": rel.routing,
        "points": [[json_number(x), json_number(y)] for x, y in rel.points],
        "label": _label(rel.label),
        "style": dict(rel.style),
    }


__all__ = ["emit_geometry", "geometry_payload", "FORMAT_VERSION"]
