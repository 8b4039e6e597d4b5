"""End-to-end entry points: document to geometry, SVG and JSON."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from .constraints import resolve_constraints
from .errors import InvalidDocument
from .geometry import GeometryModel
from .geometry_json import emit_geometry
from .layout import compute_layout
from .model import build_scene
from .options import LayoutOptions
from .svg import render_svg

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    model: GeometryModel
    svg: Optional[str] = None
    json: Optional[str] = None


def resolve_options(
    document: Any,
    options: Optional[LayoutOptions] = None,
    overrides: Iterable[str] = (),
) -> LayoutOptions:
    """Layer the document's ``options`` object and ``KEY=VALUE`` overrides onto ``options``."""
    resolved = options or LayoutOptions()
    if isinstance(document, Mapping):
        resolved = resolved.merged(document.get("options"))
    return resolved.with_overrides(overrides)


def compile_layout(
    document: Any,
    options: Optional[LayoutOptions] = None,
    *,
    overrides: Iterable[str] = (),
) -> GeometryModel:
    """Run model building, constraint resolution and layout on a parsed document."""
    if not isinstance(document, Mapping):
        raise InvalidDocument("$", "document must be a JSON object")
    resolved = resolve_options(document, options, overrides)
    logger.debug("layout options: %s", resolved)
    scene = build_scene(document)
    constraints = resolve_constraints(scene, resolved)
    return compute_layout(scene, constraints, resolved)


def render_document(
    document: Any,
    *,
    svg: bool = True,
    json: bool = True,
    options: Optional[LayoutOptions] = None,
    overrides: Iterable[str] = (),
    scale: float = 1.0,
) -> RenderResult:
    """Lay out ``document`` and render the requested outputs in memory."""
    model = compile_layout(document, options, overrides=overrides)
    return RenderResult(
        model=model,
        svg=render_svg(model, scale=scale) if svg else None,
        json=emit_geometry(model) if json else None,
    )


__all__ = ["RenderResult", "compile_layout", "render_document", "resolve_options"]
