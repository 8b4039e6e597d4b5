"""Public API for diagramlayout."""
from .constraints import ConstraintSet, resolve_constraints
from .errors import (
    CyclicContainment,
    DuplicateIdentifier,
    InvalidDocument,
    InvalidOptions,
    LayoutError,
    UnresolvedReference,
    UnsatisfiableConstraints,
)
from .geometry import GeometryModel
from .geometry_json import emit_geometry
from .layout import compute_layout
from .model import SceneGraph, build_scene
from .options import LayoutOptions
from .pipeline import RenderResult, compile_layout, render_document
from .svg import render_svg

__all__ = [
    "build_scene",
    "resolve_constraints",
    "compute_layout",
    "render_svg",
    "emit_geometry",
    "compile_layout",
    "render_document",
    "RenderResult",
    "SceneGraph",
    "ConstraintSet",
    "GeometryModel",
    "LayoutOptions",
    "LayoutError",
    "InvalidDocument",
    "InvalidOptions",
    "DuplicateIdentifier",
    "UnresolvedReference",
    "CyclicContainment",
    "UnsatisfiableConstraints",
]
