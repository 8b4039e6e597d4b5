"""Constraint resolver: derive containment, ordering and separation facts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .model import SceneGraph
from .options import LayoutOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Containment:
    container: str
    member: str
    margin: float


@dataclass(frozen=True)
class Ordering:
    """``before`` precedes ``after`` along the packing order of ``container``.

    ``container`` is ``None`` for top-level elements placed on the canvas.
    """

    container: Optional[str]
    before: str
    after: str


@dataclass(frozen=True)
class Separation:
    first: str
    second: str
    gap: float


@dataclass(frozen=True)
class ConstraintSet:
    containment: Tuple[Containment, ...]
    ordering: Tuple[Ordering, ...]
    separation: Tuple[Separation, ...]


def resolve_constraints(scene: SceneGraph, options: Optional[LayoutOptions] = None) -> ConstraintSet:
    """Derive the constraint set for ``scene``; same input, same output order."""
    options = options or LayoutOptions()
    containment: List[Containment] = []
    ordering: List[Ordering] = []
    separation: List[Separation] = []

    groups: List[Tuple[Optional[int], Tuple[int, ...]]] = [(None, scene.roots())]
    groups.extend((e.index, e.children) for e in scene.elements if e.is_container)

    for parent, members in groups:
        if parent is None:
            container_id = None
            gap = options.gutter
        else:
            container = scene.elements[parent]
            container_id = container.id
            margin = container.margin if container.margin is not None else options.margin
            gap = container.gap if container.gap is not None else options.gutter
            for member in members:
                containment.append(Containment(container.id, scene.elements[member].id, margin))

        for i, first in enumerate(members):
            for second in members[i + 1:]:
                first_id = scene.elements[first].id
                second_id = scene.elements[second].id
                ordering.append(Ordering(container_id, first_id, second_id))
                if scene.is_ancestor(first, second) or scene.is_ancestor(second, first):
                    continue
                separation.append(Separation(first_id, second_id, gap))

    resolved = ConstraintSet(
        containment=tuple(containment),
        ordering=tuple(ordering),
        separation=tuple(separation),
    )
    logger.debug(
        "resolved %d containment, %d ordering, %d separation constraints",
        len(resolved.containment),
        len(resolved.ordering),
        len(resolved.separation),
    )
    return resolved


__all__ = ["Containment", "Ordering", "Separation", "ConstraintSet", "resolve_constraints"]
