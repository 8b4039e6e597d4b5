"""Model builder: parsed input document to an immutable scene graph."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import CyclicContainment, DuplicateIdentifier, InvalidDocument, UnresolvedReference

logger = logging.getLogger(__name__)

ATOMIC = "atomic"
CONTAINER = "container"
KINDS = (ATOMIC, CONTAINER)
SHAPES = ("rect", "rounded", "ellipse")
ROUTINGS = ("straight", "orthogonal")

PLAIN = "plain"
NESTED = "nested"
LOOP = "loop"

_ELEMENT_KEYS = {
    "id",
    "kind",
    "label",
    "shape",
    "style",
    "parent",
    "children",
    "width",
    "height",
    "min_width",
    "min_height",
    "margin",
    "gap",
}
_RELATIONSHIP_KEYS = {"id", "from", "to", "source", "target", "label", "directed", "routing", "style"}

Style = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Element:
    id: str
    index: int
    kind: str
    parent: Optional[int]
    children: Tuple[int, ...]
    label: Optional[str]
    shape: str
    width: Optional[float]
    height: Optional[float]
    min_width: Optional[float]
    min_height: Optional[float]
    margin: Optional[float]
    gap: Optional[float]
    style: Style
    location: str

    @property
    def is_container(self) -> bool:
        return self.kind == CONTAINER


@dataclass(frozen=True)
class Relationship:
    id: str
    index: int
    source: str
    target: str
    directed: bool
    label: Optional[str]
    routing: str
    style: Style
    kind: str
    location: str


@dataclass(frozen=True)
class SceneGraph:
    """Elements in declaration order plus relationships, indexed by id."""

    elements: Tuple[Element, ...]
    relationships: Tuple[Relationship, ...]
    index: Mapping[str, int] = field(repr=False)

    def element(self, element_id: str) -> Element:
        return self.elements[self.index[element_id]]

    def roots(self) -> Tuple[int, ...]:
        return tuple(e.index for e in self.elements if e.parent is None)

    def ancestors(self, idx: int) -> Iterator[int]:
        """Yield ancestor indices, nearest first."""
        cursor = self.elements[idx].parent
        while cursor is not None:
            yield cursor
            cursor = self.elements[cursor].parent

    def is_ancestor(self, candidate: int, idx: int) -> bool:
        return any(a == candidate for a in self.ancestors(idx))

    def depth(self, idx: int) -> int:
        return sum(1 for _ in self.ancestors(idx))

    def post_order(self) -> List[int]:
        """Containment forest in post-order; children before their container."""
        order: List[int] = []
        stack: List[Tuple[int, bool]] = [(root, False) for root in reversed(self.roots())]
        while stack:
            idx, expanded = stack.pop()
            if expanded:
                order.append(idx)
                continue
            stack.append((idx, True))
            for child in reversed(self.elements[idx].children):
                stack.append((child, False))
        return order

    def pre_order(self) -> List[int]:
        order: List[int] = []
        stack: List[int] = list(reversed(self.roots()))
        while stack:
            idx = stack.pop()
            order.append(idx)
            stack.extend(reversed(self.elements[idx].children))
        return order


@dataclass
class _RawElement:
    data: Mapping[str, Any]
    location: str
    nested_parent: Optional[str]


def build_scene(document: Any) -> SceneGraph:
    """Validate ``document`` and build the scene graph it describes."""
    if not isinstance(document, Mapping):
        raise InvalidDocument("$", "document must be a JSON object")

    raw_elements = _flatten_elements(_sequence(document.get("elements", []), "elements"))
    raw_relationships = _sequence(document.get("relationships", []), "relationships")

    taken: Dict[str, str] = {}
    ids: List[str] = []
    for raw in raw_elements:
        element_id = _identifier(raw.data.get("id"), f"{raw.location}.id")
        if element_id in taken:
            raise DuplicateIdentifier(element_id, taken[element_id], raw.location)
        taken[element_id] = raw.location
        ids.append(element_id)
    index = {element_id: idx for idx, element_id in enumerate(ids)}

    parents = [_resolve_parent(raw, ids[idx], index) for idx, raw in enumerate(raw_elements)]
    _check_forest(ids, parents)

    children: List[List[int]] = [[] for _ in ids]
    for idx, parent in enumerate(parents):
        if parent is not None:
            children[parent].append(idx)

    elements = tuple(
        _build_element(raw, ids[idx], idx, parents[idx], tuple(children[idx]))
        for idx, raw in enumerate(raw_elements)
    )

    for rel_index, data in enumerate(raw_relationships):
        location = f"relationships[{rel_index}]"
        if isinstance(data, Mapping) and data.get("id") is not None:
            rel_id = _identifier(data.get("id"), f"{location}.id")
            if rel_id in taken:
                raise DuplicateIdentifier(rel_id, taken[rel_id], location)
            taken[rel_id] = location

    relationships: List[Relationship] = []
    reserved: Set[str] = set(taken)
    for rel_index, data in enumerate(raw_relationships):
        location = f"relationships[{rel_index}]"
        relationships.append(_build_relationship(data, location, rel_index, elements, index, reserved))

    scene = SceneGraph(
        elements=elements,
        relationships=tuple(relationships),
        index=MappingProxyType(index),
    )
    logger.debug(
        "built scene graph: %d elements (%d roots), %d relationships",
        len(elements),
        len(scene.roots()),
        len(relationships),
    )
    return scene


def _flatten_elements(items: Sequence[Any]) -> List[_RawElement]:
    flat: List[_RawElement] = []
    stack: List[Tuple[Any, str, Optional[str]]] = [
        (item, f"elements[{i}]", None) for i, item in reversed(list(enumerate(items)))
    ]
    while stack:
        data, location, nested_parent = stack.pop()
        if not isinstance(data, Mapping):
            raise InvalidDocument(location, "element must be an object")
        unknown = sorted(set(data) - _ELEMENT_KEYS)
        if unknown:
            raise InvalidDocument(location, f"unknown element field(s): {', '.join(unknown)}")
        flat.append(_RawElement(data=data, location=location, nested_parent=nested_parent))
        nested = data.get("children")
        if nested is None:
            continue
        nested_items = _sequence(nested, f"{location}.children")
        if nested_items:
            owner = _identifier(data.get("id"), f"{location}.id")
            for i in reversed(range(len(nested_items))):
                stack.append((nested_items[i], f"{location}.children[{i}]", owner))
    return flat


def _resolve_parent(raw: _RawElement, element_id: str, index: Mapping[str, int]) -> Optional[int]:
    declared = raw.data.get("parent")
    if declared is not None:
        declared = _identifier(declared, f"{raw.location}.parent")
    if raw.nested_parent is not None and declared is not None and declared != raw.nested_parent:
        raise InvalidDocument(
            f"{raw.location}.parent",
            f'nested inside "{raw.nested_parent}" but declares parent "{declared}"',
        )
    parent_id = declared if declared is not None else raw.nested_parent
    if parent_id is None:
        return None
    if parent_id not in index:
        raise UnresolvedReference(parent_id, f'element "{element_id}"', "parent")
    return index[parent_id]


def _check_forest(ids: Sequence[str], parents: Sequence[Optional[int]]) -> None:
    state = [0] * len(ids)
    for start in range(len(ids)):
        path: List[int] = []
        cursor: Optional[int] = start
        while cursor is not None and state[cursor] == 0:
            state[cursor] = 1
            path.append(cursor)
            cursor = parents[cursor]
        if cursor is not None and state[cursor] == 1:
            cycle = path[path.index(cursor):]
            raise CyclicContainment([ids[i] for i in cycle])
        for idx in path:
            state[idx] = 2


def _build_element(
    raw: _RawElement,
    element_id: str,
    idx: int,
    parent: Optional[int],
    children: Tuple[int, ...],
) -> Element:
    data = raw.data
    location = raw.location
    kind = data.get("kind")
    if kind is None:
        kind = CONTAINER if children else ATOMIC
    elif kind not in KINDS:
        raise InvalidDocument(f"{location}.kind", f"must be one of {'|'.join(KINDS)} (got {kind!r})")
    if kind == ATOMIC and children:
        raise InvalidDocument(location, f'atomic element "{element_id}" cannot have members')

    shape = data.get("shape", "rect")
    if shape not in SHAPES:
        raise InvalidDocument(f"{location}.shape", f"must be one of {'|'.join(SHAPES)} (got {shape!r})")

    margin = _length(data.get("margin"), f"{location}.margin", allow_zero=True)
    gap = _length(data.get("gap"), f"{location}.gap", allow_zero=True)
    if kind == ATOMIC and (margin is not None or gap is not None):
        raise InvalidDocument(location, "margin and gap only apply to containers")

    return Element(
        id=element_id,
        index=idx,
        kind=kind,
        parent=parent,
        children=children,
        label=_label(data.get("label"), f"{location}.label"),
        shape=shape,
        width=_length(data.get("width"), f"{location}.width"),
        height=_length(data.get("height"), f"{location}.height"),
        min_width=_length(data.get("min_width"), f"{location}.min_width"),
        min_height=_length(data.get("min_height"), f"{location}.min_height"),
        margin=margin,
        gap=gap,
        style=_style(data.get("style"), f"{location}.style"),
        location=location,
    )


def _build_relationship(
    data: Any,
    location: str,
    rel_index: int,
    elements: Sequence[Element],
    index: Mapping[str, int],
    reserved: Set[str],
) -> Relationship:
    if not isinstance(data, Mapping):
        raise InvalidDocument(location, "relationship must be an object")
    unknown = sorted(set(data) - _RELATIONSHIP_KEYS)
    if unknown:
        raise InvalidDocument(location, f"unknown relationship field(s): {', '.join(unknown)}")

    source = _endpoint(data, location, "from", "source")
    target = _endpoint(data, location, "to", "target")

    if data.get("id") is not None:
        rel_id = _identifier(data.get("id"), f"{location}.id")
    else:
        rel_id = _reserve_unique_id(reserved, f"rel-{rel_index + 1}")

    describe = f'relationship "{rel_id}"'
    for endpoint, field_name in ((source, "from"), (target, "to")):
        if endpoint not in index:
            raise UnresolvedReference(endpoint, describe, field_name)

    directed = data.get("directed", True)
    if not isinstance(directed, bool):
        raise InvalidDocument(f"{location}.directed", "must be true or false")
    routing = data.get("routing", "straight")
    if routing not in ROUTINGS:
        raise InvalidDocument(f"{location}.routing", f"must be one of {'|'.join(ROUTINGS)} (got {routing!r})")

    src_idx = index[source]
    dst_idx = index[target]
    if src_idx == dst_idx:
        kind = LOOP
    elif _is_ancestor(elements, src_idx, dst_idx) or _is_ancestor(elements, dst_idx, src_idx):
        kind = NESTED
    else:
        kind = PLAIN

    return Relationship(
        id=rel_id,
        index=rel_index,
        source=source,
        target=target,
        directed=directed,
        label=_label(data.get("label"), f"{location}.label"),
        routing=routing,
        style=_style(data.get("style"), f"{location}.style"),
        kind=kind,
        location=location,
    )


def _is_ancestor(elements: Sequence[Element], candidate: int, idx: int) -> bool:
    cursor = elements[idx].parent
    while cursor is not None:
        if cursor == candidate:
            return True
        cursor = elements[cursor].parent
    return False


def _endpoint(data: Mapping[str, Any], location: str, key: str, alias: str) -> str:
    if key in data and alias in data:
        raise InvalidDocument(location, f'use either "{key}" or "{alias}", not both')
    value = data.get(key, data.get(alias))
    return _identifier(value, f"{location}.{key}")


def _reserve_unique_id(existing: Set[str], base: str) -> str:
    if base not in existing:
        existing.add(base)
        return base
    idx = 1
    while True:
        candidate = f"{base}-{idx}"
        if candidate not in existing:
            existing.add(candidate)
            return candidate
        idx += 1


def _sequence(value: Any, location: str) -> Sequence[Any]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise InvalidDocument(location, "must be an array")
    return value


def _identifier(value: Any, location: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidDocument(location, "must be a non-empty string")
    return value.strip()


def _label(value: Any, location: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidDocument(location, "must be a string")
    text = str(value)
    return text if text.strip() else None


def _length(value: Any, location: str, *, allow_zero: bool = False) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidDocument(location, f"must be a number (got {value!r})")
    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidDocument(location, f"must be {'>= 0' if allow_zero else '> 0'} (got {value!r})")
    return float(value)


def _style(value: Any, location: str) -> Style:
    if value is None:
        return ()
    if not isinstance(value, Mapping):
        raise InvalidDocument(location, "must be an object")
    pairs: List[Tuple[str, str]] = []
    for key, item in value.items():
        if isinstance(item, bool):
            item = "true" if item else "false"
        elif not isinstance(item, (str, int, float)):
            raise InvalidDocument(f"{location}.{key}", "style values must be scalars")
        pairs.append((str(key), str(item)))
    return tuple(pairs)


__all__ = [
    "ATOMIC",
    "CONTAINER",
    "LOOP",
    "NESTED",
    "PLAIN",
    "Element",
    "Relationship",
    "SceneGraph",
    "build_scene",
]
