"""Resolved, immutable geometry shared by the SVG and JSON outputs."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple, Union

Point = Tuple[float, float]
Style = Tuple[Tuple[str, str], ...]

EPSILON = 1e-6
PRECISION = 3


def snap(value: float) -> float:
    """Round to the precision every output format prints."""
    snapped = round(value, PRECISION)
    if snapped == 0:
        return 0.0
    return snapped


def snap_point(point: Point) -> Point:
    return snap(point[0]), snap(point[1])


def fmt(value: float) -> str:
    if math.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.{PRECISION}f}".rstrip("0").rstrip(".")


def json_number(value: float) -> Union[int, float]:
    if math.isclose(value, round(value)):
        return int(round(value))
    return float(fmt(value))


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float) -> "Box":
        return cls(left, top, right - left, bottom - top)

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def snapped(self) -> "Box":
        """Snap the edges, not the extents, so abutting boxes stay abutting."""
        left, top = snap(self.left), snap(self.top)
        return Box(left, top, snap(snap(self.right) - left), snap(snap(self.bottom) - top))

    def inflate(self, amount: float) -> "Box":
        return Box(self.x - amount, self.y - amount, self.width + 2 * amount, self.height + 2 * amount)

    def overlaps(self, other: "Box") -> bool:
        """True when the interiors intersect; shared edges do not count."""
        return (
            self.left < other.right - EPSILON
            and other.left < self.right - EPSILON
            and self.top < other.bottom - EPSILON
            and other.top < self.bottom - EPSILON
        )

    def contains(self, other: "Box", inset: float = 0.0) -> bool:
        return (
            other.left >= self.left + inset - EPSILON
            and other.top >= self.top + inset - EPSILON
            and other.right <= self.right - inset + EPSILON
            and other.bottom <= self.bottom - inset + EPSILON
        )

    def contains_point(self, point: Point) -> bool:
        px, py = point
        return self.left < px < self.right and self.top < py < self.bottom

    def union(self, other: "Box") -> "Box":
        return Box.from_edges(
            min(self.left, other.left),
            min(self.top, other.top),
            max(self.right, other.right),
            max(self.bottom, other.bottom),
        )


def bounding_box(points: Iterable[Point]) -> Optional[Box]:
    xs = []
    ys = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        return None
    return Box.from_edges(min(xs), min(ys), max(xs), max(ys))


@dataclass(frozen=True)
class LabelPlacement:
    """Label text centred on ``(x, y)`` with its measured box size."""

    text: str
    x: float
    y: float
    width: float
    height: float
    font_size: float

    @property
    def box(self) -> Box:
        return Box(self.x - self.width / 2.0, self.y - self.height / 2.0, self.width, self.height)

    @property
    def lines(self) -> Tuple[str, ...]:
        return tuple(self.text.split("\n"))


@dataclass(frozen=True)
class ElementGeometry:
    id: str
    kind: str
    shape: str
    parent: Optional[str]
    depth: int
    box: Box
    label: Optional[LabelPlacement]
    style: Style


@dataclass(frozen=True)
class RelationshipGeometry:
    id: str
    source: str
    target: str
    directed: bool
    kind: str
    routing: str
    points: Tuple[Point, ...]
    label: Optional[LabelPlacement]
    style: Style


@dataclass(frozen=True)
class GeometryModel:
    canvas: Box
    elements: Tuple[ElementGeometry, ...]
    relationships: Tuple[RelationshipGeometry, ...]
    font_family: str = "sans-serif"
    _by_id: Optional[Mapping[str, int]] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._by_id is None:
            lookup = {geom.id: idx for idx, geom in enumerate(self.elements)}
            object.__setattr__(self, "_by_id", MappingProxyType(lookup))

    def element(self, element_id: str) -> ElementGeometry:
        return self.elements[self._by_id[element_id]]

    def relationship(self, relationship_id: str) -> RelationshipGeometry:
        for geom in self.relationships:
            if geom.id == relationship_id:
                return geom
        raise KeyError(relationship_id)


__all__ = [
    "Box",
    "ElementGeometry",
    "GeometryModel",
    "LabelPlacement",
    "Point",
    "RelationshipGeometry",
    "bounding_box",
    "fmt",
    "json_number",
    "snap",
    "snap_point",
]
