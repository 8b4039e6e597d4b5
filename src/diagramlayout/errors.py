"""Error taxonomy shared by every pipeline stage."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple


class LayoutError(ValueError):
    """Structured pipeline error with a stable code for CLI mapping."""

    code = "E_LAYOUT"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidDocument(LayoutError):
    """Raised when the input document does not have the expected shape."""

    code = "E_INPUT"

    def __init__(self, location: str, message: str) -> None:
        super().__init__(f"{location}: {message}")
        self.location = location


class InvalidOptions(LayoutError):
    code = "E_OPTIONS"

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f'option "{key}": {message}')
        self.key = key


class DuplicateIdentifier(LayoutError):
    code = "E_DUPLICATE_ID"

    def __init__(self, identifier: str, first: str, second: str) -> None:
        super().__init__(f'duplicate id "{identifier}" declared at {first} and {second}')
        self.identifier = identifier
        self.locations = (first, second)


class UnresolvedReference(LayoutError):
    code = "E_UNRESOLVED_REF"

    def __init__(self, identifier: str, referrer: str, field: str) -> None:
        super().__init__(f'{referrer} {field}="{identifier}" does not name a known element')
        self.identifier = identifier
        self.referrer = referrer
        self.field = field


class CyclicContainment(LayoutError):
    code = "E_CYCLIC_CONTAINMENT"

    def __init__(self, cycle: Sequence[str]) -> None:
        chain = " -> ".join(list(cycle) + [cycle[0]])
        super().__init__(f"container membership forms a cycle: {chain}")
        self.cycle: Tuple[str, ...] = tuple(cycle)


class UnsatisfiableConstraints(LayoutError):
    """Raised when the packing policy cannot honour a constraint."""

    code = "E_UNSATISFIABLE"

    def __init__(
        self,
        identifiers: Sequence[str],
        message: str,
        *,
        required: Optional[Tuple[float, float]] = None,
        declared: Optional[Tuple[Optional[float], Optional[float]]] = None,
    ) -> None:
        super().__init__(message)
        self.identifiers: Tuple[str, ...] = tuple(identifiers)
        self.required = required
        self.declared = declared


__all__ = [
    "LayoutError",
    "InvalidDocument",
    "InvalidOptions",
    "DuplicateIdentifier",
    "UnresolvedReference",
    "CyclicContainment",
    "UnsatisfiableConstraints",
]
