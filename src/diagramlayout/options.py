"""Layout configuration: defaults, document overrides and CLI overrides."""
from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import InvalidOptions

TEXT_METRICS_MODES = ("font", "heuristic")

# Options that must be strictly positive; everything else numeric is >= 0.
_POSITIVE = {"default_width", "default_height", "aspect_ratio", "font_size", "label_font_size"}
_INTEGRAL = {"label_nudge_limit"}
_STRINGS = {"font_family", "font_path", "text_metrics"}


@dataclass(frozen=True)
class LayoutOptions:
    margin: float = 16.0
    gutter: float = 24.0
    canvas_padding: float = 20.0
    default_width: float = 120.0
    default_height: float = 60.0
    aspect_ratio: float = 1.5
    font_size: float = 14.0
    label_font_size: float = 11.0
    font_family: str = "sans-serif"
    font_path: Optional[str] = None
    text_metrics: str = "font"
    label_padding: float = 8.0
    label_offset: float = 6.0
    label_nudge_step: float = 8.0
    label_nudge_limit: int = 6
    bend_penalty: float = 20.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "LayoutOptions":
        return cls().merged(data)

    def merged(self, data: Optional[Mapping[str, Any]]) -> "LayoutOptions":
        """Return a copy with ``data`` applied on top of this instance."""
        if not data:
            return self
        if not isinstance(data, Mapping):
            raise InvalidOptions("options", "must be an object")
        known = {f.name for f in fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in data.items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise InvalidOptions(str(key), "unknown option")
            changes[name] = _coerce(name, value)
        return replace(self, **changes)

    def with_overrides(self, pairs: Iterable[str]) -> "LayoutOptions":
        """Apply ``KEY=VALUE`` strings as given on the command line."""
        parsed: Dict[str, Any] = {}
        for pair in pairs:
            if "=" not in pair:
                raise InvalidOptions(pair, "expected KEY=VALUE")
            key, value = pair.split("=", 1)
            parsed[key.strip()] = value.strip()
        return self.merged(parsed)

    @property
    def route_clearance(self) -> float:
        """Distance kept between routed paths and the boxes they avoid."""
        return max(min(self.margin, self.gutter) / 3.0, 0.5)


def _coerce(name: str, value: Any) -> Any:
    if name in _STRINGS:
        if name == "font_path" and (value is None or value == ""):
            return None
        if not isinstance(value, str) or not value.strip():
            raise InvalidOptions(name, "must be a non-empty string")
        value = value.strip()
        if name == "text_metrics" and value not in TEXT_METRICS_MODES:
            raise InvalidOptions(name, f"must be one of {'|'.join(TEXT_METRICS_MODES)}")
        return value

    if isinstance(value, bool):
        raise InvalidOptions(name, "must be a number")
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise InvalidOptions(name, f"expected a number, got {value!r}")
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidOptions(name, "must be a finite number")
    if name in _POSITIVE and value <= 0:
        raise InvalidOptions(name, "must be > 0")
    if value < 0:
        raise InvalidOptions(name, "must be >= 0")
    if name in _INTEGRAL:
        if value != int(value):
            raise InvalidOptions(name, "must be an integer")
        return int(value)
    return float(value)


__all__ = ["LayoutOptions", "TEXT_METRICS_MODES"]
