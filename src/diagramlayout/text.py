"""Label text measurement backed by Pillow font metrics."""
from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import ImageFont

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "sans-serif"
GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": [
        "Courier New",
        "Courier",
        "Liberation Mono",
        "DejaVu Sans Mono",
    ],
}
LINE_SPACING = 1.2


class TextMeasurer:
    """Measures label boxes; caches Pillow fonts for the whole process."""

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/System/Library/Fonts/Supplemental"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    _font_cache: Dict[Tuple[str, int], "ImageFont.ImageFont"] = {}
    _font_paths: Dict[str, Optional[str]] = {}

    def __init__(
        self,
        mode: str = "font",
        family: Optional[str] = None,
        explicit_path: Optional[str] = None,
    ) -> None:
        self.mode = mode
        self.family = family or DEFAULT_FONT_FAMILY
        self.explicit_path = str(Path(explicit_path).expanduser()) if explicit_path else None

    def measure(self, text: str, size: float) -> Tuple[float, float]:
        """Return ``(width, height)`` of a possibly multi-line label."""
        lines = text.split("\n")
        width = max(self.line_width(line, size) for line in lines)
        ascent, descent, line_height = self.metrics(size)
        height = ascent + descent + (len(lines) - 1) * line_height * LINE_SPACING
        return width, height

    def line_width(self, text: str, size: float) -> float:
        if self.mode == "heuristic":
            return _heuristic_width(text, size)
        font = self.font(size)
        return float(font.getlength(text))

    def metrics(self, size: float) -> Tuple[float, float, float]:
        if self.mode == "heuristic":
            ascent = 0.8 * size
            descent = 0.2 * size
            return ascent, descent, ascent + descent
        font = self.font(size)
        try:
            ascent, descent = font.getmetrics()
        except AttributeError:
            # Bitmap fallback fonts expose no metrics.
            return 0.8 * size, 0.2 * size, float(size)
        return float(ascent), float(descent), float(ascent + descent)

    def font(self, size: float) -> "ImageFont.ImageFont":
        key_size = max(1, int(round(size)))
        key_family = (self.explicit_path or self.family).lower()
        cache_key = (key_family, key_size)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        candidates: List[str] = []
        if self.explicit_path:
            candidates.append(self.explicit_path)
        mapped_families = GENERIC_FONT_FALLBACKS.get(self.family.lower(), [self.family])
        for fam in mapped_families:
            resolved = self._locate_font(fam)
            if resolved:
                candidates.append(resolved)
        candidates.append("DejaVuSans.ttf")

        font: Optional["ImageFont.ImageFont"] = None
        for candidate in candidates:
            try:
                path, index = self._parse_font_candidate(candidate)
                font = ImageFont.truetype(path, key_size, index=index)
                break
            except OSError:
                continue
        if font is None:
            logger.warning("no TrueType font found for %r; using Pillow's default font", key_family)
            font = ImageFont.load_default(size=key_size)

        self._font_cache[cache_key] = font
        return font

    def _locate_font(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._font_paths:
            return self._font_paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", family, flags=re.IGNORECASE).lower()
        if not normalized:
            self._font_paths[key] = None
            return None
        aliases = {normalized, normalized + "mt", normalized + "psmt"}
        best_match: Optional[Tuple[int, str]] = None
        for directory in self.FONT_DIRS:
            if not directory.exists():
                continue
            try:
                for glob in ("*.ttf", "*.ttc"):
                    for path in sorted(directory.rglob(glob)):
                        stem = re.sub(r"[^a-z0-9]+", "", path.stem, flags=re.IGNORECASE).lower()
                        if stem in aliases:
                            match_score = 0
                        elif stem.startswith(normalized):
                            match_score = 1
                        elif normalized in stem:
                            match_score = 2
                        else:
                            continue
                        candidate = str(path) if glob == "*.ttf" else f"{path};0"
                        if best_match is None or match_score < best_match[0]:
                            best_match = (match_score, candidate)
            except OSError:
                continue
        resolved = best_match[1] if best_match else None
        self._font_paths[key] = resolved
        logger.debug("font family %r resolved to %s", family, resolved)
        return resolved

    @staticmethod
    def _parse_font_candidate(candidate: str) -> Tuple[str, int]:
        if ";" in candidate:
            path, idx = candidate.split(";", 1)
            try:
                return path, int(idx)
            except ValueError:
                return path, 0
        return candidate, 0


def _heuristic_width(text: str, font_size: float) -> float:
    width = 0.0
    for ch in text:
        if ch.isspace():
            width += font_size * 0.33
        elif ch in "il":
            width += font_size * 0.3
        elif ch in "mwMW@#":
            width += font_size * 0.9
        else:
            width += font_size * 0.6
    return width


def ceil_size(value: float) -> float:
    """Round a measured length up to whole units."""
    return float(math.ceil(value - 1e-9))


__all__ = ["TextMeasurer", "ceil_size", "LINE_SPACING"]
