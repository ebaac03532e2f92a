from __future__ import annotations

from functools import lru_cache

import fitz


class FontMetrics:
    """Measurements of the font the replacement text is drawn with."""

    def __init__(self, font_name: str = "helv") -> None:
        self.font_name = font_name
        self._font = fitz.Font(font_name)

    def text_width(self, text: str, size: float) -> float:
        if not text:
            return 0.0
        return float(self._font.text_length(text, fontsize=size))

    def ascender_height(self, size: float) -> float:
        return max(0.0, float(self._font.ascender)) * size

    def descender_depth(self, size: float) -> float:
        return abs(min(0.0, float(self._font.descender))) * size


@lru_cache(maxsize=8)
def get_font_metrics(font_name: str = "helv") -> FontMetrics:
    return FontMetrics(font_name)
