from __future__ import annotations

import math

from pydantic import BaseModel, Field


class GlyphRun(BaseModel):
    """One positioned run of text as reported by the parsing layer.

    ``transform`` is the 2x3 affine ``(a, b, c, d, e, f)`` in PDF user space
    (bottom-left origin); ``(e, f)`` is the baseline origin of the first glyph.
    """

    text: str = ""
    transform: list[float] = Field(default_factory=list)
    reported_width: float = 0.0
    font_name: str | None = None
    font_size: float | None = None
    ends_line: bool = False

    @property
    def has_valid_transform(self) -> bool:
        if len(self.transform) < 6:
            return False
        a, b, c, d, e, f = self.transform[:6]
        if not all(math.isfinite(v) for v in (a, b, c, d, e, f)):
            return False
        return bool(a or b or c or d)


class PageRuns(BaseModel):
    """All glyph runs of one page plus the page size in points."""

    page_index: int = Field(ge=0)
    width: float
    height: float
    runs: list[GlyphRun] = Field(default_factory=list)
