"""Pydantic schemas for page text reconstruction and search results."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Rect(BaseModel):
    """Rectangle in PDF points (bottom-left origin). For matches ``y`` is the baseline."""

    x: float
    y: float
    width: float
    height: float


class TextEntry(BaseModel):
    """Slice of the reconstructed page string contributed by one glyph run."""

    run_index: int = Field(ge=0)
    string_start: int = Field(ge=0)
    string_end: int = Field(ge=0)
    origin_x: float
    origin_y: float
    run_width: float
    avg_glyph_width: float
    font_size_pts: float
    font_name: str | None = None
    transform: list[float] = Field(default_factory=list)

    def contains(self, pos: int) -> bool:
        return self.string_start <= pos < self.string_end


class PageText(BaseModel):
    """Linear text of one page with a map from every character back to its run."""

    page_index: int = Field(ge=0)
    text: str = ""
    entries: list[TextEntry] = Field(default_factory=list)
    page_width: float = 0.0
    page_height: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.entries


class FindTextOptions(BaseModel):
    search: str
    case_sensitive: bool = False
    whole_word: bool = True


class ReplaceTextOptions(FindTextOptions):
    replace: str = ""


class MatchSpan(BaseModel):
    """Match location in reconstructed-string offsets, ``[start, end)``."""

    page_index: int
    start: int
    end: int


class TextMatch(BaseModel):
    """One search hit mapped back to page geometry."""

    id: str
    page_index: int = Field(ge=0)
    run_index: int = Field(ge=0)
    end_run_index: int | None = None
    start_in_run: int = Field(ge=0)
    length: int = Field(gt=0)
    rect: Rect
    snippet: str = ""
    font_name: str | None = None
    transform: list[float] | None = None
    original_font_size: float
    # unclamped text position; rect is cut to the page for display
    baseline_x: float | None = None
    baseline_y: float | None = None
    selection_width: float | None = None

    @property
    def is_single_run(self) -> bool:
        return self.end_run_index is None
