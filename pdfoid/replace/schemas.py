"""Pydantic schemas for replacement planning and outcomes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from pdfoid.search.schemas import Rect

SkipReason = Literal["TEXT_TOO_WIDE", "ERASE_TOO_WIDE", "GENERIC_FAILURE"]


class MatchGeometry(BaseModel):
    """Where the matched text sits, in PDF points."""

    baseline_x: float
    baseline_y: float
    selection_width: float
    font_size: float
    refined: bool = False
    calibration: float = 1.0


class ReplacementPlan(BaseModel):
    """Erase-and-redraw instructions for one match. Never persisted."""

    page_index: int
    replacement: str
    fits: bool
    reason: SkipReason | None = None
    scale: float = 1.0
    draw_font_size: float = 0.0
    text_width: float = 0.0
    text_x: float = 0.0
    text_y: float = 0.0
    erase: Rect | None = None


class ReplaceOutcome(BaseModel):
    replaced: bool
    reason: SkipReason | None = None


class ReplaceTextResult(BaseModel):
    replacements: int = 0
    skipped: int = 0
