"""Rebuild a searchable page string from independently positioned glyph runs.

PDFs encode glyph positions, not words or lines. Separators are inferred:
a newline when a run ends a line or the next run sits on a different
baseline, a space when the horizontal gap is wider than a fraction of a
glyph. The result approximates how a reader sees the page; unusual layouts
(justified text, superscripts) can be misclassified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pdfoid.config import EngineSettings
from pdfoid.extract.models import GlyphRun, PageRuns
from pdfoid.search.schemas import PageText, TextEntry

log = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 12.0


@dataclass(frozen=True)
class RunGeometry:
    text: str
    x: float
    y: float
    width: float
    avg_glyph_width: float
    font_size: float
    font_name: str | None
    transform: list[float]


def is_axis_aligned(run: GlyphRun, tolerance: float) -> bool:
    b, c = run.transform[1], run.transform[2]
    return abs(b) <= tolerance and abs(c) <= tolerance


def run_font_size(run: GlyphRun, fallback: float = DEFAULT_FONT_SIZE) -> float:
    """Font size from the vertical scale, then horizontal scale, then the declared size.

    The horizontal scale includes horizontal text scaling, so it is only a fallback.
    """
    a, d = run.transform[0], run.transform[3]
    return abs(d) or abs(a) or (run.font_size or 0.0) or fallback


def run_geometry(run: GlyphRun, settings: EngineSettings) -> RunGeometry | None:
    """Measure a run, or return None when it cannot be treated as axis-aligned text."""
    if not run.text or not run.has_valid_transform:
        return None
    if not is_axis_aligned(run, settings.shear_tolerance):
        return None

    font_size = max(1.0, run_font_size(run))
    if run.reported_width > 0:
        width = run.reported_width
    else:
        width = font_size * len(run.text) * settings.estimated_glyph_factor
    return RunGeometry(
        text=run.text,
        x=run.transform[4],
        y=run.transform[5],
        width=width,
        avg_glyph_width=width / max(1, len(run.text)),
        font_size=font_size,
        font_name=run.font_name,
        transform=list(run.transform[:6]),
    )


def infer_separator(
    current: GlyphRun,
    geom: RunGeometry,
    nxt: RunGeometry,
    settings: EngineSettings,
) -> str:
    if current.ends_line:
        return "\n"
    same_line_threshold = max(1.0, max(geom.font_size, nxt.font_size) * settings.same_line_factor)
    if abs(nxt.y - geom.y) > same_line_threshold:
        return "\n"
    gap = nxt.x - (geom.x + geom.width)
    if gap > max(geom.avg_glyph_width, nxt.avg_glyph_width) * settings.word_gap_factor:
        return " "
    return ""


def reconstruct_page_text(page_runs: PageRuns, settings: EngineSettings | None = None) -> PageText:
    """Concatenate the usable runs of a page into one string with per-run entries."""
    settings = settings or EngineSettings()
    usable: list[tuple[int, GlyphRun, RunGeometry]] = []
    for run_index, run in enumerate(page_runs.runs):
        geom = run_geometry(run, settings)
        if geom is None:
            continue
        usable.append((run_index, run, geom))

    parts: list[str] = []
    entries: list[TextEntry] = []
    cursor = 0
    for pos, (run_index, run, geom) in enumerate(usable):
        start = cursor
        parts.append(geom.text)
        cursor += len(geom.text)
        entries.append(
            TextEntry(
                run_index=run_index,
                string_start=start,
                string_end=cursor,
                origin_x=geom.x,
                origin_y=geom.y,
                run_width=geom.width,
                avg_glyph_width=geom.avg_glyph_width,
                font_size_pts=geom.font_size,
                font_name=geom.font_name,
                transform=geom.transform,
            )
        )
        if pos + 1 < len(usable):
            sep = infer_separator(run, geom, usable[pos + 1][2], settings)
            parts.append(sep)
            cursor += len(sep)

    skipped = len(page_runs.runs) - len(usable)
    if skipped:
        log.debug("Page %s: skipped %s unusable runs", page_runs.page_index + 1, skipped)

    return PageText(
        page_index=page_runs.page_index,
        text="".join(parts),
        entries=entries,
        page_width=page_runs.width,
        page_height=page_runs.height,
    )
