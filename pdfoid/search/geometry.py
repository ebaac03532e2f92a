"""Map reconstructed-string spans back to page rectangles.

A span becomes a TextMatch only when both of its ends fall inside glyph runs
and every run it covers sits on the same visual line; anything else has no
meaningful single rectangle and is dropped.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass

from pdfoid.config import EngineSettings
from pdfoid.search.schemas import MatchSpan, PageText, Rect, TextEntry, TextMatch

log = logging.getLogger(__name__)

_SINGLE_ID_RE = re.compile(r"p(\d+)_i(\d+)_s(\d+)_l(\d+)")
_MULTI_ID_RE = re.compile(r"p(\d+)_i(\d+)_j(\d+)_s(\d+)_e(\d+)")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class MatchIdParts:
    page_index: int
    run_index: int
    start_in_run: int
    length: int | None = None
    end_run_index: int | None = None
    end_in_run: int | None = None

    @property
    def is_single_run(self) -> bool:
        return self.end_run_index is None


def make_match_id(
    page_index: int,
    run_index: int,
    start_in_run: int,
    length: int,
    end_run_index: int | None = None,
    end_in_run: int | None = None,
) -> str:
    if end_run_index is None or end_run_index == run_index:
        return f"p{page_index}_i{run_index}_s{start_in_run}_l{length}"
    return f"p{page_index}_i{run_index}_j{end_run_index}_s{start_in_run}_e{end_in_run}"


def parse_match_id(match_id: str) -> MatchIdParts | None:
    m = _SINGLE_ID_RE.fullmatch(match_id)
    if m:
        page, run, start, length = (int(g) for g in m.groups())
        return MatchIdParts(page_index=page, run_index=run, start_in_run=start, length=length)
    m = _MULTI_ID_RE.fullmatch(match_id)
    if m:
        page, run, end_run, start, end_in_run = (int(g) for g in m.groups())
        return MatchIdParts(
            page_index=page,
            run_index=run,
            start_in_run=start,
            end_run_index=end_run,
            end_in_run=end_in_run,
        )
    return None


def make_snippet(text: str, start: int, end: int, context: int) -> str:
    raw = text[max(0, start - context) : min(len(text), end + context)]
    return _WS_RE.sub(" ", raw).strip()


class EntryLocator:
    """Binary search from a string offset to the entry that produced it."""

    def __init__(self, entries: list[TextEntry]) -> None:
        self._entries = entries
        self._starts = [e.string_start for e in entries]

    def index_at(self, pos: int) -> int | None:
        i = bisect.bisect_right(self._starts, pos) - 1
        if i < 0 or not self._entries[i].contains(pos):
            return None
        return i


def _clamp_to_page(rect: Rect, page_width: float, page_height: float) -> Rect | None:
    if page_width <= 0 or page_height <= 0:
        return rect
    x0 = max(0.0, rect.x)
    x1 = min(page_width, rect.x + rect.width)
    if x1 <= x0:
        return None
    if rect.y >= page_height or rect.y + rect.height <= 0:
        return None
    height = min(rect.height, page_height)
    y = min(max(rect.y, 0.0), page_height - height)
    return Rect(x=x0, y=y, width=x1 - x0, height=height)


def map_span(
    page_text: PageText,
    span: MatchSpan,
    settings: EngineSettings | None = None,
    locator: EntryLocator | None = None,
) -> TextMatch | None:
    """Build the TextMatch for one span, or None when the span is geometrically unusable."""
    settings = settings or EngineSettings()
    length = span.end - span.start
    if length <= 0:
        return None
    locator = locator or EntryLocator(page_text.entries)

    start_idx = locator.index_at(span.start)
    end_idx = locator.index_at(span.end - 1)
    if start_idx is None or end_idx is None or end_idx < start_idx:
        # a boundary landed on an inserted separator
        return None

    start_entry = page_text.entries[start_idx]
    end_entry = page_text.entries[end_idx]
    covered = page_text.entries[start_idx : end_idx + 1]

    max_font = max(e.font_size_pts for e in covered)
    line_threshold = max(1.0, max_font * settings.same_line_factor)
    if any(abs(e.origin_y - start_entry.origin_y) > line_threshold for e in covered):
        return None

    start_in_run = span.start - start_entry.string_start
    end_in_run = span.end - end_entry.string_start
    x1 = start_entry.origin_x + start_in_run * start_entry.avg_glyph_width
    x2 = end_entry.origin_x + end_in_run * end_entry.avg_glyph_width
    left = min(x1, x2)
    selection = abs(x2 - x1)
    rect = _clamp_to_page(
        Rect(x=left, y=start_entry.origin_y, width=selection, height=max_font),
        page_text.page_width,
        page_text.page_height,
    )
    if rect is None:
        return None

    multi = start_entry.run_index != end_entry.run_index
    match_id = make_match_id(
        page_text.page_index,
        start_entry.run_index,
        start_in_run,
        length,
        end_run_index=end_entry.run_index if multi else None,
        end_in_run=end_in_run if multi else None,
    )
    return TextMatch(
        id=match_id,
        page_index=page_text.page_index,
        run_index=start_entry.run_index,
        end_run_index=end_entry.run_index if multi else None,
        start_in_run=start_in_run,
        length=length,
        rect=rect,
        snippet=make_snippet(page_text.text, span.start, span.end, settings.snippet_context),
        font_name=start_entry.font_name,
        transform=list(start_entry.transform) or None,
        original_font_size=max_font,
        baseline_x=left,
        baseline_y=start_entry.origin_y,
        selection_width=selection,
    )


def map_spans(
    page_text: PageText,
    spans: list[MatchSpan],
    settings: EngineSettings | None = None,
) -> list[TextMatch]:
    locator = EntryLocator(page_text.entries)
    matches: list[TextMatch] = []
    for span in spans:
        match = map_span(page_text, span, settings, locator)
        if match is None:
            log.debug("Page %s: dropped span [%s, %s)", page_text.page_index + 1, span.start, span.end)
            continue
        matches.append(match)
    return matches
