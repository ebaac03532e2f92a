"""Text layout reconstruction, pattern matching and match geometry."""

from pdfoid.search.geometry import make_match_id, map_span, map_spans, parse_match_id
from pdfoid.search.layout import reconstruct_page_text
from pdfoid.search.matcher import build_search_pattern, find_spans
from pdfoid.search.schemas import (
    FindTextOptions,
    MatchSpan,
    PageText,
    Rect,
    ReplaceTextOptions,
    TextEntry,
    TextMatch,
)

__all__ = [
    "FindTextOptions",
    "MatchSpan",
    "PageText",
    "Rect",
    "ReplaceTextOptions",
    "TextEntry",
    "TextMatch",
    "build_search_pattern",
    "find_spans",
    "make_match_id",
    "map_span",
    "map_spans",
    "parse_match_id",
    "reconstruct_page_text",
]
