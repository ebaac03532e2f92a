from __future__ import annotations

import re

from pdfoid.search.schemas import FindTextOptions, MatchSpan, PageText


def normalize_search_term(options: FindTextOptions) -> str:
    return options.search.strip() if options.whole_word else options.search


def build_search_pattern(options: FindTextOptions) -> re.Pattern[str] | None:
    """Literal, optionally whole-word pattern for the search term; None when there is nothing to search."""
    term = normalize_search_term(options)
    if not term:
        return None
    boundary = r"\b" if options.whole_word else ""
    flags = 0 if options.case_sensitive else re.IGNORECASE
    return re.compile(f"{boundary}{re.escape(term)}{boundary}", flags)


def find_spans(page_text: PageText, pattern: re.Pattern[str]) -> list[MatchSpan]:
    """All non-overlapping, non-empty occurrences on one page, leftmost first."""
    if page_text.is_empty or not page_text.text:
        return []
    return [
        MatchSpan(page_index=page_text.page_index, start=m.start(), end=m.end())
        for m in pattern.finditer(page_text.text)
        if m.end() > m.start()
    ]
