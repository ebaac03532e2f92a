from __future__ import annotations

import unittest

from pdfoid.extract.models import GlyphRun, PageRuns
from pdfoid.search.layout import reconstruct_page_text
from pdfoid.search.matcher import build_search_pattern, find_spans
from pdfoid.search.schemas import FindTextOptions


def _page_text(text: str):
    run = GlyphRun(text=text, transform=[12, 0, 0, 12, 72, 700], reported_width=len(text) * 6)
    return reconstruct_page_text(PageRuns(page_index=0, width=612, height=792, runs=[run]))


def _starts(text: str, **options) -> list[int]:
    pattern = build_search_pattern(FindTextOptions(**options))
    assert pattern is not None
    return [span.start for span in find_spans(_page_text(text), pattern)]


class PatternMatcherTests(unittest.TestCase):
    def test_whole_word_skips_embedded_occurrences(self) -> None:
        self.assertEqual(_starts("cat concatenate cat.", search="cat"), [0, 16])

    def test_substring_search_finds_embedded_occurrences(self) -> None:
        self.assertEqual(_starts("cat concatenate cat.", search="cat", whole_word=False), [0, 7, 16])

    def test_case_sensitivity(self) -> None:
        self.assertEqual(_starts("Cat cat CAT", search="cat"), [0, 4, 8])
        self.assertEqual(_starts("Cat cat CAT", search="cat", case_sensitive=True), [4])

    def test_regex_metacharacters_are_literal(self) -> None:
        self.assertEqual(_starts("a.b axb a.b", search="a.b", whole_word=False), [0, 8])
        self.assertEqual(_starts("cost (USD) 5", search="(USD)", whole_word=False), [5])

    def test_whole_word_search_term_is_trimmed(self) -> None:
        self.assertEqual(_starts("the cat sat", search="  cat "), [4])

    def test_empty_search_has_no_pattern(self) -> None:
        self.assertIsNone(build_search_pattern(FindTextOptions(search="")))
        self.assertIsNone(build_search_pattern(FindTextOptions(search="   ")))

    def test_spans_are_non_overlapping(self) -> None:
        spans = find_spans(_page_text("aaaa"), build_search_pattern(FindTextOptions(search="aa", whole_word=False)))
        self.assertEqual([(s.start, s.end) for s in spans], [(0, 2), (2, 4)])

    def test_empty_page_has_no_spans(self) -> None:
        page_text = reconstruct_page_text(PageRuns(page_index=0, width=612, height=792, runs=[]))
        self.assertEqual(find_spans(page_text, build_search_pattern(FindTextOptions(search="x"))), [])


if __name__ == "__main__":
    unittest.main()
