from __future__ import annotations

import asyncio
import unittest

import fitz

from pdfoid.config import EngineSettings
from pdfoid.errors import InvalidPageIndexError, MalformedRunDataError, NoDocumentLoadedError, UnsupportedImageError
from pdfoid.extract.base import GlyphRunProvider, GlyphRunReader
from pdfoid.extract.models import GlyphRun, PageRuns
from pdfoid.search.schemas import FindTextOptions, Rect, ReplaceTextOptions
from pdfoid.session.engine import EditorSession


def _make_pdf(*texts: str) -> bytes:
    doc = fitz.open()
    for text in texts or ("",):
        page = doc.new_page(width=612, height=792)
        if text:
            page.insert_text((72, 120), text)
    data = doc.tobytes()
    doc.close()
    return data


def _png(width: int = 10, height: int = 20) -> bytes:
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.clear_with(200)
    return pix.tobytes("png")


def _run(text: str, x: float, y: float, size: float = 12.0, width: float | None = None) -> GlyphRun:
    if width is None:
        width = fitz.Font("helv").text_length(text, fontsize=size)
    return GlyphRun(text=text, transform=[size, 0, 0, size, x, y], reported_width=width, font_name="Helvetica", font_size=size)


class StaticReader(GlyphRunReader):
    def __init__(self, pages: list[list[GlyphRun]]) -> None:
        self._pages = pages

    @property
    def page_count(self) -> int:
        return len(self._pages)

    async def get_page_runs(self, page_index: int) -> PageRuns:
        if page_index < 0 or page_index >= len(self._pages):
            raise InvalidPageIndexError(page_index, len(self._pages))
        await asyncio.sleep(0)
        return PageRuns(page_index=page_index, width=612.0, height=792.0, runs=self._pages[page_index])


class StaticProvider(GlyphRunProvider):
    """Serves the same glyph runs whatever the bytes contain."""

    def __init__(self, pages: list[list[GlyphRun]]) -> None:
        self.pages = pages
        self.opened = 0

    def open(self, data: bytes) -> GlyphRunReader:
        self.opened += 1
        return StaticReader(self.pages)


class EditorSessionSearchTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.data = _make_pdf("")
        self.provider = StaticProvider([[_run("Hello World", 72, 672)]])
        self.session = EditorSession(provider=self.provider)
        await self.session.load_document(self.data, "hello.pdf")

    async def test_find_returns_match_and_caches_it(self) -> None:
        matches = await self.session.find_text_matches(FindTextOptions(search="world"))
        self.assertEqual([m.id for m in matches], ["p0_i0_s6_l5"])
        self.assertEqual(self.session.last_find_results, matches)
        self.assertEqual(self.session.last_find_options.search, "world")

    async def test_find_accepts_plain_arguments(self) -> None:
        matches = await self.session.find_text_matches("World", case_sensitive=True)
        self.assertEqual(len(matches), 1)
        self.assertEqual(await self.session.find_text_matches("world", case_sensitive=True), [])

    async def test_empty_search_returns_nothing(self) -> None:
        self.assertEqual(await self.session.find_text_matches(FindTextOptions(search="")), [])

    async def test_replace_cached_match_commits(self) -> None:
        (match,) = await self.session.find_text_matches(FindTextOptions(search="World"))
        outcome = await self.session.replace_match(match.id, "Earth")
        self.assertTrue(outcome.replaced)
        self.assertIsNone(outcome.reason)
        self.assertEqual(self.session.revision, 2)
        self.assertTrue(self.session.dirty)
        self.assertNotEqual(self.session.export_pdf(), self.data)
        self.assertEqual(self.session.last_find_results, [])
        self.assertEqual(len(self.session.flash_rects), 1)
        with fitz.open(stream=self.session.export_pdf(), filetype="pdf") as doc:
            self.assertIn("Earth", doc[0].get_text())

    async def test_stale_id_is_rederived_with_stricter_fit(self) -> None:
        settings = EngineSettings(min_scale_bulk=0.05, min_scale_rederived=1.0)
        session = EditorSession(settings=settings, provider=self.provider)
        await session.load_document(self.data, "hello.pdf")
        (match,) = await session.find_text_matches(FindTextOptions(search="World"))

        first = await session.replace_match(match.id, "Earthlings and more")
        self.assertTrue(first.replaced)
        self.assertEqual(session.revision, 2)
        before = session.export_pdf()

        # The cache was dropped by the commit, so this goes through re-derivation.
        second = await session.replace_match(match.id, "Earthlings and more")
        self.assertFalse(second.replaced)
        self.assertEqual(second.reason, "TEXT_TOO_WIDE")
        self.assertEqual(session.revision, 2)
        self.assertEqual(session.export_pdf(), before)

    async def test_rederived_match_that_fits_is_replaced(self) -> None:
        outcome = await self.session.replace_match("p0_i0_s6_l5", "Earth")
        self.assertTrue(outcome.replaced)
        self.assertEqual(self.session.revision, 2)

    async def test_unknown_or_multi_run_ids_fail_without_commit(self) -> None:
        for match_id in ("nope", "p0_i0_j1_s0_e2", "p0_i9_s0_l2", "p0_i0_s8_l9"):
            outcome = await self.session.replace_match(match_id, "x")
            self.assertFalse(outcome.replaced, match_id)
            self.assertEqual(outcome.reason, "GENERIC_FAILURE", match_id)
        self.assertEqual(self.session.revision, 1)
        self.assertEqual(self.session.export_pdf(), self.data)

    async def test_replace_on_missing_page_raises(self) -> None:
        with self.assertRaises(InvalidPageIndexError):
            await self.session.replace_match("p4_i0_s0_l5", "x")
        self.assertEqual(self.session.revision, 1)

    async def test_reset_to_original(self) -> None:
        await self.session.replace_match("p0_i0_s6_l5", "Earth")
        self.assertTrue(await self.session.reset_to_original())
        self.assertEqual(self.session.export_pdf(), self.data)
        self.assertFalse(self.session.dirty)
        self.assertEqual(self.session.flash_rects, [])


class EditorSessionBulkReplaceTests(unittest.IsolatedAsyncioTestCase):
    async def test_replace_all_in_one_transaction(self) -> None:
        provider = StaticProvider(
            [
                [_run("cat", 72, 700), _run("a cat sat", 72, 680)],
                [_run("cat", 72, 700)],
            ]
        )
        session = EditorSession(provider=provider)
        await session.load_document(_make_pdf("", ""), "cats.pdf")
        result = await session.replace_text(ReplaceTextOptions(search="cat", replace="dog"))
        self.assertEqual((result.replacements, result.skipped), (3, 0))
        self.assertEqual(session.revision, 2)
        self.assertEqual(len(session.flash_rects), 3)
        self.assertEqual({f.page_index for f in session.flash_rects}, {0, 1})

    async def test_too_wide_replacement_is_skipped_and_bytes_unchanged(self) -> None:
        data = _make_pdf("")
        session = EditorSession(provider=StaticProvider([[_run("Al", 72, 700)]]))
        await session.load_document(data, "al.pdf")
        result = await session.replace_text(search="Al", replace="Alexander")
        self.assertEqual((result.replacements, result.skipped), (0, 1))
        self.assertEqual(session.revision, 1)
        self.assertFalse(session.dirty)
        self.assertEqual(session.export_pdf(), data)
        self.assertEqual(session.flash_rects, [])

    async def test_skipped_match_does_not_stop_the_batch(self) -> None:
        # the 100pt hit needs an erase box taller than a tenth of the page
        provider = StaticProvider([[_run("cat", 72, 700), _run("cat", 72, 300, size=100.0)]])
        session = EditorSession(provider=provider)
        await session.load_document(_make_pdf(""), "cats.pdf")
        result = await session.replace_text(search="cat", replace="dog")
        self.assertEqual((result.replacements, result.skipped), (1, 1))
        self.assertEqual(session.revision, 2)
        self.assertEqual(len(session.flash_rects), 1)
        with fitz.open(stream=session.export_pdf(), filetype="pdf") as doc:
            page = doc[0]
            drawings = page.get_drawings()
            self.assertEqual(len(drawings), 1)
            # only the 12pt hit near the top was painted over
            self.assertLess(drawings[0]["rect"].y1, 200)
            self.assertEqual(page.get_text().count("dog"), 1)

    async def test_multi_run_match_at_top_edge_is_drawn_on_its_baseline(self) -> None:
        font = fitz.Font("helv")
        tit_width = font.text_length("Tit", fontsize=24)
        provider = StaticProvider(
            [[_run("Tit", 72, 775, size=24.0), _run("le", 72 + tit_width, 775, size=24.0)]]
        )
        session = EditorSession(provider=provider)
        await session.load_document(_make_pdf(""), "title.pdf")
        (match,) = await session.find_text_matches(FindTextOptions(search="Title"))
        self.assertFalse(match.is_single_run)
        self.assertEqual(match.baseline_y, 775.0)

        result = await session.replace_text(search="Title", replace="Head")
        self.assertEqual((result.replacements, result.skipped), (1, 0))
        with fitz.open(stream=session.export_pdf(), filetype="pdf") as doc:
            spans = [
                span
                for block in doc[0].get_text("dict")["blocks"]
                for line in block.get("lines", [])
                for span in line["spans"]
                if span["text"].strip()
            ]
        (span,) = spans
        self.assertEqual(span["text"], "Head")
        # baseline 775 in PDF space is 17pt below the top edge in page space
        self.assertAlmostEqual(span["origin"][1], 792.0 - 775.0, delta=0.5)

    async def test_empty_search_is_a_no_op(self) -> None:
        session = EditorSession(provider=StaticProvider([[_run("cat", 72, 700)]]))
        await session.load_document(_make_pdf(""), "cats.pdf")
        result = await session.replace_text(search="", replace="dog")
        self.assertEqual((result.replacements, result.skipped), (0, 0))
        self.assertEqual(session.revision, 1)


class EditorSessionWithoutDocumentTests(unittest.IsolatedAsyncioTestCase):
    async def test_operations_require_a_document(self) -> None:
        session = EditorSession(provider=StaticProvider([]))
        with self.assertRaises(NoDocumentLoadedError):
            await session.find_text_matches(FindTextOptions(search="x"))
        with self.assertRaises(NoDocumentLoadedError):
            await session.replace_match("p0_i0_s0_l1", "y")
        with self.assertRaises(NoDocumentLoadedError):
            await session.replace_text(search="x", replace="y")
        with self.assertRaises(NoDocumentLoadedError):
            session.export_pdf()


class ShiftedReader(StaticReader):
    async def get_page_runs(self, page_index: int) -> PageRuns:
        page_runs = await super().get_page_runs(page_index)
        return page_runs.model_copy(update={"page_index": page_index + 1})


class ShiftedProvider(StaticProvider):
    def open(self, data: bytes) -> GlyphRunReader:
        return ShiftedReader(self.pages)


class MalformedProviderTests(unittest.IsolatedAsyncioTestCase):
    async def test_runs_for_wrong_page_are_rejected(self) -> None:
        session = EditorSession(provider=ShiftedProvider([[_run("Hello World", 72, 672)]]))
        data = _make_pdf("")
        await session.load_document(data, "hello.pdf")
        with self.assertRaises(MalformedRunDataError):
            await session.find_text_matches(FindTextOptions(search="World"))
        with self.assertRaises(MalformedRunDataError):
            await session.replace_match("p0_i0_s6_l5", "Earth")
        self.assertEqual(session.revision, 1)
        self.assertEqual(session.export_pdf(), data)


class HighlightAndFlashTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.session = EditorSession(provider=StaticProvider([[_run("Hello World", 72, 672)]]))
        await self.session.load_document(_make_pdf(""), "hello.pdf")
        (self.match,) = await self.session.find_text_matches(FindTextOptions(search="World"))

    async def test_highlight_set_and_clear(self) -> None:
        state = self.session.set_current_match_highlight(self.match, {"index": 1, "total": 3})
        self.assertEqual(state.page_index, 0)
        self.assertEqual((state.badge.index, state.badge.total), (1, 3))
        self.assertGreater(state.rect_norm.width, 0)
        self.assertIs(self.session.current_match_highlight, state)
        self.assertIsNone(self.session.set_current_match_highlight(None))
        self.assertIsNone(self.session.current_match_highlight)

    async def test_highlight_auto_clear(self) -> None:
        self.assertEqual(self.session.set_auto_clear_highlight_ms(20), 20)
        self.session.set_current_match_highlight(self.match)
        self.assertIsNotNone(self.session.current_match_highlight)
        await asyncio.sleep(0.15)
        self.assertIsNone(self.session.current_match_highlight)

    async def test_highlight_persists_without_auto_clear(self) -> None:
        self.session.set_current_match_highlight(self.match)
        await asyncio.sleep(0.05)
        self.assertIsNotNone(self.session.current_match_highlight)

    async def test_flash_expires(self) -> None:
        flash = self.session.add_flash_rect(0, Rect(x=72, y=672, width=50, height=12), ttl_ms=100)
        self.assertEqual(self.session.active_flash_rects(), [flash])
        await asyncio.sleep(0.25)
        self.assertEqual(self.session.flash_rects, [])

    async def test_flash_history_is_capped(self) -> None:
        for _ in range(30):
            self.session.add_flash_rect(0, Rect(x=72, y=672, width=50, height=12))
        self.assertEqual(len(self.session.flash_rects), 25)
        self.assertEqual(self.session.flash_rects[-1].id, "flash-30")

    async def test_flash_on_unknown_page_raises(self) -> None:
        with self.assertRaises(InvalidPageIndexError):
            self.session.add_flash_rect(3, Rect(x=0, y=0, width=1, height=1))

    async def test_ui_timing_setters_sanitize(self) -> None:
        self.assertEqual(self.session.set_default_flash_ttl_ms(50), 900)
        self.assertEqual(self.session.set_default_flash_ttl_ms(1500), 1500)
        self.assertEqual(self.session.set_auto_clear_highlight_ms(-5), 0)
        flash = self.session.add_flash_rect(0, Rect(x=72, y=672, width=50, height=12))
        self.assertEqual(flash.ttl_ms, 1500)

    async def test_settings_are_not_shared_between_sessions(self) -> None:
        settings = EngineSettings()
        one = EditorSession(settings=settings)
        two = EditorSession(settings=settings)
        one.set_default_flash_ttl_ms(2000)
        self.assertEqual(two.settings.flash_ttl_ms, 900)
        self.assertEqual(settings.flash_ttl_ms, 900)


class PageEditTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.session = EditorSession()
        await self.session.load_document(_make_pdf("Page A", "Page B", "Page C"), "pages.pdf")

    def _page_texts(self) -> list[str]:
        with fitz.open(stream=self.session.export_pdf(), filetype="pdf") as doc:
            return [page.get_text().strip() for page in doc]

    async def test_add_blank_page(self) -> None:
        index = await self.session.add_blank_page("start")
        self.assertEqual(index, 0)
        self.assertEqual(self.session.num_pages, 4)
        self.assertEqual(self._page_texts()[0], "")
        self.assertEqual(self.session.page_sizes[0], (612.0, 792.0))

        index = await self.session.add_blank_page(size={"width": 200, "height": 300})
        self.assertEqual(index, 4)
        self.assertEqual(self.session.page_sizes[4], (200.0, 300.0))

        index = await self.session.add_blank_page(2)
        self.assertEqual(index, 2)
        self.assertEqual(self.session.num_pages, 6)

    async def test_delete_page(self) -> None:
        await self.session.delete_page(1)
        self.assertEqual(self._page_texts(), ["Page A", "Page C"])

    async def test_invalid_page_index_rolls_back(self) -> None:
        with self.assertRaises(InvalidPageIndexError):
            await self.session.delete_page(5)
        self.assertEqual(self.session.revision, 1)
        self.assertEqual(self.session.num_pages, 3)
        self.assertIsNotNone(self.session.error)

    async def test_reorder_moves_forward_before_target(self) -> None:
        await self.session.reorder_pages(0, 2)
        self.assertEqual(self._page_texts(), ["Page B", "Page A", "Page C"])

    async def test_reorder_moves_backward_to_target(self) -> None:
        await self.session.reorder_pages(2, 0)
        self.assertEqual(self._page_texts(), ["Page C", "Page A", "Page B"])

    async def test_reorder_same_index_is_a_no_op(self) -> None:
        self.assertFalse(await self.session.reorder_pages(1, 1))
        self.assertEqual(self.session.revision, 1)

    async def test_rotate_page(self) -> None:
        self.assertEqual(await self.session.rotate_page(0, "right"), 90)
        self.assertEqual(await self.session.rotate_page(1, "left"), 270)
        self.assertEqual(await self.session.rotate_page(1, "left"), 180)
        with fitz.open(stream=self.session.export_pdf(), filetype="pdf") as doc:
            self.assertEqual([p.rotation for p in doc], [90, 180, 0])
        # sizes are reported for the unrotated page
        width, height = self.session.page_sizes[0]
        self.assertAlmostEqual(width, 612.0)
        self.assertAlmostEqual(height, 792.0)

    async def test_crop_page(self) -> None:
        await self.session.crop_page(0, {"x": 0.0, "y": 0.0, "width": 0.5, "height": 0.5, "normalized": True})
        self.assertAlmostEqual(self.session.page_sizes[0][0], 306.0)
        self.assertAlmostEqual(self.session.page_sizes[0][1], 396.0)
        await self.session.crop_page(1, {"x": 10, "y": 20, "width": 100, "height": 200})
        self.assertAlmostEqual(self.session.page_sizes[1][0], 100.0)
        self.assertAlmostEqual(self.session.page_sizes[1][1], 200.0)

    async def test_insert_image(self) -> None:
        await self.session.insert_image(0, _png(), {"x": 0.1, "y": 0.1, "width": 0.25, "normalized": True})
        self.assertEqual(self.session.revision, 2)
        with fitz.open(stream=self.session.export_pdf(), filetype="pdf") as doc:
            self.assertEqual(len(doc[0].get_images()), 1)
            self.assertEqual(len(doc[1].get_images()), 0)

    async def test_insert_image_centred_by_default(self) -> None:
        await self.session.insert_image(1, _png(40, 20))
        with fitz.open(stream=self.session.export_pdf(), filetype="pdf") as doc:
            (info,) = doc[1].get_image_info()
            x0, y0, x1, y1 = info["bbox"]
            self.assertAlmostEqual((x0 + x1) / 2, 306.0, delta=0.5)
            self.assertAlmostEqual((y0 + y1) / 2, 396.0, delta=0.5)
            self.assertAlmostEqual(x1 - x0, 40.0, delta=0.5)

    async def test_insert_unsupported_image(self) -> None:
        with self.assertRaises(UnsupportedImageError):
            await self.session.insert_image(0, b"GIF89a....")
        self.assertEqual(self.session.revision, 1)


if __name__ == "__main__":
    unittest.main()
