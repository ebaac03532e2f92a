"""Editor session: search, replace and page edits over one open PDF.

All mutable state (byte buffer, find cache, highlight and flash state) lives
on the session, one per open document.
"""

from __future__ import annotations

import itertools
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import fitz

from pdfoid.config import DEFAULT_FLASH_TTL_MS, EngineSettings
from pdfoid.errors import InvalidPageIndexError, MalformedRunDataError, NoDocumentLoadedError
from pdfoid.extract.base import GlyphRunProvider, GlyphRunReader
from pdfoid.extract.frame import PageFrame
from pdfoid.extract.models import PageRuns
from pdfoid.extract.pymupdf_provider import PyMuPDFGlyphRunProvider
from pdfoid.logging_utils import DebugLog
from pdfoid.replace.fonts import FontMetrics, get_font_metrics
from pdfoid.replace.painter import paint_replacement
from pdfoid.replace.planner import plan_replacement, resolve_geometry
from pdfoid.replace.schemas import ReplaceOutcome, ReplaceTextResult
from pdfoid.search.geometry import MatchIdParts, map_spans, parse_match_id
from pdfoid.search.layout import reconstruct_page_text, run_geometry
from pdfoid.search.matcher import build_search_pattern, find_spans
from pdfoid.search.schemas import FindTextOptions, Rect, ReplaceTextOptions, TextMatch
from pdfoid.session import page_edits
from pdfoid.session.highlight import (
    EphemeralScheduler,
    FlashRect,
    HighlightState,
    MatchBadge,
    normalize_match_rect,
    normalize_rect,
)
from pdfoid.session.page_edits import CropBox, ImageBox, PagePosition, PageSize, RotateDirection
from pdfoid.session.transaction import DocumentBuffer

log = logging.getLogger(__name__)


@dataclass
class FindCache:
    revision: int
    options: FindTextOptions
    matches: list[TextMatch]


@dataclass
class FindPass:
    matches: list[TextMatch] = field(default_factory=list)
    page_runs: dict[int, PageRuns] = field(default_factory=dict)


def _coerce(model: type[FindTextOptions], options: Any, kwargs: dict[str, Any]) -> Any:
    if options is None:
        return model.model_validate(kwargs)
    if isinstance(options, model):
        return options.model_copy(update=kwargs) if kwargs else options
    if isinstance(options, str):
        return model.model_validate({"search": options, **kwargs})
    if isinstance(options, FindTextOptions):
        options = options.model_dump()
    return model.model_validate({**options, **kwargs})


class EditorSession:
    """One open PDF and the editing state around it."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        provider: GlyphRunProvider | None = None,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.settings = (settings or EngineSettings()).model_copy()
        self.provider = provider or PyMuPDFGlyphRunProvider()
        self.buffer = DocumentBuffer()
        self.buffer.add_listener(self._on_commit)
        self.current_match_highlight: HighlightState | None = None
        self.flash_rects: list[FlashRect] = []
        self._find_cache: FindCache | None = None
        self._scheduler = EphemeralScheduler(self.session_id)
        self._flash_ids = itertools.count(1)
        self._debug = DebugLog(log, enabled=self.settings.debug, limit=self.settings.debug_limit)

    # -- document state ---------------------------------------------------

    @property
    def revision(self) -> int:
        return self.buffer.revision

    @property
    def num_pages(self) -> int:
        return self.buffer.num_pages

    @property
    def page_sizes(self) -> list[tuple[float, float]]:
        return list(self.buffer.page_sizes)

    @property
    def dirty(self) -> bool:
        return self.buffer.dirty

    @property
    def error(self) -> str | None:
        return self.buffer.error

    @property
    def file_name(self) -> str:
        return self.buffer.file_name

    @property
    def last_find_results(self) -> list[TextMatch]:
        cache = self._valid_cache()
        return list(cache.matches) if cache else []

    @property
    def last_find_options(self) -> FindTextOptions | None:
        cache = self._valid_cache()
        return cache.options if cache else None

    def _on_commit(self, revision: int) -> None:
        if self._find_cache is not None and self._find_cache.revision != revision:
            log.debug("Revision %s: dropping %s cached matches", revision, len(self._find_cache.matches))
            self._find_cache = None

    def _valid_cache(self) -> FindCache | None:
        cache = self._find_cache
        if cache is None or cache.revision != self.buffer.revision:
            return None
        return cache

    def clear_error(self) -> None:
        self.buffer.clear_error()

    async def load_document(self, data: bytes, file_name: str = "") -> None:
        await self.buffer.load(data, file_name)
        self._find_cache = None
        self._debug.reset()
        self.set_current_match_highlight(None)
        self.flash_rects = []
        self._scheduler.cancel_all()

    async def reset_to_original(self) -> bool:
        restored = await self.buffer.reset_to_original()
        if restored:
            self.set_current_match_highlight(None)
            self.flash_rects = []
            self._scheduler.cancel_all()
        return restored

    def export_pdf(self) -> bytes:
        return self.buffer.export()

    def _page_size(self, page_index: int) -> tuple[float, float]:
        sizes = self.buffer.page_sizes
        if page_index < 0 or page_index >= len(sizes):
            raise InvalidPageIndexError(page_index, len(sizes))
        return sizes[page_index]

    # -- search -----------------------------------------------------------

    @staticmethod
    async def _read_page(reader: GlyphRunReader, page_index: int) -> PageRuns:
        page_runs = await reader.get_page_runs(page_index)
        if page_runs.page_index != page_index:
            raise MalformedRunDataError(f"Provider returned runs for page {page_runs.page_index}, expected {page_index}")
        return page_runs

    async def _find(self, data: bytes, options: FindTextOptions) -> FindPass:
        found = FindPass()
        pattern = build_search_pattern(options)
        if pattern is None:
            return found
        with self.provider.open(data) as reader:
            for page_index in range(reader.page_count):
                page_runs = await self._read_page(reader, page_index)
                found.page_runs[page_index] = page_runs
                page_text = reconstruct_page_text(page_runs, self.settings)
                spans = find_spans(page_text, pattern)
                if not spans:
                    continue
                matches = map_spans(page_text, spans, self.settings)
                self._debug(
                    "find",
                    f"page {page_index + 1}: {len(spans)} spans, {len(matches)} matches",
                    [m.id for m in matches],
                )
                found.matches.extend(matches)
        return found

    async def find_text_matches(self, options: FindTextOptions | dict | str | None = None, **kwargs: Any) -> list[TextMatch]:
        """Search every page of the current bytes; results are cached until the next commit."""
        options = _coerce(FindTextOptions, options, kwargs)
        data = self.buffer.data
        revision = self.buffer.revision
        found = await self._find(data, options)
        if self.buffer.revision == revision:
            self._find_cache = FindCache(revision=revision, options=options, matches=found.matches)
        log.info("Find %r: %s matches in %s pages", options.search, len(found.matches), len(found.page_runs))
        return list(found.matches)

    # -- replace ----------------------------------------------------------

    def _apply_match(
        self,
        doc: fitz.Document,
        match: TextMatch,
        page_runs: PageRuns | None,
        replacement: str,
        metrics: FontMetrics,
        min_scale: float,
    ) -> tuple[ReplaceOutcome, Rect | None]:
        if match.page_index < 0 or match.page_index >= len(doc):
            raise InvalidPageIndexError(match.page_index, len(doc))
        page = doc[match.page_index]
        frame = PageFrame(page)
        run = None
        if page_runs is not None and 0 <= match.run_index < len(page_runs.runs):
            run = page_runs.runs[match.run_index]
        geometry = resolve_geometry(match, run, metrics, self.settings)
        plan = plan_replacement(
            match.page_index,
            geometry,
            replacement,
            metrics,
            frame.width,
            frame.height,
            min_scale,
            self.settings,
        )
        if not plan.fits:
            return ReplaceOutcome(replaced=False, reason=plan.reason), None
        erase = paint_replacement(page, plan, frame, font_name=metrics.font_name)
        return ReplaceOutcome(replaced=True), erase

    def _rederive_match(self, match_id: str, parts: MatchIdParts, page_runs: PageRuns) -> TextMatch | None:
        """Rebuild a single-run match from the run it names in the current bytes."""
        if parts.length is None or parts.length <= 0 or parts.run_index >= len(page_runs.runs):
            return None
        run = page_runs.runs[parts.run_index]
        geom = run_geometry(run, self.settings)
        end = parts.start_in_run + parts.length
        if geom is None or end > len(run.text):
            return None
        return TextMatch(
            id=match_id,
            page_index=parts.page_index,
            run_index=parts.run_index,
            start_in_run=parts.start_in_run,
            length=parts.length,
            rect=Rect(
                x=geom.x + parts.start_in_run * geom.avg_glyph_width,
                y=geom.y,
                width=parts.length * geom.avg_glyph_width,
                height=geom.font_size,
            ),
            snippet=run.text[parts.start_in_run : end],
            font_name=geom.font_name,
            transform=geom.transform,
            original_font_size=geom.font_size,
        )

    async def replace_match(self, match_id: str, replacement: str) -> ReplaceOutcome:
        """Visually replace one match found earlier.

        Matches from the current revision's search are used as-is. Otherwise a
        single-run id is re-derived from the current bytes with a stricter
        fit threshold; multi-run or unknown ids fail with GENERIC_FAILURE.
        """
        if not self.buffer.is_loaded:
            raise NoDocumentLoadedError()
        metrics = get_font_metrics(self.settings.fallback_font)
        erased: list[tuple[int, Rect]] = []

        async def mutator(doc: fitz.Document) -> ReplaceOutcome:
            cache = self._valid_cache()
            cached = next((m for m in cache.matches if m.id == match_id), None) if cache else None
            parts = parse_match_id(match_id)
            if cached is None and (parts is None or not parts.is_single_run):
                self._debug("replace_one", f"{match_id}: not cached and cannot be re-derived")
                return ReplaceOutcome(replaced=False, reason="GENERIC_FAILURE")

            page_index = cached.page_index if cached else parts.page_index
            if page_index >= len(doc):
                raise InvalidPageIndexError(page_index, len(doc))
            with self.provider.open(self.buffer.data) as reader:
                page_runs = await self._read_page(reader, page_index)
            match = cached or self._rederive_match(match_id, parts, page_runs)
            if match is None:
                return ReplaceOutcome(replaced=False, reason="GENERIC_FAILURE")

            min_scale = self.settings.min_scale_bulk if cached else self.settings.min_scale_rederived
            outcome, erase = self._apply_match(doc, match, page_runs, replacement, metrics, min_scale)
            self._debug(
                "replace_one",
                f"{match_id} -> {replacement!r}",
                {"cached": cached is not None, "replaced": outcome.replaced, "reason": outcome.reason},
            )
            if erase is not None:
                erased.append((page_index, erase))
            return outcome

        outcome = await self.buffer.mutate(
            mutator,
            label=f"replace_match {match_id}",
            has_changes=lambda o: o.replaced,
        )
        for page_index, rect in erased:
            self.add_flash_rect(page_index, rect)
        return outcome

    async def replace_text(self, options: ReplaceTextOptions | dict | None = None, **kwargs: Any) -> ReplaceTextResult:
        """Find and replace every occurrence in one transaction. Skips do not abort the batch."""
        options = _coerce(ReplaceTextOptions, options, kwargs)
        if not self.buffer.is_loaded:
            raise NoDocumentLoadedError()
        result = ReplaceTextResult()
        if build_search_pattern(options) is None:
            return result
        metrics = get_font_metrics(self.settings.fallback_font)
        erased: list[tuple[int, Rect]] = []

        async def mutator(doc: fitz.Document) -> ReplaceTextResult:
            found = await self._find(self.buffer.data, options)
            self._find_cache = FindCache(revision=self.buffer.revision, options=options, matches=found.matches)
            for match in found.matches:
                outcome, erase = self._apply_match(
                    doc,
                    match,
                    found.page_runs.get(match.page_index),
                    options.replace,
                    metrics,
                    self.settings.min_scale_bulk,
                )
                if outcome.replaced:
                    result.replacements += 1
                    erased.append((match.page_index, erase))
                else:
                    result.skipped += 1
                    self._debug("replace_all", f"skipped {match.id}", outcome.reason)
            return result

        await self.buffer.mutate(
            mutator,
            label=f"replace_text {options.search!r}",
            has_changes=lambda r: r.replacements > 0,
        )
        for page_index, rect in erased:
            self.add_flash_rect(page_index, rect)
        log.info(
            "Replace %r -> %r: %s replaced, %s skipped",
            options.search,
            options.replace,
            result.replacements,
            result.skipped,
        )
        return result

    # -- highlight and flashes --------------------------------------------

    def set_current_match_highlight(
        self,
        match: TextMatch | None,
        meta: MatchBadge | dict | None = None,
    ) -> HighlightState | None:
        """Show (or clear, with None) the focused-match box for the UI."""
        self._scheduler.cancel("highlight")
        if match is None or not (0 <= match.page_index < len(self.buffer.page_sizes)):
            self.current_match_highlight = None
            return None
        width, height = self.buffer.page_sizes[match.page_index]
        badge = MatchBadge.model_validate(meta) if isinstance(meta, dict) else meta
        state = HighlightState(
            page_index=match.page_index,
            rect_norm=normalize_match_rect(match.rect, width, height),
            badge=badge,
        )
        self.current_match_highlight = state
        if self.settings.auto_clear_highlight_ms > 0:
            self._scheduler.schedule("highlight", self.settings.auto_clear_highlight_ms, self._clear_highlight)
        return state

    def _clear_highlight(self) -> None:
        self.current_match_highlight = None

    def add_flash_rect(self, page_index: int, rect: Rect, ttl_ms: int | None = None) -> FlashRect:
        width, height = self._page_size(page_index)
        if ttl_ms is None or not math.isfinite(ttl_ms) or ttl_ms <= 0:
            ttl_ms = self.settings.flash_ttl_ms
        entry = FlashRect(
            id=f"flash-{next(self._flash_ids)}",
            page_index=page_index,
            rect_norm=normalize_rect(rect, width, height),
            added_at=time.time() * 1000,
            ttl_ms=int(ttl_ms),
        )
        history = self.settings.flash_history
        kept = self.flash_rects[-history:] if history else []
        self.flash_rects = kept + [entry]
        self._scheduler.schedule(f"flash:{entry.id}", entry.ttl_ms, lambda: self._expire_flash(entry.id))
        return entry

    def _expire_flash(self, flash_id: str) -> None:
        self.flash_rects = [f for f in self.flash_rects if f.id != flash_id]

    def active_flash_rects(self, now_ms: float | None = None) -> list[FlashRect]:
        return [f for f in self.flash_rects if not f.is_expired(now_ms)]

    def set_default_flash_ttl_ms(self, ms: float) -> int:
        try:
            ms = int(ms)
        except (TypeError, ValueError, OverflowError):
            ms = DEFAULT_FLASH_TTL_MS
        self.settings.flash_ttl_ms = ms if ms >= 100 else DEFAULT_FLASH_TTL_MS
        return self.settings.flash_ttl_ms

    def set_auto_clear_highlight_ms(self, ms: float) -> int:
        try:
            ms = int(ms)
        except (TypeError, ValueError, OverflowError):
            ms = 0
        self.settings.auto_clear_highlight_ms = max(0, ms)
        self._scheduler.cancel("highlight")
        return self.settings.auto_clear_highlight_ms

    # -- page edits -------------------------------------------------------

    async def add_blank_page(self, position: PagePosition | None = "end", size: PageSize | dict | None = None) -> int:
        if isinstance(size, dict):
            size = PageSize.model_validate(size)
        return await self.buffer.mutate(
            lambda doc: page_edits.add_blank_page(doc, position, size),
            label="add_blank_page",
        )

    async def delete_page(self, page_index: int) -> None:
        await self.buffer.mutate(lambda doc: page_edits.delete_page(doc, page_index), label="delete_page")

    async def reorder_pages(self, from_index: int, to_index: int) -> bool:
        return await self.buffer.mutate(
            lambda doc: page_edits.reorder_pages(doc, from_index, to_index),
            label="reorder_pages",
            has_changes=bool,
        )

    async def rotate_page(self, page_index: int, direction: RotateDirection) -> int:
        return await self.buffer.mutate(
            lambda doc: page_edits.rotate_page(doc, page_index, direction),
            label="rotate_page",
        )

    async def crop_page(self, page_index: int, box: CropBox | dict) -> None:
        if isinstance(box, dict):
            box = CropBox.model_validate(box)
        await self.buffer.mutate(lambda doc: page_edits.crop_page(doc, page_index, box), label="crop_page")

    async def insert_image(self, page_index: int, image: bytes, box: ImageBox | dict | None = None) -> None:
        if isinstance(box, dict):
            box = ImageBox.model_validate(box)
        await self.buffer.mutate(
            lambda doc: page_edits.insert_image(doc, page_index, image, box),
            label="insert_image",
        )
