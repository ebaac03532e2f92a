"""Serialized load/mutate/commit cycle over the PDF byte buffer.

Every mutation parses the current bytes, edits the parsed document,
re-serializes it and swaps the buffer in. A failed mutation leaves the
previous bytes untouched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable

import fitz

from pdfoid.errors import DocumentLoadError, NoDocumentLoadedError
from pdfoid.extract.frame import PageFrame
from pdfoid.extract.pymupdf_provider import open_pdf

log = logging.getLogger(__name__)

Mutator = Callable[[fitz.Document], Any]
RevisionListener = Callable[[int], None]


class TransactionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    MUTATING = "mutating"
    COMMITTED = "committed"
    FAILED = "failed"


def page_sizes_of(doc: fitz.Document) -> list[tuple[float, float]]:
    sizes: list[tuple[float, float]] = []
    for page in doc:
        frame = PageFrame(page)
        sizes.append((frame.width, frame.height))
    return sizes


class DocumentBuffer:
    """Owns the current PDF bytes, the pristine original and the revision counter."""

    def __init__(self) -> None:
        self._data: bytes | None = None
        self._original: bytes | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[RevisionListener] = []
        self.file_name = ""
        self.revision = 0
        self.dirty = False
        self.error: str | None = None
        self.page_sizes: list[tuple[float, float]] = []
        self.state = TransactionState.IDLE

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise NoDocumentLoadedError()
        return self._data

    @property
    def num_pages(self) -> int:
        return len(self.page_sizes)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def add_listener(self, listener: RevisionListener) -> None:
        self._listeners.append(listener)

    def clear_error(self) -> None:
        self.error = None

    def _commit(self, data: bytes, sizes: list[tuple[float, float]], dirty: bool) -> None:
        self._data = data
        self.page_sizes = sizes
        self.revision += 1
        self.dirty = dirty
        self.error = None
        self.state = TransactionState.COMMITTED
        for listener in list(self._listeners):
            listener(self.revision)

    async def load(self, data: bytes, file_name: str = "") -> None:
        """Replace the buffer with a freshly opened document."""
        async with self._lock:
            self.state = TransactionState.LOADING
            try:
                doc = open_pdf(data)
            except DocumentLoadError as e:
                self.state = TransactionState.FAILED
                self.error = str(e)
                log.error("Failed to load %s: %s", file_name or "<buffer>", e)
                raise
            try:
                sizes = page_sizes_of(doc)
            finally:
                doc.close()
            self._original = bytes(data)
            self.file_name = file_name
            self._commit(bytes(data), sizes, dirty=False)
            log.info("Loaded %s (%s pages, %s bytes)", file_name or "<buffer>", len(sizes), len(data))

    async def reset_to_original(self) -> bool:
        """Restore the bytes as first loaded. Returns False when nothing was loaded."""
        async with self._lock:
            if self._original is None:
                return False
            doc = open_pdf(self._original)
            try:
                sizes = page_sizes_of(doc)
            finally:
                doc.close()
            self._commit(self._original, sizes, dirty=False)
            log.info("Reset %s to original", self.file_name or "<buffer>")
            return True

    def export(self) -> bytes:
        return self.data

    async def mutate(
        self,
        mutator: Mutator,
        *,
        label: str = "mutation",
        has_changes: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Run ``mutator`` on a parsed copy of the buffer and commit its result.

        ``mutator`` may be sync or async. When ``has_changes(result)`` is false
        nothing is re-serialized and the revision stays put.
        """
        async with self._lock:
            data = self.data
            self.state = TransactionState.LOADING
            try:
                doc = open_pdf(data)
            except DocumentLoadError as e:
                self.state = TransactionState.FAILED
                self.error = str(e)
                log.error("%s: cannot parse current buffer: %s", label, e)
                raise

            try:
                self.state = TransactionState.MUTATING
                result = mutator(doc)
                if inspect.isawaitable(result):
                    result = await result
                if has_changes is not None and not has_changes(result):
                    self.state = TransactionState.COMMITTED
                    log.debug("%s: no changes to commit", label)
                    return result
                saved = doc.tobytes(garbage=4, deflate=True)
                sizes = page_sizes_of(doc)
            except Exception as e:
                self.state = TransactionState.FAILED
                self.error = str(e) or f"{label} failed"
                log.exception("%s failed; keeping revision %s", label, self.revision)
                raise
            finally:
                doc.close()

            await asyncio.sleep(0)
            self._commit(saved, sizes, dirty=True)
            log.info("%s committed (revision %s, %s bytes)", label, self.revision, len(saved))
            return result
