from __future__ import annotations

from abc import ABC, abstractmethod

from pdfoid.extract.models import PageRuns


class GlyphRunReader(ABC):
    """Read-only view of one byte buffer, page by page."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_page_runs(self, page_index: int) -> PageRuns:
        """Return the glyph runs of a page. Raises InvalidPageIndexError for bad indices."""
        raise NotImplementedError

    def close(self) -> None:
        """Release parser resources."""

    def __enter__(self) -> "GlyphRunReader":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class GlyphRunProvider(ABC):
    """Common interface for glyph run sources (opened fresh for every search)."""

    @abstractmethod
    def open(self, data: bytes) -> GlyphRunReader:
        """Open a reader over ``data``. Raises DocumentLoadError for malformed input."""
        raise NotImplementedError
