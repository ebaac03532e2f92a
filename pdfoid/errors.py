"""Structural failures raised by the editor session.

Per-match problems (shear, cross-line spans, text that does not fit) are never
raised; they are filtered out or reported through replacement outcomes.
"""

from __future__ import annotations


class PdfoidError(Exception):
    """Base class for document-level failures."""


class NoDocumentLoadedError(PdfoidError):
    """Raised when an operation needs a document and none is loaded."""

    def __init__(self, message: str = "No PDF loaded") -> None:
        super().__init__(message)


class DocumentLoadError(PdfoidError):
    """Raised when the byte buffer cannot be parsed as a PDF."""


class InvalidPageIndexError(PdfoidError):
    """Raised when a page index falls outside the document."""

    def __init__(self, page_index: int, page_count: int) -> None:
        super().__init__(f"Invalid page index {page_index} (pages={page_count})")
        self.page_index = page_index
        self.page_count = page_count


class MalformedRunDataError(PdfoidError):
    """Raised when the glyph run provider returns data the engine cannot use."""


class UnsupportedImageError(PdfoidError):
    """Raised when an inserted image is neither PNG nor JPEG, or cannot be decoded."""
