from __future__ import annotations

import asyncio
import logging

import fitz

from pdfoid.errors import DocumentLoadError, InvalidPageIndexError
from pdfoid.extract.base import GlyphRunProvider, GlyphRunReader
from pdfoid.extract.frame import PageFrame
from pdfoid.extract.models import GlyphRun, PageRuns

log = logging.getLogger(__name__)


def open_pdf(data: bytes) -> fitz.Document:
    """Parse a PDF byte buffer, wrapping parser failures in DocumentLoadError."""
    if not data:
        raise DocumentLoadError("PDF buffer is empty")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise DocumentLoadError(f"Failed to parse PDF: {e}") from e
    if not doc.is_pdf:
        doc.close()
        raise DocumentLoadError("Buffer is not a PDF document")
    return doc


def extract_page_runs(page: fitz.Page, page_index: int) -> PageRuns:
    """Turn PyMuPDF spans into glyph runs in PDF user space.

    Each span becomes one run; the last span of a PyMuPDF line is flagged as
    ending the line.
    """
    frame = PageFrame(page)
    runs: list[GlyphRun] = []
    text_dict = page.get_text("dict")

    for block in text_dict.get("blocks", []):
        if block.get("type", 0) != 0:
            continue
        for line in block.get("lines", []):
            dx, dy = line.get("dir", (1.0, 0.0))
            cos, sin = frame.vector_to_pdf(dx, dy)
            spans = line.get("spans", [])
            for i, span in enumerate(spans):
                size = float(span.get("size") or 0.0)
                x0, y0, x1, y1 = span.get("bbox", (0.0, 0.0, 0.0, 0.0))
                origin = span.get("origin", (x0, y1))
                e, f = frame.to_pdf(origin)
                width = abs((x1 - x0) * dx + (y1 - y0) * dy)
                runs.append(
                    GlyphRun(
                        text=span.get("text", ""),
                        transform=[size * cos, size * sin, -size * sin, size * cos, e, f],
                        reported_width=width,
                        font_name=span.get("font") or None,
                        font_size=size or None,
                        ends_line=i == len(spans) - 1,
                    )
                )

    return PageRuns(page_index=page_index, width=frame.width, height=frame.height, runs=runs)


class PyMuPDFGlyphRunReader(GlyphRunReader):
    def __init__(self, doc: fitz.Document) -> None:
        self._doc = doc

    @property
    def page_count(self) -> int:
        return len(self._doc)

    async def get_page_runs(self, page_index: int) -> PageRuns:
        if page_index < 0 or page_index >= len(self._doc):
            raise InvalidPageIndexError(page_index, len(self._doc))
        page_runs = extract_page_runs(self._doc[page_index], page_index)
        log.debug("Page %s: %s glyph runs", page_index + 1, len(page_runs.runs))
        # Page decoding is the suspension point between pages.
        await asyncio.sleep(0)
        return page_runs

    def close(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()


class PyMuPDFGlyphRunProvider(GlyphRunProvider):
    """Glyph runs via PyMuPDF ``get_text("dict")`` spans."""

    def open(self, data: bytes) -> GlyphRunReader:
        return PyMuPDFGlyphRunReader(open_pdf(data))
