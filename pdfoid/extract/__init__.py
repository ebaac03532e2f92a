from pdfoid.extract.base import GlyphRunProvider, GlyphRunReader
from pdfoid.extract.frame import PageFrame
from pdfoid.extract.models import GlyphRun, PageRuns
from pdfoid.extract.pymupdf_provider import PyMuPDFGlyphRunProvider, extract_page_runs, open_pdf

__all__ = [
    "GlyphRun",
    "GlyphRunProvider",
    "GlyphRunReader",
    "PageFrame",
    "PageRuns",
    "PyMuPDFGlyphRunProvider",
    "extract_page_runs",
    "open_pdf",
]
