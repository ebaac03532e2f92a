"""pdfoid: text search-and-replace engine for PDF documents."""

from pdfoid.config import EngineSettings
from pdfoid.search.schemas import FindTextOptions, TextMatch
from pdfoid.session.engine import EditorSession

__all__ = ["EditorSession", "EngineSettings", "FindTextOptions", "TextMatch"]

__version__ = "0.1.0"
