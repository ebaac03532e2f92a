from pdfoid.session.engine import EditorSession
from pdfoid.session.highlight import EphemeralScheduler, FlashRect, HighlightState, MatchBadge, NormRect
from pdfoid.session.page_edits import CropBox, ImageBox, PageSize
from pdfoid.session.transaction import DocumentBuffer, TransactionState

__all__ = [
    "CropBox",
    "DocumentBuffer",
    "EditorSession",
    "EphemeralScheduler",
    "FlashRect",
    "HighlightState",
    "ImageBox",
    "MatchBadge",
    "NormRect",
    "PageSize",
    "TransactionState",
]
