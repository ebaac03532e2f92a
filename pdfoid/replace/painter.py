from __future__ import annotations

import fitz

from pdfoid.extract.frame import PageFrame
from pdfoid.replace.schemas import ReplacementPlan
from pdfoid.search.schemas import Rect

WHITE = (1, 1, 1)
BLACK = (0, 0, 0)


def paint_replacement(
    page: fitz.Page,
    plan: ReplacementPlan,
    frame: PageFrame | None = None,
    font_name: str = "helv",
) -> Rect:
    """Cover the original glyphs with an opaque white box and draw the replacement on top.

    The original text stays in the content stream; only the rendering changes.
    """
    if not plan.fits or plan.erase is None:
        raise ValueError(f"Cannot paint a replacement that does not fit ({plan.reason})")
    frame = frame or PageFrame(page)
    erase = plan.erase
    page.draw_rect(
        frame.rect_to_page(erase.x, erase.y, erase.width, erase.height),
        color=None,
        fill=WHITE,
        width=0,
        overlay=True,
    )
    if plan.replacement:
        page.insert_text(
            frame.to_page(plan.text_x, plan.text_y),
            plan.replacement,
            fontsize=plan.draw_font_size,
            fontname=font_name,
            color=BLACK,
            overlay=True,
        )
    return erase
