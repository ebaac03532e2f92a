"""Structural page edits, each applied to a parsed document inside a transaction."""

from __future__ import annotations

import logging
import math
from typing import Literal

import fitz
from pydantic import BaseModel, Field

from pdfoid.errors import InvalidPageIndexError, UnsupportedImageError
from pdfoid.extract.frame import PageFrame

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = (612.0, 792.0)

PNG_SIGNATURE = b"\x89PNG"
JPEG_SIGNATURE = b"\xff\xd8"

RotateDirection = Literal["left", "right"]
PagePosition = Literal["start", "end"] | int


class PageSize(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class CropBox(BaseModel):
    """Crop area in points (bottom-left origin), or top-left page fractions when ``normalized``."""

    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    normalized: bool = False


class ImageBox(BaseModel):
    """Optional placement for an inserted image; missing fields fall back to natural size, centred."""

    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    normalized: bool = False


def check_page_index(doc: fitz.Document, page_index: int) -> fitz.Page:
    if page_index < 0 or page_index >= len(doc):
        raise InvalidPageIndexError(page_index, len(doc))
    return doc[page_index]


def resolve_position(position: PagePosition | None, count: int) -> int:
    if isinstance(position, int) and not isinstance(position, bool):
        return min(max(0, position), count)
    if position == "start":
        return 0
    return count


def add_blank_page(doc: fitz.Document, position: PagePosition | None = "end", size: PageSize | None = None) -> int:
    """Insert an empty page sized like page 0 (or Letter). Returns its index."""
    count = len(doc)
    if count:
        frame = PageFrame(doc[0])
        default_w, default_h = frame.width, frame.height
    else:
        default_w, default_h = DEFAULT_PAGE_SIZE
    width = size.width if size else default_w
    height = size.height if size else default_h
    index = resolve_position(position, count)
    doc.new_page(pno=index if index < count else -1, width=width, height=height)
    log.info("Added blank page at %s (%.0fx%.0f)", index, width, height)
    return index


def delete_page(doc: fitz.Document, page_index: int) -> None:
    check_page_index(doc, page_index)
    doc.delete_page(page_index)
    log.info("Deleted page %s", page_index)


def reorder_pages(doc: fitz.Document, from_index: int, to_index: int) -> bool:
    """Move a page in front of the page currently at ``to_index``.

    Moving forward lands the page at ``to_index - 1``. Returns False for a no-op.
    """
    check_page_index(doc, from_index)
    check_page_index(doc, to_index)
    if from_index == to_index:
        return False
    doc.move_page(from_index, to_index)
    log.info("Moved page %s before page %s", from_index, to_index)
    return True


def rotate_page(doc: fitz.Document, page_index: int, direction: RotateDirection) -> int:
    page = check_page_index(doc, page_index)
    delta = 90 if direction == "right" else -90
    rotation = (page.rotation + delta) % 360
    page.set_rotation(rotation)
    log.info("Rotated page %s to %s degrees", page_index, rotation)
    return rotation


def crop_page(doc: fitz.Document, page_index: int, box: CropBox) -> None:
    page = check_page_index(doc, page_index)
    media = page.mediabox
    width, height = media.width, media.height
    if box.normalized:
        crop_w = box.width * width
        crop_h = box.height * height
        crop_x = box.x * width
        crop_y = height - box.y * height - crop_h
    else:
        crop_x, crop_y, crop_w, crop_h = box.x, box.y, box.width, box.height
    # set_cropbox takes top-left based coordinates of the unrotated page
    page.set_cropbox(fitz.Rect(crop_x, height - (crop_y + crop_h), crop_x + crop_w, height - crop_y))
    log.info("Cropped page %s to %.1f,%.1f %.1fx%.1f", page_index, crop_x, crop_y, crop_w, crop_h)


def image_format(data: bytes) -> str:
    if data.startswith(PNG_SIGNATURE):
        return "png"
    if data.startswith(JPEG_SIGNATURE):
        return "jpeg"
    raise UnsupportedImageError("Only PNG and JPEG images can be inserted")


def insert_image(doc: fitz.Document, page_index: int, image: bytes, box: ImageBox | None = None) -> None:
    """Draw an image onto a page, keeping its aspect ratio."""
    page = check_page_index(doc, page_index)
    fmt = image_format(image)
    try:
        pix = fitz.Pixmap(image)
    except Exception as e:
        raise UnsupportedImageError(f"Cannot decode {fmt} image: {e}") from e
    natural_w, natural_h = float(pix.width), float(pix.height)
    if natural_w <= 0 or natural_h <= 0:
        raise UnsupportedImageError("Image has no pixels")

    frame = PageFrame(page)
    box = box or ImageBox()
    draw_w, draw_h = natural_w, natural_h
    if box.width:
        draw_w = box.width * frame.width if box.normalized else box.width
        draw_h = draw_w * (natural_h / natural_w)
    if box.height:
        draw_h = box.height * frame.height if box.normalized else box.height
        draw_w = draw_h * (natural_w / natural_h)

    def position(value: float | None, size: float, fallback: float) -> float:
        if value is None or not math.isfinite(value):
            return fallback
        return value * size if box.normalized else value

    x = position(box.x, frame.width, (frame.width - draw_w) / 2)
    y = position(box.y, frame.height, (frame.height - draw_h) / 2)
    if box.normalized:
        # normalized y is measured from the top
        y = frame.height - y - draw_h

    page.insert_image(frame.rect_to_page(x, y, draw_w, draw_h), stream=image, keep_proportion=False)
    log.info("Inserted %s image %sx%s on page %s", fmt, pix.width, pix.height, page_index)
