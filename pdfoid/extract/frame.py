"""Conversion between PDF user space and PyMuPDF page space.

The engine works in points with a bottom-left origin on the unrotated page.
PyMuPDF reports and draws with a top-left origin on the displayed (rotated)
page, so every coordinate crossing that boundary goes through a PageFrame.
"""

from __future__ import annotations

import fitz


class PageFrame:
    def __init__(self, page: fitz.Page) -> None:
        self.rotation = page.rotation
        self._rotate = fitz.Matrix(page.rotation_matrix)
        self._derotate = fitz.Matrix(page.derotation_matrix)
        unrotated = fitz.Rect(page.rect) * self._derotate
        self.width = abs(unrotated.width)
        self.height = abs(unrotated.height)

    def to_pdf(self, point: fitz.Point | tuple[float, float]) -> tuple[float, float]:
        p = fitz.Point(point) * self._derotate
        return p.x, self.height - p.y

    def vector_to_pdf(self, dx: float, dy: float) -> tuple[float, float]:
        m = self._derotate
        v = fitz.Point(dx, dy) * fitz.Matrix(m.a, m.b, m.c, m.d, 0, 0)
        return v.x, -v.y

    def to_page(self, x: float, y: float) -> fitz.Point:
        return fitz.Point(x, self.height - y) * self._rotate

    def rect_to_page(self, x: float, y: float, width: float, height: float) -> fitz.Rect:
        """Bottom-left based rectangle -> normalized PyMuPDF rectangle."""
        return fitz.Rect(self.to_page(x, y), self.to_page(x + width, y + height)).normalize()
