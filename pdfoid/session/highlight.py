"""Ephemeral UI state: the current-match highlight and post-replace flashes.

Rectangles are handed to the UI normalized to the page (top-left origin,
fractions in ``[0, 1]``) so they survive any zoom level.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from pydantic import BaseModel, Field

from pdfoid.search.schemas import Rect

log = logging.getLogger(__name__)

# Highlight boxes reach below the baseline to cover descenders.
DESCENDER_ALLOWANCE = 0.2
HIGHLIGHT_HEIGHT_FACTOR = 1.2


def _unit(value: float) -> float:
    return max(0.0, min(1.0, value))


class NormRect(BaseModel):
    left: float = Field(ge=0.0, le=1.0)
    top: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)


class MatchBadge(BaseModel):
    index: int
    total: int


class HighlightState(BaseModel):
    page_index: int
    rect_norm: NormRect
    badge: MatchBadge | None = None


class FlashRect(BaseModel):
    id: str
    page_index: int
    rect_norm: NormRect
    added_at: float
    ttl_ms: int

    def is_expired(self, now_ms: float | None = None) -> bool:
        now_ms = time.time() * 1000 if now_ms is None else now_ms
        return now_ms - self.added_at >= self.ttl_ms


def normalize_match_rect(rect: Rect, page_width: float, page_height: float) -> NormRect:
    """Baseline-anchored match rect -> highlight box including a descender allowance."""
    if page_width <= 0 or page_height <= 0:
        return NormRect(left=0.0, top=0.0, width=0.0, height=0.0)
    bottom_y = rect.y - rect.height * DESCENDER_ALLOWANCE
    box_height = rect.height * HIGHLIGHT_HEIGHT_FACTOR
    return NormRect(
        left=_unit(rect.x / page_width),
        top=_unit(1 - (bottom_y + box_height) / page_height),
        width=_unit(rect.width / page_width),
        height=_unit(box_height / page_height),
    )


def normalize_rect(rect: Rect, page_width: float, page_height: float) -> NormRect:
    """Bottom-left based rect -> top-left fractions."""
    if page_width <= 0 or page_height <= 0:
        return NormRect(left=0.0, top=0.0, width=0.0, height=0.0)
    return NormRect(
        left=_unit(rect.x / page_width),
        top=_unit(1 - (rect.y + rect.height) / page_height),
        width=_unit(rect.width / page_width),
        height=_unit(rect.height / page_height),
    )


class EphemeralScheduler:
    """Keyed ``call_later`` timers; scheduling a key replaces its previous timer."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def _key(self, purpose: str) -> str:
        return f"{self.namespace}:{purpose}"

    def schedule(self, purpose: str, delay_ms: float, callback: Callable[[], None]) -> bool:
        """Run ``callback`` after ``delay_ms``. Returns False when no event loop is running."""
        self.cancel(purpose)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running loop; %s will not expire automatically", self._key(purpose))
            return False
        key = self._key(purpose)

        def fire() -> None:
            self._handles.pop(key, None)
            callback()

        self._handles[key] = loop.call_later(max(0.0, delay_ms) / 1000.0, fire)
        return True

    def cancel(self, purpose: str) -> None:
        handle = self._handles.pop(self._key(purpose), None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def pending(self) -> list[str]:
        return sorted(self._handles)
