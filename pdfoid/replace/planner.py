"""Geometry resolution and fit planning for visual text replacement.

The parser's glyph widths and the drawing font's widths come from different
metric tables. For single-run matches the sub-span width is re-measured with
the drawing font and scaled by ``reported / measured`` for the whole run,
clamped so one odd run cannot distort the result. Multi-run matches keep the
approximate rectangle from the search.
"""

from __future__ import annotations

import logging
import math

from pdfoid.config import EngineSettings
from pdfoid.extract.models import GlyphRun
from pdfoid.replace.fonts import FontMetrics
from pdfoid.replace.schemas import MatchGeometry, ReplacementPlan
from pdfoid.search.layout import DEFAULT_FONT_SIZE
from pdfoid.search.schemas import Rect, TextMatch

log = logging.getLogger(__name__)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def width_calibration(reported: float, measured: float, settings: EngineSettings) -> float:
    """Ratio between the parser's run width and the drawing font's width, clamped."""
    ratio = reported / measured if measured > 0 else 1.0
    if not math.isfinite(ratio):
        ratio = 1.0
    return clamp(ratio, settings.calibration_min, settings.calibration_max)


def glyph_offsets(text: str, size: float, metrics: FontMetrics, calibration: float) -> list[float]:
    """Cumulative calibrated advance before each character (len(text) + 1 values)."""
    offsets = [0.0]
    for ch in text:
        width = metrics.text_width(ch, size)
        offsets.append(offsets[-1] + (width if math.isfinite(width) else 0.0) * calibration)
    return offsets


def approximate_geometry(match: TextMatch) -> MatchGeometry:
    return MatchGeometry(
        baseline_x=match.rect.x if match.baseline_x is None else match.baseline_x,
        baseline_y=match.rect.y if match.baseline_y is None else match.baseline_y,
        selection_width=match.rect.width if match.selection_width is None else match.selection_width,
        font_size=match.original_font_size or match.rect.height,
    )


def resolve_geometry(
    match: TextMatch,
    run: GlyphRun | None,
    metrics: FontMetrics,
    settings: EngineSettings | None = None,
) -> MatchGeometry:
    """Best available baseline/width for a match.

    Single-run matches with their origin run at hand get per-glyph refinement;
    everything else, and any refinement that yields no usable width, keeps the
    search rectangle.
    """
    settings = settings or EngineSettings()
    geometry = approximate_geometry(match)
    if not match.is_single_run or run is None or not run.text or not run.has_valid_transform:
        return geometry
    a, b, _, d, e, f = run.transform[:6]
    if abs(b) > settings.shear_tolerance:
        return geometry

    font_size = max(
        settings.min_font_size,
        abs(d) or abs(a) or (run.font_size or 0.0) or geometry.font_size or DEFAULT_FONT_SIZE,
    )
    run_measured = metrics.text_width(run.text, font_size)
    reported = run.reported_width if run.reported_width > 0 else run_measured
    measured = run_measured or reported
    calibration = width_calibration(reported, measured, settings)

    start = int(clamp(match.start_in_run, 0, len(run.text)))
    end = int(clamp(start + match.length, start, len(run.text)))
    offsets = glyph_offsets(run.text, font_size, metrics, calibration)
    width = offsets[end] - offsets[start]
    if not math.isfinite(width) or width <= 0:
        return geometry

    return MatchGeometry(
        baseline_x=e + offsets[start],
        baseline_y=f if math.isfinite(f) else geometry.baseline_y,
        selection_width=width,
        font_size=font_size,
        refined=True,
        calibration=calibration,
    )


def plan_replacement(
    page_index: int,
    geometry: MatchGeometry,
    replacement: str,
    metrics: FontMetrics,
    page_width: float,
    page_height: float,
    min_scale: float,
    settings: EngineSettings | None = None,
) -> ReplacementPlan:
    """Size the replacement text and the erasure rectangle, or explain why it cannot fit."""
    settings = settings or EngineSettings()
    selection = geometry.selection_width
    font_size = geometry.font_size

    draw_size = max(settings.min_font_size, font_size)
    scale = 1.0
    base_width = metrics.text_width(replacement, draw_size) if replacement else 0.0
    if replacement and base_width > selection * settings.fit_tolerance:
        scale = (selection * settings.fit_target) / max(1.0, base_width)
        if scale < min_scale:
            log.debug("Page %s: %r needs scale %.2f < %.2f", page_index + 1, replacement, scale, min_scale)
            return ReplacementPlan(
                page_index=page_index,
                replacement=replacement,
                fits=False,
                reason="TEXT_TOO_WIDE",
                scale=scale,
                text_width=base_width,
            )
        draw_size = max(settings.min_font_size, draw_size * scale)
    text_width = metrics.text_width(replacement, draw_size) if replacement else 0.0

    ascender = metrics.ascender_height(font_size)
    descender = metrics.descender_depth(font_size)
    pad_x = max(settings.erase_pad_x_min, selection * settings.erase_pad_x_ratio)
    pad_y = max(settings.erase_pad_y_min, font_size * settings.erase_pad_y_ratio)
    erase = Rect(
        x=geometry.baseline_x - pad_x,
        y=geometry.baseline_y - descender - pad_y,
        width=max(selection, text_width) + pad_x * 2,
        height=ascender + descender + pad_y * 2,
    )

    if erase.width > page_width * settings.erase_max_width_ratio or erase.height > page_height * settings.erase_max_height_ratio:
        log.debug("Page %s: erase rect %.1fx%.1f exceeds page limits", page_index + 1, erase.width, erase.height)
        return ReplacementPlan(
            page_index=page_index,
            replacement=replacement,
            fits=False,
            reason="ERASE_TOO_WIDE",
            scale=scale,
            draw_font_size=draw_size,
            text_width=text_width,
            erase=erase,
        )

    if text_width < selection:
        text_x = geometry.baseline_x + (selection - text_width) / 2
    else:
        text_x = geometry.baseline_x
    return ReplacementPlan(
        page_index=page_index,
        replacement=replacement,
        fits=True,
        scale=scale,
        draw_font_size=draw_size,
        text_width=text_width,
        text_x=text_x,
        text_y=geometry.baseline_y,
        erase=erase,
    )
