from pdfoid.replace.fonts import FontMetrics, get_font_metrics
from pdfoid.replace.painter import paint_replacement
from pdfoid.replace.planner import plan_replacement, resolve_geometry, width_calibration
from pdfoid.replace.schemas import (
    MatchGeometry,
    ReplacementPlan,
    ReplaceOutcome,
    ReplaceTextResult,
    SkipReason,
)

__all__ = [
    "FontMetrics",
    "MatchGeometry",
    "ReplaceOutcome",
    "ReplaceTextResult",
    "ReplacementPlan",
    "SkipReason",
    "get_font_metrics",
    "paint_replacement",
    "plan_replacement",
    "resolve_geometry",
    "width_calibration",
]
