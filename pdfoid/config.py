"""Engine settings: layout heuristics, replacement fit limits and UI timings.

The layout thresholds (same-line factor, word-gap factor) are empirical and
are exposed here so unusual documents can be tuned without code changes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

log = logging.getLogger(__name__)

DEFAULT_FLASH_TTL_MS = 900
ENV_PREFIX = "PDFOID_"


class EngineSettings(BaseModel):
    """Tunable constants of the search-and-replace engine."""

    # Text layout reconstruction
    shear_tolerance: float = Field(default=0.1, ge=0.0)
    same_line_factor: float = Field(default=0.9, gt=0.0)
    word_gap_factor: float = Field(default=0.25, ge=0.0)
    estimated_glyph_factor: float = Field(default=0.5, gt=0.0)
    snippet_context: int = Field(default=12, ge=0)

    # Width calibration between the parser's and the drawing font's metrics
    calibration_min: float = Field(default=0.8, gt=0.0)
    calibration_max: float = Field(default=1.25, gt=0.0)

    # Replacement fitting
    fit_tolerance: float = Field(default=1.05, gt=0.0)
    fit_target: float = Field(default=0.98, gt=0.0)
    min_scale_bulk: float = Field(default=0.60, gt=0.0, le=1.0)
    min_scale_rederived: float = Field(default=0.85, gt=0.0, le=1.0)
    min_font_size: float = Field(default=6.0, gt=0.0)
    fallback_font: str = "helv"

    # Erasure rectangle
    erase_pad_x_min: float = 2.0
    erase_pad_x_ratio: float = 0.05
    erase_pad_y_min: float = 1.0
    erase_pad_y_ratio: float = 0.1
    erase_max_width_ratio: float = Field(default=0.5, gt=0.0)
    erase_max_height_ratio: float = Field(default=0.1, gt=0.0)

    # Ephemeral UI state
    flash_ttl_ms: int = DEFAULT_FLASH_TTL_MS
    auto_clear_highlight_ms: int = 0
    flash_history: int = Field(default=24, ge=0)

    debug: bool = False
    debug_limit: int = Field(default=20, ge=0)

    @field_validator("flash_ttl_ms", mode="before")
    @classmethod
    def _sane_flash_ttl(cls, value: Any) -> int:
        try:
            ms = int(float(value))
        except (TypeError, ValueError):
            return DEFAULT_FLASH_TTL_MS
        return ms if ms >= 100 else DEFAULT_FLASH_TTL_MS

    @field_validator("auto_clear_highlight_ms", mode="before")
    @classmethod
    def _sane_auto_clear(cls, value: Any) -> int:
        try:
            ms = int(float(value))
        except (TypeError, ValueError):
            return 0
        return ms if ms >= 0 else 0

    @classmethod
    def from_env(cls, env_file: str | Path | None = None, **overrides: Any) -> "EngineSettings":
        """Build settings from ``PDFOID_*`` environment variables (and an optional .env file)."""
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            if name == "debug":
                values[name] = raw.strip().lower() in {"1", "true", "yes", "on"}
            else:
                values[name] = raw.strip()
        values.update(overrides)
        settings = cls.model_validate(values)
        log.debug("Engine settings loaded from env: %s", sorted(values))
        return settings
