"""
Configuration
=============
Tuning parameters for extraction, pagination and page overlays.

Every heuristic threshold lives here so callers can adjust it without
touching the algorithms. A JSON file with ``extraction``, ``pagination``
and ``overlay`` sections can be loaded with ``load_config``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Used when a marks fraction cannot be parsed from a question segment.
DEFAULT_MAX_MARKS = 10

A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0


@dataclass
class ExtractionConfig:
    """Heuristics for line assembly and record segmentation."""

    # Baseline delta (text-space units) above which a new line starts
    line_gap_threshold: float = 5.0

    # Number of following lines handed to the question-start detector
    lookahead_window: int = 9
    # How many of those lines may carry the "Problem Statement" marker
    statement_lookahead: int = 2

    default_max_marks: int = DEFAULT_MAX_MARKS

    # Regexes (case-insensitive) identifying the institution line
    institution_patterns: tuple[str, ...] = (
        r"psg institute",
        r"psg.*tech|tech.*psg",
    )
    default_institution: str = "PSG Institute of Technology and Applied Research"


@dataclass
class PaginationConfig:
    """Page geometry and page-break search parameters (pixels unless noted)."""

    page_width_mm: float = A4_WIDTH_MM
    page_height_mm: float = A4_HEIGHT_MM
    margin_mm: float = 10.0

    # Remainders shorter than this never get their own page
    min_sliver_px: int = 50
    # Break search only runs when more than this much remains
    search_threshold_px: int = 220
    search_window_px: int = 120
    search_floor_px: int = 80
    search_back_px: int = 180
    # Minimum height of a page slice before zone correction
    min_page_px: int = 120

    # Protected-zone correction
    zone_clearance_px: int = 4
    zone_floor_px: int = 80
    zone_edge_tolerance_px: int = 2
    zone_max_iterations: int = 10

    # Luminance thresholds
    dark_luminance: float = 245.0
    blank_luminance: float = 240.0
    blank_ratio: float = 0.001

    # Output raster resolution for assembled pages
    dpi: int = 150

    @property
    def usable_width_mm(self) -> float:
        return self.page_width_mm - self.margin_mm * 2

    @property
    def usable_height_mm(self) -> float:
        return self.page_height_mm - self.margin_mm * 2


@dataclass
class OverlayConfig:
    """Geometry of the per-page chrome (millimetres, opacities 0-1)."""

    border_inset_mm: float = 5.0
    border_width_mm: float = 0.5
    border_color: tuple[int, int, int] = (28, 28, 28)

    logo_width_mm: float = 60.0
    logo_height_mm: float = 75.0
    logo_opacity: float = 0.2

    id_opacity: float = 0.15
    id_font_size_pt: float = 9.0
    id_color: tuple[int, int, int] = (0, 0, 0)
    id_side_offset_mm: float = 8.0
    id_top_baseline_mm: float = 9.0
    id_bottom_baseline_mm: float = 6.0


@dataclass
class EngineSettings:
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    overlay: OverlayConfig = field(default_factory=OverlayConfig)


def _build(cls, data: dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning(
            f"Ignoring unknown {cls.__name__} keys: {', '.join(sorted(unknown))}"
        )
    values = {}
    for key, value in data.items():
        if key not in known:
            continue
        # JSON has no tuples
        values[key] = tuple(value) if isinstance(value, list) else value
    return cls(**values)


def load_config(config_path: str | Path) -> EngineSettings:
    """Load engine settings from a JSON file; missing sections use defaults."""
    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return EngineSettings(
        extraction=_build(ExtractionConfig, data.get("extraction", {})),
        pagination=_build(PaginationConfig, data.get("pagination", {})),
        overlay=_build(OverlayConfig, data.get("overlay", {})),
    )
