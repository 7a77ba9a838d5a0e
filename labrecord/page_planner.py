"""
Page Break Planner
==================
Plans where a tall rendered bitmap is cut into pages.

Each cut starts at the page-height mark, slides to the quietest nearby row
(per the InkDensityAnalyzer) and is then pulled above any protected
"keep together" zone it would split. Trailing slivers and blank tails never
become pages of their own.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from .config import PaginationConfig
from .ink_density import InkDensityAnalyzer
from .models import PageSlice, ProtectedZone

logger = logging.getLogger(__name__)


class PageGeometry:
    """Maps bitmap pixels to printed millimetres for a fixed page layout."""

    def __init__(self, config: Optional[PaginationConfig] = None):
        self.config = config or PaginationConfig()

    def usable_height_px(self, bitmap_width: int) -> int:
        """Source pixels that fill one page when the width fills the usable width."""
        c = self.config
        return int(math.floor(bitmap_width * c.usable_height_mm / c.usable_width_mm))

    def rendered_height_mm(self, slice_px: float, bitmap_width: int) -> float:
        return slice_px * self.config.usable_width_mm / bitmap_width


class PageBreakPlanner:
    """
    Computes page slices for a bitmap.

    Pure: the same bitmap, zones and configuration always give the same plan.
    """

    def __init__(self, config: Optional[PaginationConfig] = None):
        self.config = config or PaginationConfig()
        self.geometry = PageGeometry(self.config)

    def plan(
        self,
        bitmap,
        zones: Iterable[ProtectedZone] = (),
        page_height_px: Optional[int] = None,
    ) -> list[PageSlice]:
        """
        Plan page slices for ``bitmap``.

        Args:
            bitmap: RGB(A) numpy array or Pillow image of the full document.
            zones: Pixel intervals that should stay on one page.
            page_height_px: Usable page height in source pixels; derived
                from the page geometry and bitmap width when omitted.

        Returns:
            Ordered, contiguous PageSlices starting at row 0.
        """
        c = self.config
        analyzer = InkDensityAnalyzer(
            bitmap,
            dark_luminance=c.dark_luminance,
            blank_luminance=c.blank_luminance,
            blank_ratio=c.blank_ratio,
        )
        height = analyzer.height
        width = analyzer.width
        if height == 0 or width == 0:
            logger.warning("Empty bitmap; nothing to paginate")
            return []

        usable = page_height_px or self.geometry.usable_height_px(width)
        ordered_zones = sorted(zones, key=lambda z: z.top)

        slices: list[PageSlice] = []
        src_y = 0

        while src_y < height - 1:
            remaining = height - src_y

            if remaining < c.min_sliver_px:
                break
            if analyzer.is_blank_region(src_y, remaining):
                logger.debug(f"Blank tail from row {src_y}; stopping")
                break

            desired = min(usable, remaining)
            preferred = src_y + desired

            break_y = preferred
            if remaining > c.search_threshold_px:
                search_min = src_y + max(c.search_floor_px, desired - c.search_back_px)
                search_max = min(height - 1, preferred + c.search_window_px)
                break_y = analyzer.find_break_row(
                    preferred, search_min, search_max, window=c.search_window_px
                )

            break_y = min(max(break_y, src_y + c.min_page_px), height)
            break_y = self._avoid_zones(break_y, src_y, ordered_zones, usable)

            slices.append(PageSlice(
                source_top=src_y,
                source_bottom=break_y,
                rendered_height_mm=self.geometry.rendered_height_mm(
                    break_y - src_y, width
                ),
            ))
            src_y = break_y

        logger.info(
            f"Planned {len(slices)} pages for {width}x{height} bitmap "
            f"(page height {usable}px, {len(ordered_zones)} protected zones)"
        )
        return slices

    def _avoid_zones(
        self,
        break_y: int,
        src_y: int,
        zones: list[ProtectedZone],
        usable: int,
    ) -> int:
        """Pull ``break_y`` above any single-page zone it falls inside."""
        c = self.config
        tol = c.zone_edge_tolerance_px

        for _ in range(c.zone_max_iterations):
            moved = False
            for zone in zones:
                if zone.top + tol < break_y < zone.bottom - tol:
                    if zone.height <= usable:
                        target = max(src_y + c.zone_floor_px, int(math.floor(zone.top)) - c.zone_clearance_px)
                        if target != break_y:
                            logger.debug(
                                f"Break {break_y} inside zone [{zone.top}, {zone.bottom}]; "
                                f"moved to {target}"
                            )
                            break_y = target
                            moved = True
                    else:
                        logger.debug(
                            f"Zone [{zone.top}, {zone.bottom}] taller than a page; splitting"
                        )
                    break
            if not moved:
                break

        return break_y
