"""
Ink Density Analyzer
====================
Scores horizontal pixel rows of a rendered page bitmap by how much "ink"
they carry, so page cuts can land in visually quiet rows.

Row statistics (mean luminance, dark-pixel counts) are computed once per
bitmap with numpy, in bounded row chunks, and then looked up in O(1).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

# Rec. 709 luma weights
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

DARK_LUMINANCE = 245.0
BLANK_LUMINANCE = 240.0
BLANK_RATIO = 0.001

# Rows converted to luminance per pass; bounds the float working set
CHUNK_ROWS = 512


@dataclass(frozen=True)
class RowScore:
    avg_luminance: float
    dark_ratio: float

    @property
    def break_score(self) -> float:
        """Lower is quieter; a pure white row scores 0."""
        return (255.0 - self.avg_luminance) + self.dark_ratio * 255.0


def as_rgb_array(bitmap) -> np.ndarray:
    """Accept a Pillow image or an (H, W, 3|4) uint8 array; return RGB array."""
    if isinstance(bitmap, Image.Image):
        return np.asarray(bitmap.convert("RGB"))

    arr = np.asarray(bitmap)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(
            f"Expected an (H, W, 3) or (H, W, 4) bitmap, got shape {arr.shape}"
        )
    return arr[:, :, :3]


class InkDensityAnalyzer:
    """Row-level ink statistics for one bitmap."""

    def __init__(
        self,
        bitmap,
        dark_luminance: float = DARK_LUMINANCE,
        blank_luminance: float = BLANK_LUMINANCE,
        blank_ratio: float = BLANK_RATIO,
    ):
        pixels = as_rgb_array(bitmap)
        self.height, self.width = pixels.shape[:2]
        self.blank_ratio = blank_ratio

        self._row_mean = np.zeros(self.height, dtype=np.float64)
        self._row_dark = np.zeros(self.height, dtype=np.int64)
        self._row_ink = np.zeros(self.height, dtype=np.int64)

        for start in range(0, self.height, CHUNK_ROWS):
            stop = min(start + CHUNK_ROWS, self.height)
            lum = pixels[start:stop].astype(np.float32) @ LUMA_WEIGHTS
            self._row_mean[start:stop] = lum.mean(axis=1) if self.width else 255.0
            self._row_dark[start:stop] = (lum < dark_luminance).sum(axis=1)
            self._row_ink[start:stop] = (lum < blank_luminance).sum(axis=1)

        # Prefix sums make any blank-region query constant time
        self._ink_prefix = np.concatenate(([0], np.cumsum(self._row_ink)))

        logger.debug(f"Analyzed bitmap {self.width}x{self.height}")

    def score_row(self, y: int) -> RowScore:
        width = self.width or 1
        return RowScore(
            avg_luminance=float(self._row_mean[y]),
            dark_ratio=float(self._row_dark[y]) / width,
        )

    def break_score(self, y: int) -> float:
        return self.score_row(y).break_score

    def is_blank_region(self, y: float, height: float) -> bool:
        """True if fewer than 0.1% of pixels in rows [y, y+height) are inked."""
        top = int(np.floor(y))
        sample_h = min(int(np.ceil(height)), self.height - top)
        if sample_h <= 0 or self.width == 0:
            return True

        inked = self._ink_prefix[top + sample_h] - self._ink_prefix[top]
        return inked / (self.width * sample_h) < self.blank_ratio

    def find_break_row(
        self,
        preferred: float,
        min_y: float,
        max_y: float,
        window: int = 120,
    ) -> int:
        """
        Quietest row near ``preferred`` within [min_y, max_y].

        Rows are visited outward from the preferred row, the downward
        candidate before the upward one at each distance; only a strictly
        lower score replaces the current best.
        """
        last = self.height - 1
        start = _clamp(int(np.floor(min_y)), 0, last)
        end = _clamp(int(np.floor(max_y)), 0, last)
        pref = _clamp(int(np.floor(preferred)), start, end)

        best_y = pref
        best_score = float("inf")
        reach = min(window, end - start)

        for dy in range(reach + 1):
            for y in (pref + dy, pref - dy):
                if y < start or y > end:
                    continue
                score = self.break_score(y)
                if score < best_score:
                    best_score = score
                    best_y = y

        return best_y


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))
