"""
Page Overlay Stamper
====================
Draws the repeating page chrome on top of a composed page raster:
border rectangle, centered translucent logo and the register number in all
four corners. Stamping happens after content placement so content never
hides the marks.
"""

from __future__ import annotations

import hashlib
import io
import logging
from dataclasses import astuple
from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageDraw, ImageFont

from .config import OverlayConfig

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0

# Image.info key recording which overlay a page already carries
STAMP_INFO_KEY = "labrecord_stamp"


def load_logo(source: Union[str, Path, bytes, None]) -> Optional[Image.Image]:
    """
    Load a logo from a path or raw bytes.

    Returns None (and logs) when the asset is missing or unreadable;
    pages are then produced without a logo.
    """
    if source is None:
        return None

    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(source)
        img.load()
        return img.convert("RGBA")
    except (OSError, ValueError) as e:
        logger.warning(f"Logo could not be loaded, continuing without it: {e}")
        return None


class PageOverlayStamper:
    """
    Stamps page chrome onto page images.

    ``stamp`` never mutates its input and returns equal output for equal
    inputs. Stamped pages carry a signature in ``Image.info``; a page already
    stamped with the same register number, logo and geometry is returned
    unchanged.
    """

    def __init__(
        self,
        dpi: int = 150,
        config: Optional[OverlayConfig] = None,
        logo: Optional[Image.Image] = None,
        register_number: str = "",
    ):
        self.dpi = dpi
        self.config = config or OverlayConfig()
        self.logo = logo
        self.register_number = register_number.strip()
        self.signature = self._signature()

    def mm(self, value: float) -> int:
        return int(round(value / MM_PER_INCH * self.dpi))

    def _signature(self) -> str:
        digest = hashlib.sha1()
        digest.update(repr((self.dpi, astuple(self.config), self.register_number)).encode())
        if self.logo is not None:
            digest.update(repr((self.logo.mode, self.logo.size)).encode())
            digest.update(self.logo.tobytes())
        return digest.hexdigest()

    def stamp(self, page: Image.Image) -> Image.Image:
        """Return a stamped RGB copy of ``page``."""
        if page.info.get(STAMP_INFO_KEY) == self.signature:
            return page.convert("RGB")

        canvas = page.convert("RGBA")

        self._draw_border(canvas)
        if self.logo is not None:
            canvas = self._composite_logo(canvas)
        if self.register_number:
            canvas = self._stamp_identifier(canvas)

        stamped = canvas.convert("RGB")
        stamped.info[STAMP_INFO_KEY] = self.signature
        return stamped

    def _draw_border(self, canvas: Image.Image):
        c = self.config
        w, h = canvas.size
        inset = self.mm(c.border_inset_mm)
        line = max(1, self.mm(c.border_width_mm))
        draw = ImageDraw.Draw(canvas)
        draw.rectangle(
            (inset, inset, w - inset - 1, h - inset - 1),
            outline=c.border_color + (255,),
            width=line,
        )

    def _composite_logo(self, canvas: Image.Image) -> Image.Image:
        c = self.config
        w, h = canvas.size
        lw, lh = self.mm(c.logo_width_mm), self.mm(c.logo_height_mm)

        logo = self.logo.convert("RGBA").resize((lw, lh), Image.Resampling.LANCZOS)
        alpha = logo.getchannel("A").point(lambda a: int(a * c.logo_opacity))
        logo.putalpha(alpha)

        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        layer.paste(logo, ((w - lw) // 2, (h - lh) // 2))
        return Image.alpha_composite(canvas, layer)

    def _stamp_identifier(self, canvas: Image.Image) -> Image.Image:
        c = self.config
        w, h = canvas.size
        font_px = max(1, int(round(c.id_font_size_pt / POINTS_PER_INCH * self.dpi)))
        font = ImageFont.load_default(size=font_px)

        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        left, top, right, bottom = draw.textbbox((0, 0), self.register_number, font=font)
        text_w, text_h = right - left, bottom - top

        side = self.mm(c.id_side_offset_mm)
        top_baseline = self.mm(c.id_top_baseline_mm)
        bottom_baseline = h - self.mm(c.id_bottom_baseline_mm)
        fill = c.id_color + (int(round(255 * c.id_opacity)),)

        for x, baseline in (
            (side, top_baseline),
            (w - side - text_w, top_baseline),
            (side, bottom_baseline),
            (w - side - text_w, bottom_baseline),
        ):
            draw.text((x - left, baseline - text_h - top), self.register_number, font=font, fill=fill)

        return Image.alpha_composite(canvas, layer)
