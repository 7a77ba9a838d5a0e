"""
Document Assembler
==================
Composes planned page slices into finished pages and writes them to PDF.

Each slice is cropped from the full-height bitmap, scaled to the usable
page width, placed inside the margins of a white page and stamped with the
page chrome. PDF output uses PyMuPDF, one full-page image per page.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
from PIL import Image

from .config import PaginationConfig
from .ink_density import as_rgb_array
from .models import PageSlice
from .overlay import MM_PER_INCH, POINTS_PER_INCH, PageOverlayStamper

logger = logging.getLogger(__name__)


class DocumentAssembler:
    """Builds page images from slices and serializes them as a PDF."""

    def __init__(
        self,
        config: Optional[PaginationConfig] = None,
        stamper: Optional[PageOverlayStamper] = None,
    ):
        self.config = config or PaginationConfig()
        self.stamper = stamper or PageOverlayStamper(dpi=self.config.dpi)

    def _px(self, mm: float) -> int:
        return int(round(mm / MM_PER_INCH * self.config.dpi))

    def compose_pages(self, bitmap, slices: list[PageSlice]) -> list[Image.Image]:
        """Place each slice on its own stamped page."""
        source = Image.fromarray(as_rgb_array(bitmap))
        c = self.config

        page_w, page_h = self._px(c.page_width_mm), self._px(c.page_height_mm)
        margin = self._px(c.margin_mm)
        usable_w = self._px(c.usable_width_mm)

        pages: list[Image.Image] = []
        for page_num, s in enumerate(slices, start=1):
            content = source.crop((0, s.source_top, source.width, s.source_bottom))
            content_h = max(1, self._px(s.rendered_height_mm))
            content = content.resize((usable_w, content_h), Image.Resampling.LANCZOS)

            page = Image.new("RGB", (page_w, page_h), (255, 255, 255))
            page.paste(content, (margin, margin))
            pages.append(self.stamper.stamp(page))

            logger.debug(
                f"Page {page_num}: rows {s.source_top}-{s.source_bottom} "
                f"-> {s.rendered_height_mm:.1f}mm"
            )

        return pages

    def blank_page(self) -> Image.Image:
        """A stamped page with no content."""
        c = self.config
        size = (self._px(c.page_width_mm), self._px(c.page_height_mm))
        return self.stamper.stamp(Image.new("RGB", size, (255, 255, 255)))

    def to_pdf_bytes(self, pages: list[Image.Image], jpeg_quality: int = 85) -> bytes:
        """
        Serialize page images into a PDF document.

        A PDF needs at least one page; with no pages (a blank source) a single
        stamped blank page is written.
        """
        c = self.config
        width_pt = c.page_width_mm / MM_PER_INCH * POINTS_PER_INCH
        height_pt = c.page_height_mm / MM_PER_INCH * POINTS_PER_INCH

        if not pages:
            logger.info("No content pages; writing a single blank page")
            pages = [self.blank_page()]

        doc = fitz.open()
        try:
            for page_img in pages:
                buf = io.BytesIO()
                page_img.save(buf, format="JPEG", quality=jpeg_quality)
                page = doc.new_page(width=width_pt, height=height_pt)
                page.insert_image(page.rect, stream=buf.getvalue())
            return doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

    def write_pdf(self, pages: list[Image.Image], output_path: str | Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.to_pdf_bytes(pages))
        logger.info(f"Wrote {len(pages)} pages to {output_path}")
        return output_path
