"""
Fragment Extractor
==================
Extracts positioned text fragments from PDF files using PyMuPDF (fitz).
One fragment per text span, keeping its baseline and extraction order.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import fitz  # PyMuPDF

from .models import TextFragment

logger = logging.getLogger(__name__)


class ExtractionFailed(RuntimeError):
    """The text-extraction collaborator could not read the document."""

    def __init__(self, source: str, cause: BaseException):
        super().__init__(f"Text extraction failed for {source}: {cause}")
        self.source = source
        self.cause = cause


class FragmentExtractor:
    """
    Handles PDF ingestion and span-level text extraction.

    Fragments are emitted in PyMuPDF's extraction order (block, line,
    span); no reading-order reconstruction is attempted.
    """

    def page_count(self, pdf_path: Union[str, Path]) -> int:
        """Get total number of pages in the PDF."""
        try:
            with fitz.open(pdf_path) as doc:
                return doc.page_count
        except Exception as e:
            raise ExtractionFailed(str(pdf_path), e) from e

    def extract(
        self,
        pdf_path: Union[str, Path],
        page_range: Optional[tuple[int, int]] = None,
    ) -> list[list[TextFragment]]:
        """
        Extract fragments page by page.

        Args:
            pdf_path: Path to the PDF file.
            page_range: Optional (start, end) range (1-indexed, inclusive).

        Returns:
            One list of TextFragments per extracted page.

        Raises:
            ExtractionFailed: If the file is missing or cannot be parsed.
        """
        try:
            with fitz.open(pdf_path) as doc:
                return self._extract_doc(doc, page_range)
        except Exception as e:
            raise ExtractionFailed(str(pdf_path), e) from e

    def extract_bytes(
        self,
        data: bytes,
        page_range: Optional[tuple[int, int]] = None,
        source: str = "<upload>",
    ) -> list[list[TextFragment]]:
        """Same as ``extract`` for an in-memory PDF (e.g. an HTTP upload)."""
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                return self._extract_doc(doc, page_range)
        except Exception as e:
            raise ExtractionFailed(source, e) from e

    def _extract_doc(
        self,
        doc: fitz.Document,
        page_range: Optional[tuple[int, int]],
    ) -> list[list[TextFragment]]:
        total_pages = doc.page_count
        start_page, end_page = 1, total_pages
        if page_range:
            start_page = max(1, page_range[0])
            end_page = min(total_pages, page_range[1])

        logger.info(f"Extracting fragments (pages {start_page} to {end_page})")

        pages: list[list[TextFragment]] = []
        for page_idx in range(start_page - 1, end_page):
            page_dict = doc[page_idx].get_text(
                "dict", flags=fitz.TEXT_PRESERVE_WHITESPACE
            )
            fragments: list[TextFragment] = []
            for block in page_dict.get("blocks", []):
                if block.get("type") != 0:
                    continue
                for line in block.get("lines", []):
                    for span in line.get("spans", []):
                        text = span.get("text", "")
                        if not text:
                            continue
                        fragments.append(TextFragment(
                            text=text,
                            baseline_y=span["origin"][1],
                            page_index=page_idx,
                        ))
            pages.append(fragments)

        logger.info(
            f"Extracted {sum(len(p) for p in pages)} fragments "
            f"from {len(pages)} pages"
        )
        return pages
