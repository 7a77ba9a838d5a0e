"""
Lab Record Engine
=================
Main orchestrator that combines fragment extraction, line assembly, field
lookup and record segmentation on one side, and page planning, overlay
stamping and PDF assembly on the other.

Usage:
    engine = LabRecordEngine(config)
    record = engine.extract("path/to/submission.pdf")
    slices = engine.plan_pages(bitmap, zones)
    engine.render_pdf(bitmap, zones, "out.pdf", register_number="...")

Architecture:
    PDF → FragmentExtractor → TextFragments → LineAssembler → lines →
    FieldExtractor + RecordSegmenter → ExtractedRecord

    bitmap + zones → PageBreakPlanner (InkDensityAnalyzer) → PageSlices →
    DocumentAssembler (PageOverlayStamper) → PDF
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from PIL import Image

from .config import EngineSettings, ExtractionConfig, OverlayConfig, PaginationConfig
from .document import DocumentAssembler
from .field_extractor import FieldExtractor, extract_lab_info
from .fragment_extractor import FragmentExtractor
from .line_assembler import assemble_text, erase_identifier, split_lines
from .models import (
    ExtractedRecord,
    PageSlice,
    ProtectedZone,
    TextFragment,
)
from .overlay import PageOverlayStamper, load_logo
from .page_planner import PageBreakPlanner
from .segmenter import RecordSegmenter

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class LabRecordConfig:
    """Configuration for the lab record engine."""

    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    overlay: OverlayConfig = field(default_factory=OverlayConfig)

    # Processing
    page_range: Optional[tuple[int, int]] = None

    # Output settings
    output_dir: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: EngineSettings, **kwargs) -> LabRecordConfig:
        return cls(
            extraction=settings.extraction,
            pagination=settings.pagination,
            overlay=settings.overlay,
            **kwargs,
        )


class LabRecordEngine:
    """
    Extraction and repagination engine.

    Every operation is a pure function of its inputs; one engine may be
    shared across documents.
    """

    def __init__(self, config: Optional[LabRecordConfig] = None):
        self.config = config or LabRecordConfig()
        self._setup_logging()

        self.fragment_extractor = FragmentExtractor()
        self.segmenter = RecordSegmenter(self.config.extraction)
        self.planner = PageBreakPlanner(self.config.pagination)

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        pkg_logger = logging.getLogger("labrecord")
        pkg_logger.setLevel(log_level)

        # Console handler
        if not pkg_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
            pkg_logger.addHandler(console)

        # File handler, once per log file
        if self.config.log_file:
            log_path = os.path.abspath(self.config.log_file)
            if any(
                isinstance(h, logging.FileHandler) and h.baseFilename == log_path
                for h in pkg_logger.handlers
            ):
                return

            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
            pkg_logger.addHandler(file_handler)

    # ─── Extraction ──────────────────────────────────────────────────────────

    def extract(self, pdf_path: Union[str, Path]) -> ExtractedRecord:
        """
        Extract a structured record from a submission PDF.

        Raises:
            ExtractionFailed: If the PDF cannot be read.
        """
        start_time = time.time()
        logger.info(f"Starting extraction of: {pdf_path}")

        pages = self.fragment_extractor.extract(pdf_path, page_range=self.config.page_range)
        record = self.extract_fragments(pages)

        elapsed = time.time() - start_time
        logger.info(
            f"Extraction complete in {elapsed:.2f}s — "
            f"{len(record.questions)} questions extracted"
        )

        if self.config.output_dir:
            output_dir = Path(self.config.output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            self._save_json(record, output_dir / f"{Path(pdf_path).stem}_record.json")

        return record

    def extract_bytes(self, data: bytes, source: str = "<upload>") -> ExtractedRecord:
        """Extract a record from an in-memory PDF."""
        pages = self.fragment_extractor.extract_bytes(
            data, page_range=self.config.page_range, source=source
        )
        return self.extract_fragments(pages)

    def extract_fragments(self, pages: Iterable[Iterable[TextFragment]]) -> ExtractedRecord:
        """Build a record from page-ordered fragments."""
        text = assemble_text(pages, self.config.extraction.line_gap_threshold)
        return self.extract_text(text)

    def extract_text(self, text: str) -> ExtractedRecord:
        """
        Build a record from an assembled text block.

        Student fields are read from the raw lines; once a valid register
        number is known it is erased from the text before lab metadata and
        questions are parsed.
        """
        student_info = FieldExtractor(split_lines(text)).student_info()

        if student_info.register_number:
            text = erase_identifier(text, student_info.register_number)

        lines = split_lines(text)
        lab_info = extract_lab_info(lines, self.config.extraction)
        questions = self.segmenter.segment(lines)

        if not questions:
            logger.warning("No question segments detected")

        return ExtractedRecord(
            student_info=student_info,
            lab_info=lab_info,
            questions=questions,
        )

    # ─── Repagination ────────────────────────────────────────────────────────

    def plan_pages(
        self,
        bitmap,
        zones: Iterable[ProtectedZone] = (),
        page_height_px: Optional[int] = None,
    ) -> list[PageSlice]:
        """Plan page slices for a full-height document bitmap."""
        return self.planner.plan(bitmap, zones, page_height_px=page_height_px)

    def render_pages(
        self,
        bitmap,
        zones: Iterable[ProtectedZone] = (),
        register_number: str = "",
        logo: Union[str, Path, bytes, Image.Image, None] = None,
    ) -> list[Image.Image]:
        """Plan, compose and stamp pages; returns page images."""
        assembler = self._assembler(register_number, logo)
        return assembler.compose_pages(bitmap, self.plan_pages(bitmap, zones))

    def render_pdf(
        self,
        bitmap,
        zones: Iterable[ProtectedZone] = (),
        output_path: Union[str, Path, None] = None,
        register_number: str = "",
        logo: Union[str, Path, bytes, Image.Image, None] = None,
    ) -> bytes:
        """
        Render a paginated PDF of ``bitmap``.

        Returns the PDF bytes, after writing them to ``output_path`` if given.
        """
        assembler = self._assembler(register_number, logo)
        pages = assembler.compose_pages(bitmap, self.plan_pages(bitmap, zones))

        if output_path:
            return assembler.write_pdf(pages, output_path).read_bytes()
        return assembler.to_pdf_bytes(pages)

    def _assembler(
        self,
        register_number: str,
        logo: Union[str, Path, bytes, Image.Image, None],
    ) -> DocumentAssembler:
        if not isinstance(logo, Image.Image):
            logo = load_logo(logo)

        stamper = PageOverlayStamper(
            dpi=self.config.pagination.dpi,
            config=self.config.overlay,
            logo=logo,
            register_number=register_number,
        )
        return DocumentAssembler(self.config.pagination, stamper)

    def _save_json(self, record: ExtractedRecord, filepath: Path):
        """Save a record to a JSON file."""
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(record.model_dump(), f, indent=2, ensure_ascii=False, default=str)
            logger.info(f"Saved JSON output: {filepath}")
        except OSError as e:
            logger.error(f"Failed to save JSON: {e}")
