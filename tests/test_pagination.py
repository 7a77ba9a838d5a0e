"""
Test Suite for Repagination
===========================
Tests for row ink scoring, page-break planning, page overlays and PDF
assembly.
"""

from __future__ import annotations

import io

import fitz
import numpy as np
import pytest
from PIL import Image

from conftest import inked_bitmap
from labrecord.config import OverlayConfig, PaginationConfig
from labrecord.document import DocumentAssembler
from labrecord.engine import LabRecordConfig, LabRecordEngine
from labrecord.ink_density import InkDensityAnalyzer, as_rgb_array
from labrecord.models import ProtectedZone
from labrecord.overlay import PageOverlayStamper, load_logo
from labrecord.page_planner import PageBreakPlanner, PageGeometry


def _bounds(slices) -> list[tuple[int, int]]:
    return [(s.source_top, s.source_bottom) for s in slices]


def _png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# INK DENSITY TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestInkDensityAnalyzer:
    """Test row scoring and blank detection."""

    def test_white_row_scores_zero(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(10, white_rows=[3]))
        score = analyzer.score_row(3)
        assert score.avg_luminance == pytest.approx(255.0, abs=0.01)
        assert score.dark_ratio == 0.0
        assert analyzer.break_score(3) == pytest.approx(0.0, abs=0.01)

    def test_inked_row_scores_higher(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(10, white_rows=[3]))
        score = analyzer.score_row(4)
        assert score.dark_ratio == pytest.approx(1 / 200)
        assert analyzer.break_score(4) > analyzer.break_score(3)

    def test_rgba_and_pillow_inputs(self):
        rgb = inked_bitmap(20)
        rgba = np.dstack([rgb, np.full(rgb.shape[:2], 255, dtype=np.uint8)])
        a = InkDensityAnalyzer(rgb)
        b = InkDensityAnalyzer(rgba)
        c = InkDensityAnalyzer(Image.fromarray(rgb))
        assert a.break_score(5) == pytest.approx(b.break_score(5))
        assert a.break_score(5) == pytest.approx(c.break_score(5))

    def test_bad_shape_rejected(self):
        with pytest.raises(ValueError):
            as_rgb_array(np.zeros((10, 10), dtype=np.uint8))

    def test_blank_region(self):
        bitmap = inked_bitmap(100, white_rows=range(50, 100))
        analyzer = InkDensityAnalyzer(bitmap)
        assert analyzer.is_blank_region(50, 50)
        assert not analyzer.is_blank_region(0, 100)

    def test_blank_region_past_the_end(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(10))
        assert analyzer.is_blank_region(10, 5)

    def test_large_bitmap_spans_chunks(self):
        bitmap = inked_bitmap(1500, white_rows=[1300])
        analyzer = InkDensityAnalyzer(bitmap)
        assert analyzer.break_score(1300) == pytest.approx(0.0, abs=0.01)
        assert analyzer.break_score(1299) > 0

    def test_find_break_row_prefers_quiet_row(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(1000, white_rows=[350]))
        assert analyzer.find_break_row(400, 220, 520) == 350

    def test_find_break_row_tie_goes_downward(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(1000, white_rows=[390, 410]))
        assert analyzer.find_break_row(400, 220, 520) == 410

    def test_find_break_row_uniform_keeps_preferred(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(1000))
        assert analyzer.find_break_row(400, 220, 520) == 400

    def test_find_break_row_respects_bounds(self):
        analyzer = InkDensityAnalyzer(inked_bitmap(1000, white_rows=[200]))
        assert analyzer.find_break_row(300, 250, 400) == 300


# ═══════════════════════════════════════════════════════════════════════════════
# PAGE BREAK PLANNER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestPageGeometry:
    """Test pixel/millimetre mapping."""

    def test_usable_height_matches_page_aspect(self):
        assert PageGeometry().usable_height_px(190) == 277
        assert PageGeometry().usable_height_px(200) == 291

    def test_rendered_height(self):
        assert PageGeometry().rendered_height_mm(400, 200) == pytest.approx(380.0)

    def test_custom_margins(self):
        geometry = PageGeometry(PaginationConfig(margin_mm=0))
        assert geometry.usable_height_px(210) == 297


class TestPageBreakPlanner:
    """Test page slice planning."""

    def setup_method(self):
        self.planner = PageBreakPlanner()

    def test_uniform_document(self):
        slices = self.planner.plan(inked_bitmap(1000), page_height_px=400)
        assert _bounds(slices) == [(0, 400), (400, 800), (800, 1000)]
        assert slices[0].rendered_height_mm == pytest.approx(380.0)
        assert slices[0].height_px == 400

    def test_slices_are_contiguous_from_zero(self):
        slices = self.planner.plan(inked_bitmap(2345, white_rows=[700, 1333]))
        assert slices[0].source_top == 0
        for prev, cur in zip(slices, slices[1:]):
            assert cur.source_top == prev.source_bottom
            assert cur.source_bottom > cur.source_top

    def test_break_moves_to_white_row(self):
        bitmap = inked_bitmap(1000, white_rows=[350])
        slices = self.planner.plan(bitmap, page_height_px=400)
        assert slices[0].source_bottom == 350

    def test_break_pulled_above_protected_zone(self):
        zone = ProtectedZone(top=380, bottom=420)
        slices = self.planner.plan(inked_bitmap(1000), [zone], page_height_px=400)
        assert slices[0].source_bottom == 376
        for s in slices:
            assert not (zone.top + 2 < s.source_bottom < zone.bottom - 2)

    def test_zone_taller_than_page_is_split(self):
        zone = ProtectedZone(top=300, bottom=900)
        slices = self.planner.plan(inked_bitmap(1000), [zone], page_height_px=400)
        assert slices[0].source_bottom == 400

    def test_break_on_zone_edge_is_kept(self):
        zone = ProtectedZone(top=399, bottom=460)
        slices = self.planner.plan(inked_bitmap(1000), [zone], page_height_px=400)
        assert slices[0].source_bottom == 400

    def test_trailing_sliver_suppressed(self):
        slices = self.planner.plan(inked_bitmap(430), page_height_px=400)
        assert _bounds(slices) == [(0, 400)]

    def test_blank_tail_suppressed(self):
        bitmap = inked_bitmap(1000, white_rows=range(500, 1000))
        slices = self.planner.plan(bitmap, page_height_px=400)
        assert _bounds(slices) == [(0, 500)]

    def test_blank_bitmap_has_no_pages(self):
        bitmap = np.full((800, 200, 3), 255, dtype=np.uint8)
        assert self.planner.plan(bitmap) == []

    def test_empty_bitmap(self):
        assert self.planner.plan(np.zeros((0, 200, 3), dtype=np.uint8)) == []

    def test_short_document_single_page(self):
        slices = self.planner.plan(inked_bitmap(200), page_height_px=400)
        assert _bounds(slices) == [(0, 200)]

    def test_deterministic(self):
        bitmap = inked_bitmap(1800, white_rows=[260, 555, 901])
        zones = [ProtectedZone(top=1000, bottom=1100)]
        assert self.planner.plan(bitmap, zones) == self.planner.plan(bitmap, zones)

    def test_pillow_input(self):
        bitmap = inked_bitmap(1000)
        assert self.planner.plan(Image.fromarray(bitmap), page_height_px=400) == \
            self.planner.plan(bitmap, page_height_px=400)


# ═══════════════════════════════════════════════════════════════════════════════
# OVERLAY TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestPageOverlayStamper:
    """Test page chrome stamping."""

    def test_border_drawn_at_inset(self):
        stamper = PageOverlayStamper(dpi=50)
        page = stamper.stamp(Image.new("RGB", (200, 300), (255, 255, 255)))
        assert page.getpixel((10, 150)) == (28, 28, 28)
        assert page.getpixel((100, 150)) == (255, 255, 255)
        assert page.getpixel((5, 150)) == (255, 255, 255)

    def test_custom_border_color(self):
        config = OverlayConfig(border_color=(200, 0, 0))
        page = PageOverlayStamper(dpi=50, config=config).stamp(
            Image.new("RGB", (200, 300), (255, 255, 255))
        )
        assert page.getpixel((10, 150)) == (200, 0, 0)

    def test_input_not_mutated(self):
        page = Image.new("RGB", (200, 300), (255, 255, 255))
        before = page.tobytes()
        PageOverlayStamper(dpi=50, register_number="715523104012").stamp(page)
        assert page.tobytes() == before

    def test_deterministic(self):
        logo = Image.new("RGBA", (40, 40), (0, 0, 255, 255))
        stamper = PageOverlayStamper(dpi=50, logo=logo, register_number="715523104012")
        page = Image.new("RGB", (300, 400), (255, 255, 255))
        assert stamper.stamp(page).tobytes() == stamper.stamp(page).tobytes()

    def test_logo_is_translucent_and_centered(self):
        logo = Image.new("RGBA", (100, 100), (255, 0, 0, 255))
        page = PageOverlayStamper(dpi=50, logo=logo).stamp(
            Image.new("RGB", (300, 400), (255, 255, 255))
        )
        r, g, b = page.getpixel((150, 200))
        assert r == 255
        assert 180 < g < 255
        assert page.getpixel((30, 30)) == (255, 255, 255)

    def test_register_number_stamped(self):
        page = Image.new("RGB", (600, 800), (255, 255, 255))
        plain = PageOverlayStamper(dpi=150).stamp(page)
        marked = PageOverlayStamper(dpi=150, register_number="715523104012").stamp(page)
        assert plain.tobytes() != marked.tobytes()

        # Top-left corner region only changes when an identifier is stamped
        corner = (40, 20, 200, 60)
        assert plain.crop(corner).tobytes() != marked.crop(corner).tobytes()

    def test_blank_register_number_skipped(self):
        page = Image.new("RGB", (600, 800), (255, 255, 255))
        a = PageOverlayStamper(dpi=150).stamp(page)
        b = PageOverlayStamper(dpi=150, register_number="   ").stamp(page)
        assert a.tobytes() == b.tobytes()

    def test_restamp_is_a_no_op(self):
        logo = Image.new("RGBA", (100, 100), (255, 0, 0, 255))
        stamper = PageOverlayStamper(dpi=50, logo=logo, register_number="715523104012")
        once = stamper.stamp(Image.new("RGB", (300, 400), (255, 255, 255)))
        twice = stamper.stamp(once)
        assert twice.tobytes() == once.tobytes()
        assert twice.getpixel((150, 200)) == once.getpixel((150, 200))

    def test_different_overlay_still_stamps(self):
        page = Image.new("RGB", (600, 800), (255, 255, 255))
        once = PageOverlayStamper(dpi=150, register_number="715523104012").stamp(page)
        other = PageOverlayStamper(dpi=150, register_number="715523104099").stamp(once)
        assert other.tobytes() != once.tobytes()


class TestLoadLogo:
    """Test logo asset loading."""

    def test_from_bytes(self):
        logo = load_logo(_png_bytes(Image.new("RGB", (10, 12), (0, 128, 0))))
        assert logo.mode == "RGBA"
        assert logo.size == (10, 12)

    def test_from_path(self, tmp_path):
        path = tmp_path / "logo.png"
        Image.new("RGBA", (8, 8), (0, 0, 0, 255)).save(path)
        assert load_logo(path).size == (8, 8)

    def test_missing_or_unreadable(self, tmp_path):
        assert load_logo(None) is None
        assert load_logo(tmp_path / "nope.png") is None
        assert load_logo(b"not an image") is None


# ═══════════════════════════════════════════════════════════════════════════════
# DOCUMENT ASSEMBLY TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestDocumentAssembler:
    """Test page composition and PDF output."""

    def setup_method(self):
        self.config = PaginationConfig(dpi=50)
        self.bitmap = inked_bitmap(1000)
        self.slices = PageBreakPlanner(self.config).plan(self.bitmap)

    def test_compose_pages(self):
        pages = DocumentAssembler(self.config).compose_pages(self.bitmap, self.slices)
        assert len(pages) == len(self.slices) == 4
        for page in pages:
            assert page.size == (413, 585)
            assert page.mode == "RGB"

    def test_content_placed_inside_margin(self):
        [page, *_] = DocumentAssembler(self.config).compose_pages(self.bitmap, self.slices)
        margin = 20
        # The bitmap's inked first column lands on the left margin
        assert page.getpixel((margin, 100))[0] < 128
        assert page.getpixel((margin + 50, 100)) == (255, 255, 255)

    def test_pdf_bytes(self):
        assembler = DocumentAssembler(self.config)
        data = assembler.to_pdf_bytes(assembler.compose_pages(self.bitmap, self.slices))
        with fitz.open(stream=data, filetype="pdf") as doc:
            assert doc.page_count == 4
            assert doc[0].rect.width == pytest.approx(595.3, abs=0.5)
            assert doc[0].rect.height == pytest.approx(841.9, abs=0.5)

    def test_no_pages_writes_one_blank_page(self):
        data = DocumentAssembler(self.config).to_pdf_bytes([])
        with fitz.open(stream=data, filetype="pdf") as doc:
            assert doc.page_count == 1

    def test_write_pdf(self, tmp_path):
        assembler = DocumentAssembler(self.config)
        pages = assembler.compose_pages(self.bitmap, self.slices)
        path = assembler.write_pdf(pages, tmp_path / "nested" / "out.pdf")
        assert path.exists()
        assert path.read_bytes().startswith(b"%PDF")


class TestRenderEngine:
    """Test end-to-end repagination through the engine."""

    def setup_method(self):
        self.engine = LabRecordEngine(LabRecordConfig(pagination=PaginationConfig(dpi=50)))
        self.bitmap = inked_bitmap(1000)

    def test_render_pdf_page_count_matches_plan(self):
        expected = len(self.engine.plan_pages(self.bitmap))
        data = self.engine.render_pdf(self.bitmap, register_number="715523104012")
        with fitz.open(stream=data, filetype="pdf") as doc:
            assert doc.page_count == expected

    def test_render_pdf_to_file(self, tmp_path):
        out = tmp_path / "record.pdf"
        data = self.engine.render_pdf(self.bitmap, output_path=out)
        assert out.read_bytes() == data

    def test_render_pages_with_logo_bytes(self):
        logo = _png_bytes(Image.new("RGB", (20, 20), (255, 0, 0)))
        pages = self.engine.render_pages(self.bitmap, logo=logo)
        assert len(pages) == len(self.engine.plan_pages(self.bitmap))

    def test_blank_document_renders_empty_plan(self):
        blank = np.full((500, 200, 3), 255, dtype=np.uint8)
        assert self.engine.render_pages(blank) == []

    def test_blank_document_renders_single_blank_page(self, tmp_path):
        blank = np.full((500, 200, 3), 255, dtype=np.uint8)
        data = self.engine.render_pdf(blank, register_number="715523104012")
        with fitz.open(stream=data, filetype="pdf") as doc:
            assert doc.page_count == 1

        out = tmp_path / "blank.pdf"
        self.engine.render_pdf(blank, output_path=out)
        with fitz.open(out) as doc:
            assert doc.page_count == 1
