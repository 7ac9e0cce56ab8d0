"""
==============================================================================
Surface Source Tests
==============================================================================

Input kind detection, image decoding and PDF rasterization with pdfium.

==============================================================================
"""

import numpy as np
import pytest

from app.core.exceptions import CorruptDocument, PageDecodeError, UnsupportedInputKind
from app.scanner import InputKind, PdfiumRasterizer, SurfaceSource
from app.scanner.sources import kind_from_file_name, sniff_input_kind

from tests.fakes import FakeRasterizer, make_image, make_pdf


class TestSniffInputKind:
    """Tests for byte-signature detection."""

    @pytest.mark.parametrize(
        "fmt,kind",
        [
            ("PNG", InputKind.PNG),
            ("JPEG", InputKind.JPEG),
            ("GIF", InputKind.GIF),
            ("BMP", InputKind.BMP),
            ("TIFF", InputKind.TIFF),
        ],
    )
    def test_image_signatures(self, fmt, kind):
        assert sniff_input_kind(make_image(fmt)) is kind

    def test_webp_signature(self):
        assert sniff_input_kind(b"RIFF\x24\x00\x00\x00WEBPVP8 ") is InputKind.WEBP

    def test_pdf_signature(self):
        assert sniff_input_kind(make_pdf(1)) is InputKind.PDF

    def test_pdf_header_after_junk(self):
        """Test a PDF header preceded by a few junk bytes."""
        assert sniff_input_kind(b"\r\n\r\n" + make_pdf(1)) is InputKind.PDF

    @pytest.mark.parametrize("raw", [b"BM", b"BMfoo", b"BM" + b"\0" * 12 + b"\x07\0\0\0" + b"\0" * 32])
    def test_text_starting_with_bm(self, raw):
        """Test a "BM" prefix alone is not taken for a bitmap."""
        assert sniff_input_kind(raw) is None

    @pytest.mark.parametrize("raw", [b"", b"hello world", b"PK\x03\x04zipfile"])
    def test_unknown(self, raw):
        assert sniff_input_kind(raw) is None

    def test_file_name_hint(self):
        assert kind_from_file_name("Scan.PDF") is InputKind.PDF
        assert kind_from_file_name("photo.jpeg") is InputKind.JPEG
        assert kind_from_file_name("notes.txt") is None
        assert kind_from_file_name(None) is None


class TestSurfaceSourceImages:
    """Tests for single-image inputs."""

    @pytest.fixture
    def source(self) -> SurfaceSource:
        return SurfaceSource(FakeRasterizer())

    def test_image_is_one_page(self, source):
        """Test an image yields exactly one surface at page 0."""
        with source.produce(make_image("PNG", size=(64, 48)), "photo.png") as pages:
            assert pages.kind is InputKind.PNG
            assert len(pages) == 1
            surface = pages[0].load()

        assert surface.page_index == 0
        assert (surface.pixel_width, surface.pixel_height) == (64, 48)
        assert surface.pixel_buffer.dtype == np.uint8

    def test_palette_image_converted(self, source):
        """Test non-RGB modes are normalized before scanning."""
        with source.produce(make_image("GIF", mode="P", color=3)) as pages:
            surface = pages[0].load()
        assert surface.pixel_buffer.shape == (48, 64, 3)

    def test_content_wins_over_file_name(self, source):
        """Test a mislabelled upload is decoded by its content."""
        with source.produce(make_image("PNG"), "invoice.pdf") as pages:
            assert pages.kind is InputKind.PNG

    def test_unknown_signature(self, source):
        with pytest.raises(UnsupportedInputKind):
            source.produce(b"plain text, not a document", "notes.txt")

    def test_corrupt_image(self, source):
        with pytest.raises(CorruptDocument) as exc_info:
            source.produce(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)
        assert exc_info.value.kind == "png"


class TestSurfaceSourceDocuments:
    """Tests for paginated inputs through the rasterizer port."""

    def test_pages_are_lazy(self):
        """Test no page is rendered until its handle is loaded."""
        rasterizer = FakeRasterizer(page_count=3)
        source = SurfaceSource(rasterizer)

        with source.produce(make_pdf(3)) as pages:
            document = rasterizer.documents[0]
            assert [p.page_index for p in pages] == [0, 1, 2]
            assert document.rendered == []
            pages[2].load()
            assert document.rendered == [2]

        assert document.closed

    def test_corrupt_document_propagates(self):
        source = SurfaceSource(FakeRasterizer(corrupt=True))
        with pytest.raises(CorruptDocument):
            source.produce(make_pdf(1))


class TestPdfiumRasterizer:
    """Tests against the real pdfium backend."""

    def test_page_count(self):
        source = SurfaceSource(PdfiumRasterizer(dpi=72))
        with source.produce(make_pdf(3), "three.pdf") as pages:
            assert pages.kind is InputKind.PDF
            assert len(pages) == 3

    def test_render_greyscale_at_dpi(self):
        """Test 72 dpi renders one pixel per point."""
        source = SurfaceSource(PdfiumRasterizer(dpi=72, rotate_landscape=False))
        with source.produce(make_pdf(1, width=200, height=100)) as pages:
            surface = pages[0].load()

        assert surface.pixel_buffer.ndim == 2
        assert surface.pixel_buffer.dtype == np.uint8
        assert (surface.pixel_width, surface.pixel_height) == (200, 100)
        # blank page renders white
        assert surface.pixel_buffer.min() == 255

    def test_landscape_page_rotated(self):
        source = SurfaceSource(PdfiumRasterizer(dpi=72, rotate_landscape=True))
        with source.produce(make_pdf(1, width=200, height=100)) as pages:
            surface = pages[0].load()
        assert (surface.pixel_width, surface.pixel_height) == (100, 200)

    def test_dpi_scales_pixels(self):
        source = SurfaceSource(PdfiumRasterizer(dpi=144, rotate_landscape=False))
        with source.produce(make_pdf(1, width=100, height=150)) as pages:
            surface = pages[0].load()
        assert (surface.pixel_width, surface.pixel_height) == (200, 300)

    def test_corrupt_pdf(self):
        source = SurfaceSource(PdfiumRasterizer())
        with pytest.raises(CorruptDocument) as exc_info:
            source.produce(b"%PDF-1.4\nthis is not a real pdf body\n")
        assert exc_info.value.status_code == 422

    def test_page_text(self):
        source = SurfaceSource(PdfiumRasterizer(dpi=72))
        pdf = make_pdf(2, width=300, height=200, texts={1: ["Scadenza 15/03/2025"]})
        with source.produce(pdf) as pages:
            assert pages[0].text().strip() == ""
            assert "15/03/2025" in pages[1].text()

    def test_text_pages_render(self):
        """Test a page with a text layer still renders."""
        source = SurfaceSource(PdfiumRasterizer(dpi=72, rotate_landscape=False))
        with source.produce(make_pdf(1, width=300, height=200, texts={0: ["A1B2"]})) as pages:
            surface = pages[0].load()
        assert surface.pixel_buffer.min() < 128

    def test_invalid_dpi(self):
        with pytest.raises(ValueError):
            PdfiumRasterizer(dpi=0)


def test_page_decode_error_carries_page():
    error = PageDecodeError(4, "bad bitmap")
    assert error.page_index == 4
    assert error.reason == "bad bitmap"
    assert "page 4" in str(error)
