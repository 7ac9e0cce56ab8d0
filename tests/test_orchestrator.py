"""
==============================================================================
Scan Orchestrator Tests
==============================================================================

End-to-end pipeline behaviour with fake native backends.

==============================================================================
"""

import threading
import time

import pytest

from app.core.exceptions import (
    CorruptDocument,
    ScanCancelled,
    UnknownSymbology,
    UnsupportedInputKind,
)
from app.scanner import ScanOrchestrator, ScanRequest, Symbology

from tests.fakes import (
    MARKER_BASE,
    FakeDetector,
    FakeRasterizer,
    SpySurfaceSource,
    build_orchestrator,
    corrupt_buffer,
    failing_render,
    make_image,
    make_pdf,
)


def detections_as_tuples(result):
    return [(d.page_index, d.symbology, d.value) for d in result.detections]


class TestScanOrchestrator:
    """Tests for ScanOrchestrator.run."""

    def test_two_page_document(self):
        """Test CODE_128 on page 0 and nothing on page 1."""
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=2),
            detector=FakeDetector(pages=[[(Symbology.CODE_128, "A1B2")], []]),
        )
        result = orchestrator.run(ScanRequest(raw_bytes=make_pdf(2), declared_file_name="a.pdf"))

        assert result.page_count == 2
        assert detections_as_tuples(result) == [(0, Symbology.CODE_128, "A1B2")]
        assert result.page_failures == {}

    def test_image_with_qr_code(self):
        """Test an image upload is scanned as page 0."""
        orchestrator = build_orchestrator(
            detector=FakeDetector(by_marker={255: [(Symbology.QR_CODE, "HELLO")]}),
        )
        request = ScanRequest(
            raw_bytes=make_image("PNG", mode="L", color=255),
            requested_formats=("QR_CODE",),
        )
        result = orchestrator.run(request)

        assert result.page_count == 1
        assert detections_as_tuples(result) == [(0, Symbology.QR_CODE, "HELLO")]

    def test_requested_format_filters(self):
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=2),
            detector=FakeDetector(pages=[[(Symbology.CODE_128, "A1B2")], []]),
        )
        request = ScanRequest(raw_bytes=make_pdf(2), requested_formats=("QR_CODE",))
        result = orchestrator.run(request)

        assert result.detections == ()
        assert result.page_count == 2

    def test_blank_document(self):
        orchestrator = build_orchestrator(rasterizer=FakeRasterizer(page_count=3))
        result = orchestrator.run(ScanRequest(raw_bytes=make_pdf(3)))
        assert result.detections == ()
        assert result.page_failures == {}
        assert result.page_count == 3

    def test_unknown_format_before_sourcing(self):
        """Test a bad token fails before the document is opened."""
        rasterizer = FakeRasterizer(page_count=2)
        orchestrator = build_orchestrator(rasterizer=rasterizer, source_cls=SpySurfaceSource)
        request = ScanRequest(raw_bytes=make_pdf(2), requested_formats=("QR_CODE", "NOT_A_FORMAT"))

        with pytest.raises(UnknownSymbology):
            orchestrator.run(request)

        assert orchestrator.source.produce_calls == 0
        assert rasterizer.documents == []

    def test_unsupported_input(self):
        with pytest.raises(UnsupportedInputKind):
            build_orchestrator().run(ScanRequest(raw_bytes=b"GIF? no, text"))

    def test_corrupt_document(self):
        orchestrator = build_orchestrator(rasterizer=FakeRasterizer(corrupt=True))
        with pytest.raises(CorruptDocument):
            orchestrator.run(ScanRequest(raw_bytes=make_pdf(1)))


class TestPageFailureIsolation:
    """Tests for per-page failure handling."""

    @pytest.mark.parametrize("broken_page", [corrupt_buffer, failing_render])
    def test_one_bad_page(self, broken_page):
        """Test page 1 fails while pages 0 and 2 are reported."""
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=3, broken={1: broken_page}),
            detector=FakeDetector(pages=[
                [(Symbology.QR_CODE, "P0")],
                [(Symbology.QR_CODE, "never")],
                [(Symbology.EAN_13, "P2")],
            ]),
        )
        result = orchestrator.run(ScanRequest(raw_bytes=make_pdf(3)))

        assert result.page_count == 3
        assert detections_as_tuples(result) == [
            (0, Symbology.QR_CODE, "P0"),
            (2, Symbology.EAN_13, "P2"),
        ]
        assert list(result.page_failures) == [1]
        assert result.failed_pages == 1

    def test_every_page_failing_is_still_a_result(self):
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=2, broken={0: corrupt_buffer, 1: corrupt_buffer}),
        )
        result = orchestrator.run(ScanRequest(raw_bytes=make_pdf(2)))
        assert result.detections == ()
        assert sorted(result.page_failures) == [0, 1]

    def test_unexpected_error_propagates(self):
        """Test non-page errors are not hidden as page failures."""
        def boom():
            raise RuntimeError("rasterizer bug")

        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=2, broken={0: boom}),
        )
        with pytest.raises(RuntimeError):
            orchestrator.run(ScanRequest(raw_bytes=make_pdf(2)))


class TestOrdering:
    """Tests for deterministic output under parallel scanning."""

    def test_order_independent_of_completion(self):
        """Test later pages finishing first does not reorder results."""
        page_count = 6

        class SlowEarlyPages(FakeDetector):
            def detect(self, luma, symbologies):
                page = int(luma[0, 0]) - MARKER_BASE
                time.sleep(0.01 * (page_count - page))
                return super().detect(luma, symbologies)

        detector = SlowEarlyPages(pages=[
            [(Symbology.QR_CODE, f"p{i}-a"), (Symbology.QR_CODE, f"p{i}-b")]
            for i in range(page_count)
        ])
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=page_count),
            detector=detector,
            max_workers=4,
        )
        result = orchestrator.run(ScanRequest(raw_bytes=make_pdf(page_count)))

        assert [d.value for d in result.detections] == [
            f"p{i}-{s}" for i in range(page_count) for s in ("a", "b")
        ]

    @pytest.mark.parametrize("max_workers", [1, 3])
    def test_idempotent(self, max_workers):
        """Test the same request twice gives identical results."""
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=4, broken={2: corrupt_buffer}),
            detector=FakeDetector(pages=[[(Symbology.ITF, str(i))] for i in range(4)]),
            max_workers=max_workers,
        )
        request = ScanRequest(raw_bytes=make_pdf(4))

        first = orchestrator.run(request)
        second = orchestrator.run(request)

        assert first.detections == second.detections
        assert first.page_failures == second.page_failures

    def test_concurrent_requests_are_independent(self):
        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=3),
            detector=FakeDetector(pages=[[(Symbology.QR_CODE, str(i))] for i in range(3)]),
        )
        results = []

        def worker():
            results.append(orchestrator.run(ScanRequest(raw_bytes=make_pdf(3))))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 4
        assert all([d.value for d in r.detections] == ["0", "1", "2"] for r in results)


class TestCancellation:
    """Tests for caller-initiated cancellation."""

    def test_cancelled_scan_raises(self):
        cancel_event = threading.Event()

        class CancellingDetector(FakeDetector):
            def detect(self, luma, symbologies):
                cancel_event.set()
                return super().detect(luma, symbologies)

        orchestrator = build_orchestrator(
            rasterizer=FakeRasterizer(page_count=5),
            detector=CancellingDetector(),
            max_workers=1,
        )
        with pytest.raises(ScanCancelled):
            orchestrator.run(ScanRequest(raw_bytes=make_pdf(5)), cancel_event=cancel_event)

        # remaining pages are skipped without rendering
        assert orchestrator.source.rasterizer.documents[0].rendered == [0]

    def test_document_closed_after_run(self):
        rasterizer = FakeRasterizer(page_count=2)
        build_orchestrator(rasterizer=rasterizer).run(ScanRequest(raw_bytes=make_pdf(2)))
        assert rasterizer.documents[0].closed


def test_max_workers_must_be_positive():
    with pytest.raises(ValueError):
        build_orchestrator(max_workers=0)


def test_orchestrator_exposes_collaborators():
    orchestrator = build_orchestrator(max_workers=2)
    assert isinstance(orchestrator, ScanOrchestrator)
    assert orchestrator.max_workers == 2
    assert orchestrator.scanner.detector.name == "fake"
