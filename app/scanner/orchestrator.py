"""
==============================================================================
Scan Orchestrator Module
==============================================================================

Drives one scan request through the pipeline.

Request States:
---------------
    Normalizing ──► Sourcing ──► Scanning ──► Aggregating ──► Dating ──► Done
         │              │
         └──────────────┴──► Failed (UnknownSymbology / UnsupportedInputKind
                                     / CorruptDocument)

Normalizing and Sourcing fail fast before any page is rasterized. Once the
page list exists the request succeeds: a page that cannot be rendered or
decoded becomes an entry in `page_failures` and its siblings carry on.

Pages are scanned on a bounded thread pool. Each outcome is stored at its
page index, so the output order never depends on completion order.

Dating joins pagoPA notice barcodes with the due date printed in the PDF
text layer, while the document is still open.

==============================================================================
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import FrozenSet, List, Optional

from app.core.exceptions import PageDecodeError, ScanCancelled

from .core import PageScanner
from .dates import PaymentDateEnricher
from .models import PageOutcome, ScanRequest, ScanResult
from .sources import PageHandle, SurfaceSequence, SurfaceSource
from .symbology import Symbology, SymbologyFilter


# Module logger
logger = logging.getLogger(__name__)


class ScanOrchestrator:
    """
    Runs SymbologyFilter, SurfaceSource and PageScanner for a request.

    Holds no per-request state, so a single instance serves concurrent
    requests.

    Attributes:
        source: Produces page surfaces from uploaded bytes
        scanner: Decodes barcodes on one surface
        max_workers: Upper bound of concurrently scanned pages

    Example:
        >>> orchestrator = ScanOrchestrator(source, scanner, max_workers=4)
        >>> result = orchestrator.run(ScanRequest(raw_bytes=data))
    """

    def __init__(
        self,
        source: SurfaceSource,
        scanner: PageScanner,
        symbology_filter: Optional[SymbologyFilter] = None,
        max_workers: int = 4,
        date_enricher: Optional[PaymentDateEnricher] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._source = source
        self._scanner = scanner
        self._filter = symbology_filter or SymbologyFilter()
        self._max_workers = max_workers
        self._date_enricher = date_enricher or PaymentDateEnricher()

    @property
    def source(self) -> SurfaceSource:
        return self._source

    @property
    def scanner(self) -> PageScanner:
        return self._scanner

    @property
    def max_workers(self) -> int:
        return self._max_workers

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def run(
        self,
        request: ScanRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanResult:
        """
        Scan a document end to end.

        Args:
            request: Upload plus requested formats
            cancel_event: Set by the caller to abandon remaining pages

        Returns:
            ScanResult with ordered detections and per-page failures

        Raises:
            UnknownSymbology: Bad requested format (before any sourcing)
            UnsupportedInputKind: Unrecognized file signature
            CorruptDocument: Recognized but unparseable content
            ScanCancelled: If cancel_event was set while scanning
        """
        symbologies = self._filter.normalize(request.requested_formats)

        with self._source.produce(request.raw_bytes, request.declared_file_name) as pages:
            outcomes = self._scan_pages(pages, symbologies, cancel_event)
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCancelled()

            result = self._aggregate(outcomes)
            result = dataclasses.replace(
                result,
                detections=self._date_enricher.enrich(result.detections, pages),
            )

        logger.info(
            f"📄 Scanned {pages.kind.value}: {result.page_count} page(s), "
            f"{len(result.detections)} barcode(s), {result.failed_pages} failed page(s)"
        )
        return result

    def _scan_pages(
        self,
        pages: SurfaceSequence,
        symbologies: FrozenSet[Symbology],
        cancel_event: Optional[threading.Event],
    ) -> List[PageOutcome]:
        outcomes: List[Optional[PageOutcome]] = [None] * len(pages)

        workers = min(self._max_workers, len(pages))
        if workers <= 1:
            for page in pages:
                outcomes[page.page_index] = self._scan_page(page, symbologies, cancel_event)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="page-scan") as pool:
                futures = [
                    pool.submit(self._scan_page, page, symbologies, cancel_event)
                    for page in pages
                ]
                for future in futures:
                    outcome = future.result()
                    outcomes[outcome.page_index] = outcome

        return outcomes

    def _scan_page(
        self,
        page: PageHandle,
        symbologies: FrozenSet[Symbology],
        cancel_event: Optional[threading.Event],
    ) -> PageOutcome:
        """Rasterize, scan and release one page; page errors become values."""
        if cancel_event is not None and cancel_event.is_set():
            return PageOutcome.failed(page.page_index, "scan cancelled")

        try:
            surface = page.load()
            detections = self._scanner.scan(surface, symbologies)
        except PageDecodeError as e:
            logger.warning(f"⚠️ Page {page.page_index} failed: {e.reason}")
            return PageOutcome.failed(page.page_index, e.reason)

        return PageOutcome.succeeded(page.page_index, detections)

    @staticmethod
    def _aggregate(outcomes: List[PageOutcome]) -> ScanResult:
        detections = []
        page_failures = {}
        for outcome in outcomes:
            if outcome.ok:
                detections.extend(outcome.detections)
            else:
                page_failures[outcome.page_index] = outcome.failure

        return ScanResult(
            detections=tuple(detections),
            page_failures=page_failures,
            page_count=len(outcomes),
        )
