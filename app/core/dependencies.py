"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Dependency providers wiring the scanning pipeline into the API.

The native backends (pdfium rasterizer, barcode detector) are bound once,
at application start-up, and shared read-only by every request:

                    ┌──────────────────┐
                    │  get_settings()  │
                    └────────┬─────────┘
                             │
                 ┌───────────▼────────────┐
                 │ get_scan_orchestrator  │
                 └───────────┬────────────┘
                             │
        ┌────────────────────┼────────────────────┐
        │                    │                    │
┌───────▼───────┐   ┌────────▼──────┐   ┌─────────▼──────┐
│ SurfaceSource │   │  PageScanner  │   │ SymbologyFilter│
│  (pypdfium2)  │   │ (zxing/pyzbar)│   │                │
└───────────────┘   └───────────────┘   └────────────────┘

Tests replace the pipeline with:

    app.dependency_overrides[get_scan_orchestrator] = lambda: fake

==============================================================================
"""

from __future__ import annotations

import logging
from functools import lru_cache

from app.config import Settings, get_settings
from app.scanner import (
    PageScanner,
    PdfiumRasterizer,
    ScanOrchestrator,
    SurfaceSource,
    build_detector,
)


# Module logger
logger = logging.getLogger(__name__)


def create_scan_orchestrator(settings: Settings) -> ScanOrchestrator:
    """
    Build the scanning pipeline from settings.

    Args:
        settings: Application settings

    Returns:
        Fully wired ScanOrchestrator
    """
    rasterizer = PdfiumRasterizer(
        dpi=settings.render_dpi,
        rotate_landscape=settings.rotate_landscape,
    )
    detector = build_detector(settings.detector_backend, try_harder=settings.try_harder)

    return ScanOrchestrator(
        source=SurfaceSource(rasterizer),
        scanner=PageScanner(detector),
        max_workers=settings.max_workers,
    )


@lru_cache(maxsize=1)
def get_scan_orchestrator() -> ScanOrchestrator:
    """
    Get the process-wide ScanOrchestrator (singleton pattern).

    Called once during application start-up so backend binding errors
    surface before the first request.
    """
    settings = get_settings()
    orchestrator = create_scan_orchestrator(settings)
    logger.info(
        f"🧩 Scan pipeline ready: {settings.render_dpi} dpi, "
        f"{settings.max_workers} worker(s), backend={settings.detector_backend}"
    )
    return orchestrator
