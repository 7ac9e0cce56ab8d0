"""
==============================================================================
Scanner Package - Document Barcode Detection
==============================================================================

Scanning pipeline: PDF/image bytes in, ordered barcode detections out.

Classes:
--------
- SymbologyFilter: Validates requested formats
- SurfaceSource: Turns bytes into per-page raster surfaces (pypdfium2, Pillow)
- PageScanner: Decodes barcodes on one surface (zxing-cpp or pyzbar)
- PaymentDateEnricher: Dates pagoPA notice barcodes from the PDF text
- ScanOrchestrator: Runs the pipeline with per-page failure isolation

==============================================================================
"""

from .symbology import ALL_SYMBOLOGIES, Symbology, SymbologyFilter
from .models import Detection, PageOutcome, RasterSurface, ScanRequest, ScanResult
from .sources import InputKind, PdfiumRasterizer, Rasterizer, SurfaceSource
from .dates import PaymentDateEnricher, pagopa_code
from .detectors import BarcodeDetector, PyzbarDetector, ZxingCppDetector, build_detector
from .core import PageScanner
from .orchestrator import ScanOrchestrator

__all__ = [
    "ALL_SYMBOLOGIES",
    "Symbology",
    "SymbologyFilter",
    "Detection",
    "PageOutcome",
    "RasterSurface",
    "ScanRequest",
    "ScanResult",
    "BarcodeDetector",
    "PyzbarDetector",
    "ZxingCppDetector",
    "build_detector",
    "InputKind",
    "PdfiumRasterizer",
    "Rasterizer",
    "SurfaceSource",
    "PaymentDateEnricher",
    "pagopa_code",
    "PageScanner",
    "ScanOrchestrator",
]
