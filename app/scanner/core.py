"""
==============================================================================
Page Scanner Core Module
==============================================================================

Runs barcode detection over a single raster surface.

Features:
---------
- Luminance conversion with OpenCV (grey, RGB and RGBA buffers)
- Detection restricted to the requested symbology set
- Every physical symbol reported, duplicates included
- Surface-specific failures raised as PageDecodeError

==============================================================================
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List

import cv2
import numpy as np

from app.core.exceptions import PageDecodeError

from .detectors import BarcodeDetector
from .models import Detection, RasterSurface
from .symbology import Symbology


# Module logger
logger = logging.getLogger(__name__)


class PageScanner:
    """
    Barcode scanner for one page at a time.

    Stateless apart from the bound detector, so one instance is shared by
    every request and worker thread.

    Attributes:
        detector: Backend doing the actual decoding

    Example:
        >>> scanner = PageScanner(ZxingCppDetector())
        >>> detections = scanner.scan(surface, frozenset({Symbology.QR_CODE}))
    """

    def __init__(self, detector: BarcodeDetector) -> None:
        """
        Initialize scanner instance.

        Args:
            detector: Barcode detector backend bound at start-up
        """
        self._detector = detector

    @property
    def detector(self) -> BarcodeDetector:
        return self._detector

    def scan(self, surface: RasterSurface, symbologies: FrozenSet[Symbology]) -> List[Detection]:
        """
        Scan a surface for the requested symbologies.

        Args:
            surface: Page raster to scan
            symbologies: Normalized requested set

        Returns:
            Detections in discovery order (empty when the page has none)

        Raises:
            PageDecodeError: If the buffer is unusable or decoding fails
        """
        luma = self._to_luma(surface)

        try:
            symbols = self._detector.detect(luma, symbologies)
        except Exception as e:
            raise PageDecodeError(
                surface.page_index,
                f"barcode detection failed: {e}"
            ) from e

        detections = []
        for symbol in symbols:
            if symbol.symbology not in symbologies:
                logger.debug(
                    f"Dropping unrequested {symbol.symbology.value} on page {surface.page_index}"
                )
                continue
            detections.append(
                Detection(
                    page_index=surface.page_index,
                    symbology=symbol.symbology,
                    value=symbol.value,
                )
            )

        return detections

    @staticmethod
    def _to_luma(surface: RasterSurface) -> np.ndarray:
        """
        Convert a surface buffer to a contiguous 8-bit grey plane.

        Raises:
            PageDecodeError: If the buffer is missing, empty or inconsistent
        """
        buffer = surface.pixel_buffer
        page = surface.page_index

        if buffer is None or buffer.size == 0:
            raise PageDecodeError(page, "empty pixel buffer")
        if buffer.dtype != np.uint8:
            raise PageDecodeError(page, f"unsupported pixel type {buffer.dtype}")
        if buffer.shape[:2] != (surface.pixel_height, surface.pixel_width):
            raise PageDecodeError(
                page,
                f"buffer shape {buffer.shape[:2]} does not match "
                f"{surface.pixel_height}x{surface.pixel_width}"
            )

        try:
            if buffer.ndim == 2:
                return np.ascontiguousarray(buffer)
            if buffer.ndim == 3 and buffer.shape[2] == 1:
                return np.ascontiguousarray(buffer[:, :, 0])
            if buffer.ndim == 3 and buffer.shape[2] == 3:
                return cv2.cvtColor(buffer, cv2.COLOR_RGB2GRAY)
            if buffer.ndim == 3 and buffer.shape[2] == 4:
                return cv2.cvtColor(buffer, cv2.COLOR_RGBA2GRAY)
        except cv2.error as e:
            raise PageDecodeError(page, f"luminance conversion failed: {e}") from e

        raise PageDecodeError(page, f"unsupported buffer layout {buffer.shape}")
