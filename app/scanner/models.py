"""
==============================================================================
Scanner Data Models
==============================================================================

Immutable value objects flowing through the scanning pipeline.

    ScanRequest ──► RasterSurface (per page) ──► Detection ──► ScanResult
                                   └──────────► PageOutcome ──┘

==============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .symbology import Symbology


@dataclass(frozen=True)
class ScanRequest:
    """
    One uploaded document plus the formats to look for.

    Attributes:
        raw_bytes: Complete uploaded file content
        declared_file_name: Client-supplied name, a hint only
        requested_formats: Raw format tokens; empty means all formats
    """

    raw_bytes: bytes
    declared_file_name: Optional[str] = None
    requested_formats: Tuple[Any, ...] = ()


@dataclass(frozen=True, eq=False)
class RasterSurface:
    """A single rendered page (or the whole image) as a pixel buffer."""

    page_index: int  # 0-indexed
    pixel_width: int
    pixel_height: int
    pixel_buffer: np.ndarray

    @classmethod
    def from_array(cls, page_index: int, pixels: np.ndarray) -> "RasterSurface":
        """Build a surface whose dimensions come from the array shape."""
        height, width = pixels.shape[:2]
        return cls(
            page_index=page_index,
            pixel_width=int(width),
            pixel_height=int(height),
            pixel_buffer=pixels,
        )


@dataclass(frozen=True)
class Detection:
    """
    One decoded barcode instance.

    `date` is the payment due date (ISO 8601) printed next to a pagoPA
    notice code in a PDF, when one was found.
    """

    page_index: int
    symbology: Symbology
    value: str
    date: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "page": self.page_index,
            "format": self.symbology.value,
            "value": self.value,
        }
        if self.date is not None:
            data["date"] = self.date
        return data


@dataclass(frozen=True)
class PageOutcome:
    """
    Result of scanning one page: either detections or a failure reason.

    Exactly one of the two branches is meaningful; use `ok` to tell them
    apart rather than catching exceptions.
    """

    page_index: int
    detections: Tuple[Detection, ...] = ()
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def succeeded(cls, page_index: int, detections) -> "PageOutcome":
        return cls(page_index=page_index, detections=tuple(detections))

    @classmethod
    def failed(cls, page_index: int, reason: str) -> "PageOutcome":
        return cls(page_index=page_index, failure=reason)


@dataclass(frozen=True)
class ScanResult:
    """
    Aggregated scan of a whole document.

    Detections are ordered by page index, then by the order the scanner
    found them within the page. Failed pages appear only in
    `page_failures`.
    """

    detections: Tuple[Detection, ...] = ()
    page_failures: Dict[int, str] = field(default_factory=dict)
    page_count: int = 0

    @property
    def failed_pages(self) -> int:
        return len(self.page_failures)
