"""
==============================================================================
Scan Schemas Module
==============================================================================

Request and response schemas for barcode scanning.

Multipart Request:
------------------
- file: the document (PDF or image), required, exactly one
- json: optional part containing {"formats": ["QR_CODE", ...]}

==============================================================================
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.scanner import ScanResult


class ScanFormConfig(BaseModel):
    """
    JSON part of the scan form.

    Format tokens are not typed here; token validation belongs to the
    scanner so that unknown or non-string tokens map to UNKNOWN_SYMBOLOGY.
    """

    model_config = ConfigDict(extra="forbid")

    formats: Optional[List[Any]] = Field(
        default=None,
        description="Barcode formats to look for; omitted or empty means all"
    )


class DetectionItem(BaseModel):
    """One decoded barcode."""

    page: int = Field(..., ge=0, description="Zero-based page index")
    format: str = Field(..., description="Symbology token, e.g. QR_CODE")
    value: str = Field(..., description="Decoded payload")
    date: Optional[str] = Field(
        default=None,
        description="Payment due date (ISO 8601) for pagoPA notices in PDFs"
    )


class PageFailureItem(BaseModel):
    """A page that could not be scanned."""

    page: int = Field(..., ge=0)
    reason: str


class ScanResponse(BaseModel):
    """Successful scan, possibly with zero detections and failed pages."""

    success: bool = Field(default=True)
    page_count: int = Field(..., ge=0)
    detections: List[DetectionItem]
    page_failures: List[PageFailureItem]

    @classmethod
    def from_result(cls, result: ScanResult) -> "ScanResponse":
        """Create response from a pipeline ScanResult."""
        return cls(
            page_count=result.page_count,
            detections=[DetectionItem(**d.to_dict()) for d in result.detections],
            page_failures=[
                PageFailureItem(page=page, reason=reason)
                for page, reason in sorted(result.page_failures.items())
            ],
        )


class FormatInfo(BaseModel):
    name: str
    supported: bool


class FormatsResponse(BaseModel):
    """Known symbology tokens and what the bound backend can decode."""

    success: bool = Field(default=True)
    backend: str
    formats: List[FormatInfo]
