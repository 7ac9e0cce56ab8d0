"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

This package provides:
- Common: Shared error response schemas
- Scan: Scan form and scan result schemas

==============================================================================
"""

from .common import ErrorDetail, ErrorResponse
from .scan import (
    DetectionItem,
    FormatInfo,
    FormatsResponse,
    PageFailureItem,
    ScanFormConfig,
    ScanResponse,
)

__all__ = [
    # Common
    "ErrorDetail",
    "ErrorResponse",
    # Scan
    "DetectionItem",
    "FormatInfo",
    "FormatsResponse",
    "PageFailureItem",
    "ScanFormConfig",
    "ScanResponse",
]
