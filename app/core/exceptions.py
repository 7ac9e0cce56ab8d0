"""
Application Exception Handling

Single AppException base class for all request-level errors with FastAPI
integration, plus the scanner's domain errors.

Page-level failures (PageDecodeError) are not AppExceptions:
they are recorded in the scan result and never reach the HTTP layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for all request-level error scenarios.

    Provides consistent error response format across the entire API.

    Usage:
        raise AppException("Scan form is invalid", "INVALID_SCAN_FORM", 422)
        raise AppException("File too large", "FILE_TOO_LARGE", 413, {"limit_mb": 20})

    Error Codes:
        Scanning:
            - UNKNOWN_SYMBOLOGY (400)
            - UNSUPPORTED_INPUT_KIND (415)
            - CORRUPT_DOCUMENT (422)

        Upload:
            - INVALID_SCAN_FORM (422)
            - FILE_TOO_LARGE (413)

        General:
            - VALIDATION_ERROR (422)
            - SCAN_TIMEOUT (504)
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "UNKNOWN_SYMBOLOGY")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


# ============================================
# SCANNER DOMAIN EXCEPTIONS
# ============================================

class UnknownSymbology(AppException):
    """A requested barcode format token is not a known symbology."""

    def __init__(self, token: Any):
        self.token = token
        super().__init__(
            f"Unknown barcode format: {token!r}",
            "UNKNOWN_SYMBOLOGY",
            400,
            {"format": str(token)}
        )


class UnsupportedInputKind(AppException):
    """The uploaded bytes match no supported document or image signature."""

    def __init__(self, reason: str = "Unrecognized file signature", file_name: Optional[str] = None):
        details = {"file_name": file_name} if file_name else {}
        super().__init__(
            f"Unsupported input: {reason}",
            "UNSUPPORTED_INPUT_KIND",
            415,
            details
        )


class CorruptDocument(AppException):
    """The input has a known signature but cannot be parsed or rendered."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        super().__init__(
            f"Corrupt {kind} document: {reason}",
            "CORRUPT_DOCUMENT",
            422,
            {"kind": kind}
        )


class PageDecodeError(Exception):
    """
    Unrecoverable failure confined to a single page/surface.

    Caught by the orchestrator and recorded per page; never escalated.
    """

    def __init__(self, page_index: int, reason: str):
        self.page_index = page_index
        self.reason = reason
        super().__init__(f"page {page_index}: {reason}")


class ScanCancelled(Exception):
    """Raised when an in-flight scan is aborted by its caller."""


# ============================================
# HANDLERS
# ============================================

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    FastAPI exception handler for AppException.

    Converts AppException to consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI's own request validation errors in the AppException shape."""
    error = AppException(
        "Request validation failed",
        "VALIDATION_ERROR",
        422,
        {"errors": jsonable_encoder(exc.errors())}
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Call this in main.py after creating the FastAPI instance.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def invalid_scan_form(reason: str) -> AppException:
    """Create malformed multipart form exception."""
    return AppException(
        f"Invalid scan form: {reason}",
        "INVALID_SCAN_FORM",
        422,
        {"reason": reason}
    )


def file_too_large(limit_mb: int) -> AppException:
    """Create upload size limit exception."""
    return AppException(
        f"Uploaded file exceeds {limit_mb} MB",
        "FILE_TOO_LARGE",
        413,
        {"limit_mb": limit_mb}
    )


def scan_timeout(seconds: float) -> AppException:
    """Create scan timeout exception."""
    return AppException(
        f"Scan did not finish within {seconds:g} seconds",
        "SCAN_TIMEOUT",
        504,
        {"timeout_seconds": seconds}
    )


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
