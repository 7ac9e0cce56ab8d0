"""
==============================================================================
Core Package
==============================================================================

Core utilities and infrastructure for the application.

Modules:
--------
- exceptions: AppException, scanner domain errors and factory functions
- dependencies: FastAPI dependency providers (scan pipeline singleton)

Usage:
------
    from app.core import AppException

    # Or use exception factory functions via module
    from app.core import exceptions
    raise exceptions.invalid_scan_form("missing file part")

==============================================================================
"""

from .exceptions import (
    AppException,
    CorruptDocument,
    PageDecodeError,
    UnknownSymbology,
    UnsupportedInputKind,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "CorruptDocument",
    "PageDecodeError",
    "UnknownSymbology",
    "UnsupportedInputKind",
    "register_exception_handlers",
]
