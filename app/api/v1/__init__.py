"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- scan: Document barcode scanning

==============================================================================
"""

from . import health, scan

__all__ = ["health", "scan"]
