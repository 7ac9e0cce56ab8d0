"""
==============================================================================
Scanner Endpoints
==============================================================================

Barcode scanning of uploaded documents.

Endpoints:
----------
- POST /scanner/scan: multipart upload (file + optional json part)
- GET  /scanner/formats: known symbology tokens and backend support

==============================================================================
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from app.config import Settings, get_settings
from app.core import exceptions
from app.core.dependencies import get_scan_orchestrator
from app.core.exceptions import AppException
from app.scanner import ScanOrchestrator, ScanRequest, ScanResult, Symbology
from app.schemas.common import ErrorResponse
from app.schemas.scan import FormatInfo, FormatsResponse, ScanFormConfig, ScanResponse


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scanner", tags=["Scanner"])

# Allowance for multipart boundaries, part headers and the json part
_MULTIPART_OVERHEAD = 64 * 1024


class ScanController:
    """Controller for scan operations."""

    def __init__(self, orchestrator: ScanOrchestrator, settings: Settings):
        self._orchestrator = orchestrator
        self._settings = settings

    # =========================================================================
    # FORM PARSING
    # =========================================================================

    async def parse_form(self, request: Request) -> ScanRequest:
        """
        Assemble a ScanRequest from the multipart body.

        Raises:
            AppException: INVALID_SCAN_FORM or FILE_TOO_LARGE
        """
        self._check_content_length(request)

        try:
            async with request.form() as form:
                upload = self._single_file(form)
                config = await self._read_config(form)
                raw_bytes = await self._read_upload(upload)
                file_name = upload.filename
        except (MultiPartException, StarletteHTTPException) as e:
            detail = getattr(e, "message", None) or getattr(e, "detail", None) or str(e)
            raise exceptions.invalid_scan_form(f"malformed multipart body: {detail}") from e

        if not raw_bytes:
            raise exceptions.invalid_scan_form("file part is empty")

        return ScanRequest(
            raw_bytes=raw_bytes,
            declared_file_name=file_name,
            requested_formats=tuple(config.formats or ()),
        )

    def _check_content_length(self, request: Request) -> None:
        """Reject a declared body size that cannot fit before spooling it."""
        header = request.headers.get("content-length")
        if header is None:
            return
        try:
            declared = int(header)
        except ValueError:
            return
        if declared > self._settings.max_upload_bytes + _MULTIPART_OVERHEAD:
            raise exceptions.file_too_large(self._settings.max_upload_mb)

    @staticmethod
    def _single_file(form: FormData) -> UploadFile:
        files = form.getlist("file")
        if not files:
            raise exceptions.invalid_scan_form("missing file part")
        if len(files) > 1:
            raise exceptions.invalid_scan_form("exactly one file part is allowed")
        if not isinstance(files[0], UploadFile):
            raise exceptions.invalid_scan_form("file part must be an uploaded file")
        return files[0]

    @staticmethod
    async def _read_config(form: FormData) -> ScanFormConfig:
        parts = form.getlist("json")
        if not parts:
            return ScanFormConfig()
        if len(parts) > 1:
            raise exceptions.invalid_scan_form("at most one json part is allowed")

        part = parts[0]
        if isinstance(part, UploadFile):
            try:
                text = (await part.read()).decode("utf-8")
            except UnicodeDecodeError as e:
                raise exceptions.invalid_scan_form("json part is not UTF-8") from e
        else:
            text = part

        if not text.strip():
            return ScanFormConfig()

        try:
            return ScanFormConfig.model_validate_json(text)
        except ValidationError as e:
            raise exceptions.invalid_scan_form(f"json part is invalid: {e.errors()[0]['msg']}") from e

    async def _read_upload(self, upload: UploadFile) -> bytes:
        limit = self._settings.max_upload_bytes
        data = await upload.read(limit + 1)
        if len(data) > limit:
            raise exceptions.file_too_large(self._settings.max_upload_mb)
        return data

    # =========================================================================
    # SCANNING
    # =========================================================================

    async def scan(self, scan_request: ScanRequest) -> ScanResponse:
        """
        Run the pipeline off the event loop.

        Request-level domain errors propagate as AppException; anything else
        is logged and reported as INTERNAL_ERROR without internal detail.
        """
        timeout = self._settings.scan_timeout_seconds
        cancel_event = threading.Event()
        loop = asyncio.get_running_loop()
        work = loop.run_in_executor(
            None,
            functools.partial(self._orchestrator.run, scan_request, cancel_event),
        )

        try:
            result: ScanResult = await asyncio.wait_for(work, timeout)
        except asyncio.TimeoutError as e:
            cancel_event.set()
            logger.warning(f"⏱️ Scan of '{scan_request.declared_file_name}' timed out after {timeout}s")
            raise exceptions.scan_timeout(timeout) from e
        except AppException as e:
            logger.info(f"Scan rejected: {e.code} - {e.message}")
            raise
        except Exception as e:
            logger.exception(f"❌ Unexpected scan failure for '{scan_request.declared_file_name}'")
            raise exceptions.internal_error() from e

        return ScanResponse.from_result(result)

    def formats(self) -> FormatsResponse:
        """List symbology tokens with backend support."""
        detector = self._orchestrator.scanner.detector
        supported = detector.supported_symbologies()
        return FormatsResponse(
            backend=detector.name,
            formats=[FormatInfo(name=s.value, supported=s in supported) for s in Symbology],
        )


def get_scan_controller(
    orchestrator: ScanOrchestrator = Depends(get_scan_orchestrator),
    settings: Settings = Depends(get_settings),
) -> ScanController:
    return ScanController(orchestrator, settings)


_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Unknown barcode format"},
    413: {"model": ErrorResponse, "description": "Upload too large"},
    415: {"model": ErrorResponse, "description": "Unsupported file type"},
    422: {"model": ErrorResponse, "description": "Corrupt document or malformed form"},
    500: {"model": ErrorResponse, "description": "Internal error"},
}


@router.post(
    "/scan",
    response_model=ScanResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
async def scan_file(
    request: Request,
    controller: ScanController = Depends(get_scan_controller),
):
    """
    Scan an uploaded PDF or image for barcodes.

    Multipart parts: `file` (required) and `json` (optional,
    `{"formats": [...]}`; omitted or empty means every format).
    """
    scan_request = await controller.parse_form(request)
    return await controller.scan(scan_request)


@router.get("/formats", response_model=FormatsResponse)
async def list_formats(controller: ScanController = Depends(get_scan_controller)):
    """List every symbology token and whether the active backend decodes it."""
    return controller.formats()
