"""
==============================================================================
Surface Source Module
==============================================================================

Turns uploaded bytes into an ordered sequence of raster surfaces.

Input Kinds:
------------
- PDF: one surface per page, rendered with pdfium (pypdfium2)
- JPEG / PNG / GIF / WEBP / TIFF / BMP: exactly one surface (page 0),
  decoded with Pillow

The kind is decided from the byte signature. The declared file name only
produces a log line when it disagrees.

Laziness:
---------
`SurfaceSource.produce` establishes the page list up front but renders a
page only when its `PageHandle.load()` is called, so at most one raster per
scanning worker exists at a time. The returned `SurfaceSequence` owns the
open document and must be closed (it is a context manager).

pdfium is not thread-safe; every pdfium call goes through `_PDFIUM_LOCK`.

==============================================================================
"""

from __future__ import annotations

import enum
import io
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import Callable, Iterator, List, Optional, Sequence

import numpy as np
import pypdfium2 as pdfium
from PIL import Image

from app.core.exceptions import CorruptDocument, PageDecodeError, UnsupportedInputKind

from .models import RasterSurface


# Module logger
logger = logging.getLogger(__name__)

# Process-wide guard around the pdfium library
_PDFIUM_LOCK = threading.RLock()

PDF_POINTS_PER_INCH = 72.0


# =============================================================================
# INPUT KIND DETECTION
# =============================================================================

class InputKind(str, enum.Enum):
    """Supported upload kinds, valued by MIME type."""

    PDF = "application/pdf"
    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"
    WEBP = "image/webp"
    TIFF = "image/tiff"
    BMP = "image/bmp"

    @property
    def is_paginated(self) -> bool:
        return self is InputKind.PDF


_EXTENSION_KINDS = {
    ".pdf": InputKind.PDF,
    ".jpg": InputKind.JPEG,
    ".jpeg": InputKind.JPEG,
    ".png": InputKind.PNG,
    ".gif": InputKind.GIF,
    ".webp": InputKind.WEBP,
    ".tif": InputKind.TIFF,
    ".tiff": InputKind.TIFF,
    ".bmp": InputKind.BMP,
}

# pdfium accepts a header anywhere in the first KiB
_PDF_HEADER_WINDOW = 1024

# DIB header sizes: OS/2 core, BITMAPINFOHEADER, V2 to V5
_BMP_HEADER_SIZES = frozenset({12, 40, 52, 56, 64, 108, 124})


def _bmp_header_size(raw_bytes: bytes) -> int:
    return int.from_bytes(raw_bytes[14:18], "little")


def sniff_input_kind(raw_bytes: bytes) -> Optional[InputKind]:
    """
    Classify bytes by their leading signature.

    Returns:
        Detected kind, or None if no supported signature matches
    """
    head = raw_bytes[:16]

    if head.startswith(b"%PDF-"):
        return InputKind.PDF
    if head.startswith(b"\xff\xd8\xff"):
        return InputKind.JPEG
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return InputKind.PNG
    if head.startswith((b"GIF87a", b"GIF89a")):
        return InputKind.GIF
    if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return InputKind.WEBP
    if head.startswith((b"II*\x00", b"MM\x00*")):
        return InputKind.TIFF
    if head.startswith(b"BM") and _bmp_header_size(raw_bytes) in _BMP_HEADER_SIZES:
        return InputKind.BMP
    if b"%PDF-" in raw_bytes[:_PDF_HEADER_WINDOW]:
        return InputKind.PDF
    return None


def kind_from_file_name(file_name: Optional[str]) -> Optional[InputKind]:
    """Best-effort kind implied by a file name extension."""
    if not file_name:
        return None
    return _EXTENSION_KINDS.get(PurePath(file_name).suffix.lower())


# =============================================================================
# RASTERIZER PORT
# =============================================================================

class RasterDocument(ABC):
    """An opened paginated document that can render its pages."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def render(self, page_index: int) -> np.ndarray:
        """
        Render one page to a pixel array.

        Raises:
            PageDecodeError: If this page cannot be rendered
        """
        raise NotImplementedError

    def page_text(self, page_index: int) -> str:
        """
        Text layer of one page in reading order; empty when it has none.

        Raises:
            PageDecodeError: If the text layer cannot be read
        """
        return ""

    def close(self) -> None:
        return None


class Rasterizer(ABC):
    """Opens paginated documents from memory."""

    name: str = "abstract"

    @abstractmethod
    def open(self, raw_bytes: bytes) -> RasterDocument:
        """
        Raises:
            CorruptDocument: If the document structure cannot be parsed
        """
        raise NotImplementedError


class PdfiumDocument(RasterDocument):
    """pypdfium2 document rendering greyscale pages at a fixed scale."""

    def __init__(self, pdf, scale: float, rotate_landscape: bool) -> None:
        self._pdf = pdf
        self._scale = scale
        self._rotate_landscape = rotate_landscape
        with _PDFIUM_LOCK:
            self._page_count = len(pdf)

    @property
    def page_count(self) -> int:
        return self._page_count

    def render(self, page_index: int) -> np.ndarray:
        with _PDFIUM_LOCK:
            try:
                page = self._pdf[page_index]
                try:
                    width, height = page.get_size()
                    rotation = 90 if self._rotate_landscape and width > height else 0
                    bitmap = page.render(
                        scale=self._scale,
                        rotation=rotation,
                        grayscale=True,
                    )
                    # copy out of the pdfium-owned buffer while the page is open
                    pixels = np.array(bitmap.to_pil().convert("L"))
                finally:
                    page.close()
            except pdfium.PdfiumError as e:
                raise PageDecodeError(page_index, f"page rendering failed: {e}") from e

        return pixels

    def page_text(self, page_index: int) -> str:
        with _PDFIUM_LOCK:
            try:
                page = self._pdf[page_index]
                try:
                    textpage = page.get_textpage()
                    try:
                        return textpage.get_text_range()
                    finally:
                        textpage.close()
                finally:
                    page.close()
            except pdfium.PdfiumError as e:
                raise PageDecodeError(page_index, f"text extraction failed: {e}") from e

    def close(self) -> None:
        with _PDFIUM_LOCK:
            self._pdf.close()


class PdfiumRasterizer(Rasterizer):
    """
    PDF rasterizer backed by pdfium.

    Args:
        dpi: Render resolution; PDF user space is 72 points per inch
        rotate_landscape: Turn landscape pages upright before rendering
    """

    name = "pypdfium2"

    def __init__(self, dpi: int = 144, rotate_landscape: bool = True) -> None:
        if dpi <= 0:
            raise ValueError("dpi must be a positive integer")
        self._dpi = dpi
        self._rotate_landscape = rotate_landscape

    @property
    def dpi(self) -> int:
        return self._dpi

    def open(self, raw_bytes: bytes) -> RasterDocument:
        with _PDFIUM_LOCK:
            try:
                pdf = pdfium.PdfDocument(raw_bytes)
            except pdfium.PdfiumError as e:
                raise CorruptDocument("pdf", str(e)) from e

        return PdfiumDocument(
            pdf,
            scale=self._dpi / PDF_POINTS_PER_INCH,
            rotate_landscape=self._rotate_landscape,
        )


# =============================================================================
# SURFACES
# =============================================================================

class PageHandle:
    """A page whose pixels are produced on demand."""

    def __init__(
        self,
        page_index: int,
        loader: Callable[[], np.ndarray],
        text_loader: Optional[Callable[[], str]] = None,
    ) -> None:
        self.page_index = page_index
        self._loader = loader
        self._text_loader = text_loader

    def load(self) -> RasterSurface:
        """
        Rasterize the page.

        Raises:
            PageDecodeError: If this page cannot be rasterized
        """
        return RasterSurface.from_array(self.page_index, self._loader())

    def text(self) -> str:
        """
        Text layer of the page, empty for images.

        Raises:
            PageDecodeError: If the text layer cannot be read
        """
        if self._text_loader is None:
            return ""
        return self._text_loader()

    def __repr__(self) -> str:
        return f"PageHandle(page_index={self.page_index})"


class SurfaceSequence(Sequence[PageHandle]):
    """Ordered page handles plus ownership of the underlying document."""

    def __init__(
        self,
        kind: InputKind,
        pages: List[PageHandle],
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self.kind = kind
        self._pages = pages
        self._on_close = on_close

    def __getitem__(self, index):
        return self._pages[index]

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[PageHandle]:
        return iter(self._pages)

    def close(self) -> None:
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            on_close()

    def __enter__(self) -> "SurfaceSequence":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SurfaceSource:
    """
    Produces raster surfaces from raw upload bytes.

    Attributes:
        rasterizer: Backend used for paginated documents

    Example:
        >>> source = SurfaceSource(PdfiumRasterizer(dpi=144))
        >>> with source.produce(pdf_bytes, "invoice.pdf") as pages:
        ...     surface = pages[0].load()
    """

    def __init__(self, rasterizer: Rasterizer) -> None:
        self._rasterizer = rasterizer

    @property
    def rasterizer(self) -> Rasterizer:
        return self._rasterizer

    def produce(self, raw_bytes: bytes, declared_file_name: Optional[str] = None) -> SurfaceSequence:
        """
        Determine the input kind and establish the page list.

        Args:
            raw_bytes: Uploaded file content
            declared_file_name: Client file name (hint only)

        Returns:
            SurfaceSequence with one handle per page, in document order

        Raises:
            UnsupportedInputKind: If no supported signature matches
            CorruptDocument: If the content cannot be parsed
        """
        kind = sniff_input_kind(raw_bytes)
        if kind is None:
            raise UnsupportedInputKind(file_name=declared_file_name)

        hinted = kind_from_file_name(declared_file_name)
        if hinted is not None and hinted is not kind:
            logger.info(
                f"File name '{declared_file_name}' suggests {hinted.value}, "
                f"content is {kind.value}; using content"
            )

        if kind.is_paginated:
            return self._produce_document(kind, raw_bytes)
        return self._produce_image(kind, raw_bytes)

    def _produce_document(self, kind: InputKind, raw_bytes: bytes) -> SurfaceSequence:
        document = self._rasterizer.open(raw_bytes)
        pages = [
            PageHandle(
                index,
                lambda index=index: document.render(index),
                text_loader=lambda index=index: document.page_text(index),
            )
            for index in range(document.page_count)
        ]
        logger.debug(f"Opened {kind.value} with {len(pages)} page(s)")
        return SurfaceSequence(kind, pages, on_close=document.close)

    def _produce_image(self, kind: InputKind, raw_bytes: bytes) -> SurfaceSequence:
        try:
            with Image.open(io.BytesIO(raw_bytes)) as image:
                image.load()
                if image.mode not in ("L", "RGB"):
                    image = image.convert("RGB")
                pixels = np.asarray(image)
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            raise CorruptDocument(kind.name.lower(), str(e)) from e

        return SurfaceSequence(kind, [PageHandle(0, lambda: pixels)])
