"""
==============================================================================
Barcode Detector Backends
==============================================================================

Capability port for multi-symbology barcode decoding, with adapters for
the native decoding libraries.

Backends:
---------
- ZxingCppDetector: zxing-cpp, covers the 2D symbologies (Aztec, Data
  Matrix, MaxiCode, Micro/rMQR) as well as the linear ones
- PyzbarDetector: ZBar via pyzbar, linear codes plus QR and PDF417

A backend receives an 8-bit luminance plane and the requested symbology
set, and must only spend effort on (and only report) those symbologies.
Requested symbologies a backend cannot decode are simply never found.

Exactly one backend is bound per process, see `build_detector`.

==============================================================================
"""

from __future__ import annotations

import functools
import importlib.metadata
import logging
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

import numpy as np
import zxingcpp

from .symbology import Symbology


# Module logger
logger = logging.getLogger(__name__)


def _zxing_major_version() -> int:
    try:
        return int(importlib.metadata.version("zxing-cpp").split(".", 1)[0])
    except (importlib.metadata.PackageNotFoundError, ValueError):
        return 0


# zxing-cpp 3 takes a sequence of formats and deprecates OR-ed flag sets
_FORMATS_AS_SEQUENCE = _zxing_major_version() >= 3


def _combine_formats(wanted):
    if _FORMATS_AS_SEQUENCE:
        return tuple(wanted)
    return functools.reduce(operator.or_, wanted)


@dataclass(frozen=True)
class DecodedSymbol:
    """Raw backend output before it is tied to a page."""

    symbology: Symbology
    value: str


class BarcodeDetector(ABC):
    """Decodes barcodes of the requested symbologies from a luminance plane."""

    name: str = "abstract"

    @abstractmethod
    def supported_symbologies(self) -> FrozenSet[Symbology]:
        raise NotImplementedError

    @abstractmethod
    def detect(
        self,
        luma: np.ndarray,
        symbologies: FrozenSet[Symbology],
    ) -> List[DecodedSymbol]:
        """
        Return every symbol found, in the backend's discovery order.

        Args:
            luma: 2-D uint8 array (height x width)
            symbologies: Symbologies to search for
        """
        raise NotImplementedError


# =============================================================================
# ZXING-CPP
# =============================================================================

# Symbology -> zxingcpp.BarcodeFormat attribute name
_ZXING_FORMAT_NAMES: Dict[Symbology, str] = {
    Symbology.AZTEC: "Aztec",
    Symbology.CODABAR: "Codabar",
    Symbology.CODE_39: "Code39",
    Symbology.CODE_93: "Code93",
    Symbology.CODE_128: "Code128",
    Symbology.DATA_MATRIX: "DataMatrix",
    Symbology.EAN_8: "EAN8",
    Symbology.EAN_13: "EAN13",
    Symbology.ITF: "ITF",
    Symbology.MAXICODE: "MaxiCode",
    Symbology.PDF_417: "PDF417",
    Symbology.QR_CODE: "QRCode",
    Symbology.MICRO_QR_CODE: "MicroQRCode",
    Symbology.RECTANGULAR_MICRO_QR_CODE: "RMQRCode",
    Symbology.RSS_14: "DataBar",
    Symbology.RSS_EXPANDED: "DataBarExpanded",
    Symbology.UPC_A: "UPCA",
    Symbology.UPC_E: "UPCE",
    Symbology.DXFilmEdge: "DXFilmEdge",
}


class ZxingCppDetector(BarcodeDetector):
    """
    zxing-cpp backend.

    Only formats present in the installed zxing-cpp build are mapped;
    older wheels lack e.g. RMQRCode and DXFilmEdge.
    """

    name = "zxingcpp"

    def __init__(self, try_harder: bool = True) -> None:
        self._try_harder = try_harder
        self._formats = {
            symbology: getattr(zxingcpp.BarcodeFormat, format_name)
            for symbology, format_name in _ZXING_FORMAT_NAMES.items()
            if hasattr(zxingcpp.BarcodeFormat, format_name)
        }
        self._symbologies = {fmt: symbology for symbology, fmt in self._formats.items()}

    def supported_symbologies(self) -> FrozenSet[Symbology]:
        return frozenset(self._formats)

    def detect(self, luma, symbologies):
        wanted = [self._formats[s] for s in sorted(symbologies) if s in self._formats]
        if not wanted:
            return []

        results = zxingcpp.read_barcodes(
            luma,
            formats=_combine_formats(wanted),
            try_rotate=self._try_harder,
            try_downscale=self._try_harder,
        )

        decoded: List[DecodedSymbol] = []
        for result in results:
            symbology = self._symbologies.get(result.format)
            if symbology is None:
                logger.debug(f"Ignoring unmapped zxing format: {result.format}")
                continue
            decoded.append(DecodedSymbol(symbology=symbology, value=result.text))
        return decoded


# =============================================================================
# PYZBAR
# =============================================================================

# Symbology -> ZBar symbol type names
_ZBAR_SYMBOL_NAMES: Dict[Symbology, Tuple[str, ...]] = {
    Symbology.CODABAR: ("CODABAR",),
    Symbology.CODE_39: ("CODE39",),
    Symbology.CODE_93: ("CODE93",),
    Symbology.CODE_128: ("CODE128",),
    Symbology.EAN_8: ("EAN8",),
    Symbology.EAN_13: ("EAN13",),
    Symbology.ITF: ("I25",),
    Symbology.PDF_417: ("PDF417",),
    Symbology.QR_CODE: ("QRCODE",),
    Symbology.RSS_14: ("DATABAR",),
    Symbology.RSS_EXPANDED: ("DATABAR_EXP",),
    Symbology.UPC_A: ("UPCA",),
    Symbology.UPC_E: ("UPCE",),
    Symbology.UPC_EAN_EXTENSION: ("EAN2", "EAN5"),
}


def _require_pyzbar():
    """Import pyzbar on demand; it loads the libzbar shared library at import."""
    try:
        from pyzbar import pyzbar
    except ImportError as e:
        raise RuntimeError(
            "The pyzbar backend needs the zbar shared library (e.g. libzbar0)."
        ) from e
    return pyzbar


class PyzbarDetector(BarcodeDetector):
    """ZBar backend via pyzbar."""

    name = "pyzbar"

    def __init__(self) -> None:
        self._pyzbar = _require_pyzbar()
        zbar_symbol = self._pyzbar.ZBarSymbol
        self._symbols: Dict[Symbology, list] = {}
        self._by_type: Dict[str, Symbology] = {}
        for symbology, names in _ZBAR_SYMBOL_NAMES.items():
            available = [zbar_symbol[n] for n in names if n in zbar_symbol.__members__]
            if available:
                self._symbols[symbology] = available
                for symbol in available:
                    self._by_type[symbol.name] = symbology

    def supported_symbologies(self) -> FrozenSet[Symbology]:
        return frozenset(self._symbols)

    def detect(self, luma, symbologies):
        symbols = [
            symbol
            for symbology in sorted(symbologies)
            for symbol in self._symbols.get(symbology, ())
        ]
        if not symbols:
            return []

        decoded: List[DecodedSymbol] = []
        for barcode in self._pyzbar.decode(luma, symbols=symbols):
            symbology = self._by_type.get(barcode.type)
            if symbology is None:
                logger.debug(f"Ignoring unmapped ZBar type: {barcode.type}")
                continue
            decoded.append(
                DecodedSymbol(
                    symbology=symbology,
                    value=barcode.data.decode("utf-8", errors="replace"),
                )
            )
        return decoded


# =============================================================================
# FACTORY
# =============================================================================

def build_detector(backend: str, try_harder: bool = True) -> BarcodeDetector:
    """
    Create the detector for a configured backend name.

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend == ZxingCppDetector.name:
        detector: BarcodeDetector = ZxingCppDetector(try_harder=try_harder)
    elif backend == PyzbarDetector.name:
        detector = PyzbarDetector()
    else:
        raise ValueError(f"Unsupported detector backend: {backend}")

    unsupported = sorted(s.value for s in Symbology if s not in detector.supported_symbologies())
    logger.info(
        f"🔍 Detector '{detector.name}' bound "
        f"({len(detector.supported_symbologies())} symbologies, not decodable: {unsupported})"
    )
    return detector
