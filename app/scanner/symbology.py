"""
==============================================================================
Symbology Module
==============================================================================

The closed set of barcode symbologies the scanner understands, and the
filter that turns caller-supplied format tokens into the set to search for.

Tokens are the enum member names, compared case-sensitively:

    >>> SymbologyFilter().normalize(["QR_CODE", "CODE_128"])
    frozenset({<Symbology.QR_CODE: 'QR_CODE'>, <Symbology.CODE_128: 'CODE_128'>})

==============================================================================
"""

from __future__ import annotations

import enum
import logging
from typing import Any, FrozenSet, Iterable, Optional

from app.core.exceptions import UnknownSymbology


# Module logger
logger = logging.getLogger(__name__)


class Symbology(str, enum.Enum):
    """Barcode encoding standards. Value and name are the wire token."""

    AZTEC = "AZTEC"
    CODABAR = "CODABAR"
    CODE_39 = "CODE_39"
    CODE_93 = "CODE_93"
    CODE_128 = "CODE_128"
    DATA_MATRIX = "DATA_MATRIX"
    EAN_8 = "EAN_8"
    EAN_13 = "EAN_13"
    ITF = "ITF"
    MAXICODE = "MAXICODE"
    PDF_417 = "PDF_417"
    QR_CODE = "QR_CODE"
    MICRO_QR_CODE = "MICRO_QR_CODE"
    RECTANGULAR_MICRO_QR_CODE = "RECTANGULAR_MICRO_QR_CODE"
    RSS_14 = "RSS_14"
    RSS_EXPANDED = "RSS_EXPANDED"
    TELEPEN = "TELEPEN"
    UPC_A = "UPC_A"
    UPC_E = "UPC_E"
    UPC_EAN_EXTENSION = "UPC_EAN_EXTENSION"
    DXFilmEdge = "DXFilmEdge"


ALL_SYMBOLOGIES: FrozenSet[Symbology] = frozenset(Symbology)


class SymbologyFilter:
    """
    Validates and normalizes requested barcode formats.

    An absent or empty request means "every known symbology". Any token
    that is not an exact member name aborts the whole request with
    UnknownSymbology before other work starts.
    """

    def normalize(self, requested: Optional[Iterable[Any]]) -> FrozenSet[Symbology]:
        """
        Normalize requested format tokens.

        Args:
            requested: Format tokens from the caller, or None

        Returns:
            Non-empty frozenset of symbologies to search for

        Raises:
            UnknownSymbology: On the first token that matches no symbology
        """
        if requested is None:
            return ALL_SYMBOLOGIES

        tokens = list(requested)
        if not tokens:
            return ALL_SYMBOLOGIES

        selected = set()
        for token in tokens:
            if not isinstance(token, str):
                raise UnknownSymbology(token)
            symbology = Symbology.__members__.get(token)
            if symbology is None:
                raise UnknownSymbology(token)
            selected.add(symbology)

        logger.debug(f"Requested symbologies: {sorted(s.value for s in selected)}")
        return frozenset(selected)
