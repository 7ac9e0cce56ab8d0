"""
==============================================================================
Payment Date Module
==============================================================================

Attaches due dates to pagoPA payment notice barcodes.

A pagoPA notice prints its 18-digit notice code and its due date as text
next to the QR / Data Matrix symbol. The barcode payload carries the same
notice code, so a date found on the page text can be joined back to the
detection:

    QR payload   PAGOPA|002|301000000012345678|12345678901|10000
    Page text    3010 0000 0012 3456 78   ...   15/03/2025
                 │                               │
                 └──────────── join ─────────────┘──► 2025-03-15T00:00:00+00:00

On each page, dates and notice codes are paired in reading order. Only PDF
inputs have a text layer; images are never enriched.

==============================================================================
"""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from app.core.exceptions import PageDecodeError

from .models import Detection
from .sources import PageHandle


# Module logger
logger = logging.getLogger(__name__)


# Barcode payloads: pagoPA QR code and postal (Poste) Data Matrix
_PAGOPA_PAYLOAD = re.compile(
    r"^PAGOPA\|002\|(?P<code1>[0-9]{18})\|[0-9]{11}\|[0-9]+"
    r"|^codfase=NBPA;18(?P<code2>[0-9]{18})12[0-9]{12}10[0-9]{10}38961P1[0-9]{11}[A-Z0-9 ]{16}.{162}A$"
)

# Printed notice code: starts with 30 or 1x, optional single space every 4 digits
_NOTICE_CODE_TEXT = re.compile(r"(?<!\d)(?:30|1\d)\d{2}(?:\s?\d{4}){3}\s?\d{2}(?!\d)")

_DATE_TEXT = re.compile(r"(?<![\d/])\d{2}/\d{2}/\d{4}(?![\d/])")

_WHITESPACE = re.compile(r"\s+")


def pagopa_code(payload: str) -> Optional[str]:
    """
    Notice code carried by a pagoPA barcode payload.

    Returns:
        The 18-digit notice code, or None for any other payload
    """
    match = _PAGOPA_PAYLOAD.match(payload)
    if match is None:
        return None
    return match.group("code1") or match.group("code2")


def parse_due_date(text: str) -> Optional[str]:
    """Convert dd/mm/yyyy to an ISO 8601 UTC midnight timestamp."""
    try:
        day = datetime.strptime(text.strip(), "%d/%m/%Y")
    except ValueError:
        return None
    return day.replace(tzinfo=timezone.utc).isoformat()


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def pair_dates_and_codes(page_text: str) -> List[Tuple[str, str]]:
    """
    Pair due dates with notice codes printed on one page.

    Both lists are de-duplicated and zipped in reading order; dates that
    are not real calendar days are dropped after pairing.

    Returns:
        (iso_date, notice_code) tuples
    """
    dates: List[str] = []
    codes: List[str] = []
    for line in page_text.splitlines():
        dates.extend(m.group(0) for m in _DATE_TEXT.finditer(line))
        codes.extend(_WHITESPACE.sub("", m.group(0)) for m in _NOTICE_CODE_TEXT.finditer(line))

    pairs = []
    for date_text, code in zip(_unique(dates), _unique(codes)):
        iso_date = parse_due_date(date_text)
        if iso_date is not None:
            pairs.append((iso_date, code))
    return pairs


class PaymentDateEnricher:
    """
    Fills `Detection.date` for pagoPA barcodes from the document text.

    Page text is only read when at least one detection is a pagoPA
    payload. A page whose text layer cannot be read is skipped.
    """

    def enrich(
        self,
        detections: Sequence[Detection],
        pages: Sequence[PageHandle],
    ) -> Tuple[Detection, ...]:
        codes = [pagopa_code(d.value) for d in detections]
        if not any(codes):
            return tuple(detections)

        dates_by_code: Dict[str, str] = {}
        for page in pages:
            try:
                text = page.text()
            except PageDecodeError as e:
                logger.warning(f"⚠️ No text for page {page.page_index}: {e.reason}")
                continue
            for iso_date, code in pair_dates_and_codes(text):
                dates_by_code[code] = iso_date

        enriched = []
        for detection, code in zip(detections, codes):
            date = dates_by_code.get(code) if code else None
            if date is not None:
                detection = dataclasses.replace(detection, date=date)
            enriched.append(detection)

        logger.debug(
            f"Due dates found for {sum(d.date is not None for d in enriched)} "
            f"of {sum(c is not None for c in codes)} pagoPA barcode(s)"
        )
        return tuple(enriched)
