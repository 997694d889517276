"""Filename heuristics used when model extraction is unavailable or fails."""

from __future__ import annotations

import logging
import re
import time
from datetime import date

from ..config import DEFAULT_KNOWN_VENDORS
from ..models import (
    DocumentAnalysis,
    ImageAnalysis,
    LineItem,
    ProductExtraction,
    PurchaseExtraction,
)
from .categories import derive_category
from .normalize import normalize_date

logger = logging.getLogger(__name__)

FALLBACK_PURCHASE_CONFIDENCE = 0.75
ZERO_CONFIDENCE = 0.1
DEFAULT_FALLBACK_AMOUNT = 100.0
UNKNOWN_VENDOR = "Unknown Vendor"

_DATE_RE = re.compile(r"(\d{4}[-./]\d{1,2}[-./]\d{1,2})|(\d{1,2}[-./]\d{1,2}[-./]\d{4})")
_CURRENCY_AMOUNT_RE = re.compile(r"[$€£¥₹]\s?(\d+(?:[.,]\d{1,2})?)")
_DECIMAL_AMOUNT_RE = re.compile(r"(?<![\d.])(\d+\.\d{2})(?![\d])")
_INTEGER_RE = re.compile(r"(?<![\d.])(\d+)(?!\d|\.\d)")
_INVOICE_RE = re.compile(r"(?<![a-z])inv(?:oice)?[-_]?(?:no|num)?[-_]?#?(\d[a-z0-9-]*)", re.IGNORECASE)
_HASH_RE = re.compile(r"#(\w+)")
_SEGMENT_RE = re.compile(r"[-_\s.]")


def find_date(filename: str) -> str | None:
    m = _DATE_RE.search(filename)
    return normalize_date(m.group(0)) if m else None


def find_amount(filename: str) -> float | None:
    """Find a currency-like amount, skipping digits that belong to a date."""
    m = _CURRENCY_AMOUNT_RE.search(filename)
    if m:
        return float(m.group(1).replace(",", "."))
    without_date = _DATE_RE.sub(" ", filename)
    m = _DECIMAL_AMOUNT_RE.search(without_date)
    if m:
        return float(m.group(1))
    m = _INTEGER_RE.search(without_date)
    if m:
        return float(m.group(1))
    return None


def find_invoice_number(filename: str) -> str | None:
    without_date = _DATE_RE.sub(" ", filename)
    m = _INVOICE_RE.search(without_date) or _HASH_RE.search(without_date)
    return m.group(1) if m else None


def vendor_from_filename(
    filename: str, known_vendors: list[str] | None = None
) -> str:
    """Guess a vendor from known name fragments or the first filename segment."""
    lower = filename.lower()
    for fragment in known_vendors or DEFAULT_KNOWN_VENDORS:
        if fragment in lower:
            return fragment[:1].upper() + fragment[1:]

    parts = _SEGMENT_RE.split(filename)
    if parts and len(parts[0]) > 2:
        return parts[0][:1].upper() + parts[0][1:]
    return UNKNOWN_VENDOR


def fallback_purchase(
    filename: str, known_vendors: list[str] | None = None
) -> PurchaseExtraction:
    logger.info("Using fallback purchase extraction for: %s", filename)
    vendor = vendor_from_filename(filename, known_vendors)
    amount = find_amount(filename)
    total = amount if amount is not None else DEFAULT_FALLBACK_AMOUNT
    description = f"Item from {vendor}"

    return PurchaseExtraction(
        vendor=vendor,
        invoice_number=find_invoice_number(filename) or f"INV-{str(int(time.time() * 1000))[-6:]}",
        date=find_date(filename) or date.today().isoformat(),
        total_amount=total,
        items=[
            LineItem(
                description=description,
                quantity=1,
                unit_price=total,
                total_price=total,
                category=derive_category(description),
            )
        ],
        notes=f"Auto-generated from filename: {filename}",
        confidence=FALLBACK_PURCHASE_CONFIDENCE,
    )


def fallback_document(filename: str) -> DocumentAnalysis:
    logger.info("Using fallback document analysis for: %s", filename)
    lower = filename.lower()
    document_type = "receipt"
    if "invoice" in lower:
        document_type = "invoice"
    elif "expense" in lower:
        document_type = "expense"

    return DocumentAnalysis(
        amount=find_amount(filename),
        vendor=UNKNOWN_VENDOR,
        category="Other",
        description=f"Document {filename}",
        date=find_date(filename) or date.today().isoformat(),
        document_type=document_type,
    )


def zero_purchase() -> PurchaseExtraction:
    return PurchaseExtraction(
        vendor=UNKNOWN_VENDOR,
        total_amount=0.0,
        confidence=FALLBACK_PURCHASE_CONFIDENCE,
    )


def zero_document() -> DocumentAnalysis:
    return DocumentAnalysis(
        vendor=UNKNOWN_VENDOR,
        category="Other",
        date=date.today().isoformat(),
        document_type="receipt",
    )


def zero_product() -> ProductExtraction:
    return ProductExtraction(
        name="Unknown Product",
        description="Product extracted from image",
        confidence=ZERO_CONFIDENCE,
    )


def zero_image_analysis() -> ImageAnalysis:
    return ImageAnalysis(
        description="Unable to analyze image",
        tags=["unknown"],
        confidence=ZERO_CONFIDENCE,
    )
