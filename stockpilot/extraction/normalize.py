"""Coerce loosely-typed model output into strict extraction results."""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime

from ..errors import MalformedResponseError
from ..models import (
    DEFAULT_CONFIDENCE,
    DOCUMENT_CATEGORIES,
    DOCUMENT_TYPES,
    DocumentAnalysis,
    ImageAnalysis,
    LineItem,
    ProductExtraction,
    PurchaseExtraction,
    UseCase,
)
from .categories import derive_category

logger = logging.getLogger(__name__)

PURCHASE_CONFIDENCE_FLOOR = 0.75
PURCHASE_ELEVATED_CONFIDENCE = 0.85
MIN_VENDOR_LENGTH = 3

_NATIVE_DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)


# -- field coercion ----------------------------------------------------------


def parse_number(value: object) -> float | None:
    """Number or numeric-looking string → float; anything else → None.

    Currency symbols, thousands separators and other decoration are
    stripped from strings ("$1,299.99" → 1299.99).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        cleaned = re.sub(r"[^0-9.\-]", "", value)
        if not cleaned or cleaned in ("-", ".", "-."):
            return None
        try:
            result = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def parse_amount(value: object) -> float | None:
    """Like :func:`parse_number` but negative values are rejected."""
    result = parse_number(value)
    if result is None or result < 0:
        return None
    return result


def parse_count(value: object, default: int, minimum: int = 0) -> int:
    number = parse_number(value)
    if number is None:
        return default
    return max(minimum, int(number))


def parse_text(value: object) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def normalize_date(value: str, today: date | None = None) -> str:
    """Normalize a date string to YYYY-MM-DD.

    Native formats are tried first, then a Y-M-D / D-M-Y guess based on
    which segment has four digits. Anything unparseable becomes today.
    """
    today = today or date.today()
    text = value.strip()

    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass
    for fmt in _NATIVE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    parts = re.split(r"[-./]", text)
    if len(parts) == 3 and all(p.isdigit() for p in parts):
        if len(parts[0]) == 4:
            year, month, day = parts
        elif len(parts[2]) == 4:
            day, month, year = parts
        else:
            return today.isoformat()
        try:
            return date(int(year), int(month), int(day)).isoformat()
        except ValueError:
            pass

    logger.debug("Unparseable date %r, using today", value)
    return today.isoformat()


def parse_confidence(value: object) -> float:
    number = parse_number(value)
    if number is None:
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, number))


def _optional_date(value: object) -> str | None:
    text = parse_text(value)
    return normalize_date(text) if text else None


# -- result variants ---------------------------------------------------------


def normalize_document(data: dict) -> DocumentAnalysis:
    amount = parse_amount(data.get("amount"))
    vendor = parse_text(data.get("vendor"))
    description = parse_text(data.get("description"))
    if amount is None and vendor is None and description is None:
        raise MalformedResponseError("Document analysis has no amount, vendor or description")

    category = parse_text(data.get("category"))
    if category is not None and category not in DOCUMENT_CATEGORIES:
        category = "Other"

    document_type = parse_text(data.get("documentType"))
    if document_type not in DOCUMENT_TYPES:
        document_type = "receipt"

    return DocumentAnalysis(
        amount=amount,
        vendor=vendor,
        category=category,
        description=description,
        date=_optional_date(data.get("date")),
        document_type=document_type,
        confidence=parse_confidence(data.get("confidence")),
    )


def normalize_product(data: dict) -> ProductExtraction:
    name = parse_text(data.get("name"))
    if not name:
        raise MalformedResponseError("Product name is required but was not extracted")

    sku = parse_text(data.get("sku"))
    return ProductExtraction(
        name=name,
        description=parse_text(data.get("description")),
        sku=sku,
        category=parse_text(data.get("category")),
        unit_price=parse_amount(data.get("unitPrice")),
        quantity=parse_count(data.get("quantity"), default=1),
        min_stock=parse_count(data.get("minStock"), default=5),
        supplier=parse_text(data.get("supplier")),
        confidence=parse_confidence(data.get("confidence")),
    )


def normalize_line_item(data: dict) -> LineItem:
    description = parse_text(data.get("description")) or "Unknown Item"
    quantity = parse_count(data.get("quantity"), default=1, minimum=1)
    unit_price = parse_amount(data.get("unitPrice"))
    total_price = parse_amount(data.get("totalPrice"))

    if unit_price is None and total_price is not None:
        unit_price = total_price / quantity
    unit_price = unit_price or 0.0
    if total_price is None:
        total_price = unit_price * quantity
    elif abs(total_price - unit_price * quantity) > 0.01:
        logger.debug(
            "Line item %r total %.2f does not match %d x %.2f, recomputing",
            description, total_price, quantity, unit_price,
        )
        total_price = unit_price * quantity

    category = parse_text(data.get("category")) or derive_category(description)
    return LineItem(
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
        category=category,
    )


def normalize_purchase(data: dict, filename: str | None = None) -> PurchaseExtraction:
    vendor = parse_text(data.get("vendor"))
    if vendor is None or data.get("totalAmount") is None:
        raise MalformedResponseError("Purchase extraction requires vendor and totalAmount")

    if len(vendor) < MIN_VENDOR_LENGTH and filename:
        from .fallback import vendor_from_filename

        vendor = vendor_from_filename(filename)

    raw_items = data.get("items")
    items = [
        normalize_line_item(item)
        for item in (raw_items if isinstance(raw_items, list) else [])
        if isinstance(item, dict)
    ]

    confidence = parse_confidence(data.get("confidence"))
    if confidence < PURCHASE_CONFIDENCE_FLOOR:
        confidence = PURCHASE_ELEVATED_CONFIDENCE

    return PurchaseExtraction(
        vendor=vendor,
        total_amount=parse_amount(data.get("totalAmount")) or 0.0,
        invoice_number=parse_text(data.get("invoiceNumber")),
        date=_optional_date(data.get("date")),
        tax_amount=parse_amount(data.get("taxAmount")) or 0.0,
        items=items,
        notes=parse_text(data.get("notes")),
        confidence=confidence,
    )


def _text_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [t for t in (parse_text(v) for v in value) if t]


def _color_list(value: object) -> list[dict]:
    if not isinstance(value, list):
        return []
    colors = []
    for color in value:
        if isinstance(color, dict) and parse_text(color.get("name")):
            colors.append({
                "name": parse_text(color.get("name")),
                "hex": parse_text(color.get("hex")) or "",
            })
    return colors


def normalize_image_analysis(data: dict) -> ImageAnalysis:
    description = parse_text(data.get("description"))
    if not description:
        raise MalformedResponseError("Image analysis has no description")

    return ImageAnalysis(
        description=description,
        tags=_text_list(data.get("tags")),
        objects=_text_list(data.get("objects")),
        text=parse_text(data.get("text")) or "",
        colors=_color_list(data.get("colors")),
        confidence=parse_confidence(data.get("confidence")),
    )


def normalize(use_case: str, data: object, filename: str | None = None):
    """Dispatch to the normalizer for ``use_case``.

    Type and value errors raised while coercing model output surface as
    :class:`MalformedResponseError`.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")

    match use_case:
        case UseCase.DOCUMENT:
            return _coerce(normalize_document, data)
        case UseCase.PRODUCT:
            return _coerce(normalize_product, data)
        case UseCase.PURCHASE:
            return _coerce(normalize_purchase, data, filename)
        case UseCase.IMAGE:
            return _coerce(normalize_image_analysis, data)
        case _:
            raise ValueError(f"Unknown use case: {use_case!r}")


def _coerce(normalizer, *args):
    try:
        return normalizer(*args)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Unusable {normalizer.__name__} input: {e}") from e
