"""Result and record types produced by the extraction pipeline."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field

DOCUMENT_CATEGORIES: tuple[str, ...] = (
    "Office Supplies",
    "Travel",
    "Meals & Entertainment",
    "Equipment",
    "Software",
    "Other",
)

DOCUMENT_TYPES: tuple[str, ...] = ("receipt", "invoice", "expense")

DEFAULT_CONFIDENCE = 0.7


class UseCase:
    DOCUMENT = "document"
    PRODUCT = "product"
    PURCHASE = "purchase"
    IMAGE = "image"

    ALL = (DOCUMENT, PRODUCT, PURCHASE, IMAGE)


@dataclass(frozen=True)
class ExtractionRequest:
    """One image submitted for extraction."""

    image: bytes
    mime_type: str
    filename: str | None = None

    @classmethod
    def from_base64(
        cls, data: str, mime_type: str, filename: str | None = None
    ) -> ExtractionRequest:
        # Accept data URLs ("data:image/png;base64,....") as stored on documents
        if data.startswith("data:") and "," in data:
            data = data.split(",", 1)[1]
        return cls(image=base64.b64decode(data), mime_type=mime_type, filename=filename)

    def to_base64(self) -> str:
        return base64.b64encode(self.image).decode()


def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


@dataclass
class DocumentAnalysis:
    """Financial fields read off a receipt, invoice or expense document."""

    amount: float | None = None
    vendor: str | None = None
    category: str | None = None
    description: str | None = None
    date: str | None = None  # YYYY-MM-DD
    document_type: str = "receipt"
    # None means the result came from filename heuristics (low trust)
    confidence: float | None = None

    def to_dict(self) -> dict:
        return _drop_none({
            "amount": self.amount,
            "vendor": self.vendor,
            "category": self.category,
            "description": self.description,
            "date": self.date,
            "documentType": self.document_type,
            "confidence": self.confidence,
        })


@dataclass
class ProductExtraction:
    """A catalog product read off a product photo or label."""

    name: str
    description: str | None = None
    sku: str | None = None
    category: str | None = None
    unit_price: float | None = None
    quantity: int = 1
    min_stock: int = 5
    supplier: str | None = None
    confidence: float = DEFAULT_CONFIDENCE

    def to_dict(self) -> dict:
        return _drop_none({
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "category": self.category,
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
            "minStock": self.min_stock,
            "supplier": self.supplier,
            "confidence": self.confidence,
        })


@dataclass
class LineItem:
    description: str
    quantity: int = 1
    unit_price: float = 0.0
    total_price: float = 0.0
    category: str = "Other"

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "totalPrice": self.total_price,
            "category": self.category,
        }


@dataclass
class PurchaseExtraction:
    """A supplier invoice or receipt with its line items."""

    vendor: str
    total_amount: float
    invoice_number: str | None = None
    date: str | None = None  # YYYY-MM-DD
    tax_amount: float = 0.0
    items: list[LineItem] = field(default_factory=list)
    notes: str | None = None
    confidence: float = DEFAULT_CONFIDENCE

    def to_dict(self) -> dict:
        return _drop_none({
            "vendor": self.vendor,
            "invoiceNumber": self.invoice_number,
            "date": self.date,
            "totalAmount": self.total_amount,
            "taxAmount": self.tax_amount,
            "items": [item.to_dict() for item in self.items],
            "notes": self.notes,
            "confidence": self.confidence,
        })


@dataclass
class ImageAnalysis:
    """General description of an arbitrary image."""

    description: str
    tags: list[str] = field(default_factory=list)
    objects: list[str] = field(default_factory=list)
    text: str = ""
    colors: list[dict[str, str]] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "tags": list(self.tags),
            "objects": list(self.objects),
            "text": self.text,
            "colors": [dict(c) for c in self.colors],
            "confidence": self.confidence,
        }


ExtractionResult = DocumentAnalysis | ProductExtraction | PurchaseExtraction | ImageAnalysis


@dataclass(frozen=True)
class CatalogMatch:
    """An existing catalog entity whose name (or SKU) equals an extracted one."""

    kind: str  # supplier, product, category
    id: str
    name: str


@dataclass
class PostingResult:
    """Outcome of posting an accepted purchase extraction to the catalog."""

    purchase: dict
    supplier_id: str
    supplier_created: bool = False
    products_created: int = 0
    products_updated: int = 0
    categories_created: int = 0

    def to_dict(self) -> dict:
        return {
            "purchase": self.purchase,
            "supplierId": self.supplier_id,
            "supplierCreated": self.supplier_created,
            "productsCreated": self.products_created,
            "productsUpdated": self.products_updated,
            "categoriesCreated": self.categories_created,
        }
