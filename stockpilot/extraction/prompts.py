"""Instruction prompts and generation parameters per extraction use case."""

from __future__ import annotations

from dataclasses import dataclass

from ..models import UseCase


@dataclass(frozen=True)
class GenerationParams:
    temperature: float
    top_p: float = 0.8
    top_k: int = 40
    max_output_tokens: int = 1024
    response_mime_type: str = "application/json"

    def to_request(self) -> dict:
        """Render as the ``generationConfig`` object of a generateContent call."""
        return {
            "temperature": self.temperature,
            "topP": self.top_p,
            "topK": self.top_k,
            "maxOutputTokens": self.max_output_tokens,
            "responseMimeType": self.response_mime_type,
        }


_DOCUMENT_PROMPT = """\
You are an expert financial document processor for receipts and invoices.

Read the document image and extract:

1. amount (number): total amount paid or due ("Total", "Amount Due", "Grand Total")
2. vendor (string): name of the business that issued the document
3. category (string): exactly one of: Office Supplies, Travel, Meals & Entertainment, Equipment, Software, Other
4. description (string): short description of what was purchased
5. date (string): transaction date as YYYY-MM-DD
6. documentType (string): "receipt", "invoice" or "expense"

Rules:
- Return ONLY a JSON object with exactly these field names, no other text
- amount is a bare number (125.99, not "$125.99")
- Omit any field you cannot determine

Example:
{
  "amount": 125.99,
  "vendor": "Office Depot",
  "category": "Office Supplies",
  "description": "Printer paper and toner cartridges",
  "date": "2023-05-15",
  "documentType": "receipt"
}"""

_PRODUCT_PROMPT = """\
You are an expert at reading product information from photos and labels.

Extract:

1. name (string, required): product name
2. description (string): what the product is
3. sku (string): SKU or model number if visible
4. category (string): product category
5. unitPrice (number): unit price as a bare number
6. quantity (number): quantity shown, 1 if not shown
7. minStock (number): minimum stock level if shown, 5 otherwise
8. supplier (string): manufacturer or supplier
9. confidence (number): your confidence from 0.0 to 1.0

Rules:
- Return ONLY a JSON object with exactly these field names, no other text
- Omit optional fields you cannot determine

Example:
{
  "name": "Dell XPS 13 Laptop",
  "description": "13-inch ultrabook, Core i7, 16GB RAM, 512GB SSD",
  "sku": "XPS13-9310-i7",
  "category": "Electronics",
  "unitPrice": 1299.99,
  "quantity": 1,
  "minStock": 5,
  "supplier": "Dell Inc.",
  "confidence": 0.92
}"""

_PURCHASE_PROMPT = """\
You are an expert purchase invoice and receipt analyzer.

Read the receipt or invoice image and extract ALL of:

1. vendor (string, required): the full vendor or supplier name exactly as printed
2. invoiceNumber (string): invoice or receipt number
3. date (string): purchase date as YYYY-MM-DD
4. totalAmount (number, required): purchase total as a bare number
5. taxAmount (number): tax amount if shown
6. items (array): every purchased line, each with
   - description (string)
   - quantity (number)
   - unitPrice (number)
   - totalPrice (number)
   - category (string): e.g. Electronics, Computer Hardware, Office Supplies, Software
7. notes (string): additional notes or terms
8. confidence (number): your confidence from 0.0 to 1.0

Rules:
- Return ONLY a JSON object with exactly these field names, no other text
- Monetary values are bare numbers (125.99, not "$125.99")
- Give your best guess rather than omitting a field
- Categorize every item from its description

Example:
{
  "vendor": "LAPCOM ELECTRONICS PVT LTD",
  "invoiceNumber": "402/2082-83",
  "date": "2025-07-30",
  "totalAmount": 9400.00,
  "taxAmount": 0,
  "items": [
    {"description": "8GB DDR-3L Laptop RAM", "quantity": 1, "unitPrice": 1400.00, "totalPrice": 1400.00, "category": "Computer Hardware"},
    {"description": "19\\" HD LED Monitor", "quantity": 2, "unitPrice": 4000.00, "totalPrice": 8000.00, "category": "Electronics"}
  ],
  "notes": "Goods once sold will not be taken back.",
  "confidence": 0.95
}"""

_IMAGE_PROMPT = """\
You are an expert image analyst.

Describe the image with:

1. description (string): detailed description of the content
2. tags (array): 5-10 descriptive tags
3. objects (array): main objects visible
4. text (string): all visible text
5. colors (array): main colors as {"name": ..., "hex": ...}
6. confidence (number): your confidence from 0.0 to 1.0

Rules:
- Return ONLY a JSON object with exactly these field names, no other text

Example:
{
  "description": "A mountain landscape at sunset with pine trees in the foreground",
  "tags": ["nature", "mountains", "sunset", "landscape", "outdoors"],
  "objects": ["mountains", "trees", "sky", "sun"],
  "text": "MOUNTAIN VISTA NATIONAL PARK",
  "colors": [{"name": "orange", "hex": "#FF7F00"}, {"name": "green", "hex": "#008000"}],
  "confidence": 0.95
}"""

PROMPTS: dict[str, str] = {
    UseCase.DOCUMENT: _DOCUMENT_PROMPT,
    UseCase.PRODUCT: _PRODUCT_PROMPT,
    UseCase.PURCHASE: _PURCHASE_PROMPT,
    UseCase.IMAGE: _IMAGE_PROMPT,
}

GENERATION_PARAMS: dict[str, GenerationParams] = {
    UseCase.DOCUMENT: GenerationParams(temperature=0.1),
    UseCase.PRODUCT: GenerationParams(temperature=0.1),
    UseCase.PURCHASE: GenerationParams(temperature=0.05, top_p=0.95, max_output_tokens=2048),
    UseCase.IMAGE: GenerationParams(temperature=0.2),
}
