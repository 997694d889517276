"""Reconcile accepted extractions against the existing catalog.

Names are matched case-insensitively and exactly; there is no fuzzy or
partial matching. Posting a purchase is not atomic as a whole: each
supplier, category and product is created or updated in its own
transaction before the purchase record that references it is written,
so a failure late in the posting leaves earlier catalog changes in place.
"""

from __future__ import annotations

import logging
import random
import time

from .db.catalog import CatalogDB
from .db.schema import name_key
from .errors import ValidationError
from .extraction.categories import derive_category
from .models import CatalogMatch, PostingResult, ProductExtraction, PurchaseExtraction

logger = logging.getLogger(__name__)


def generate_sku() -> str:
    return f"SKU-{int(time.time() * 1000)}-{random.randint(100, 999)}"


def generate_purchase_number() -> str:
    return f"PO-{int(time.time() * 1000)}"


def initial_min_stock(quantity: int) -> int:
    """Reorder threshold for a product first seen on a purchase."""
    return max(1, quantity // 2)


class Reconciler:
    """Matches extracted names to catalog entities and applies the mutations."""

    def __init__(self, catalog: CatalogDB) -> None:
        self._catalog = catalog

    # -- matching ------------------------------------------------------------

    def find_supplier_match(self, vendor: str) -> CatalogMatch | None:
        if not vendor or not vendor.strip():
            return None
        supplier = self._catalog.find_supplier_by_name(vendor)
        if supplier is None:
            return None
        return CatalogMatch(kind="supplier", id=supplier["id"], name=supplier["name"])

    def find_product_match(self, name: str, sku: str | None = None) -> CatalogMatch | None:
        """Match by SKU first, then by case-insensitive exact name."""
        product = None
        if sku:
            product = self._catalog.find_product_by_sku(sku)
        if product is None and name and name.strip():
            product = self._catalog.find_product_by_name(name)
        if product is None:
            return None
        return CatalogMatch(kind="product", id=product["id"], name=product["name"])

    # -- purchases -----------------------------------------------------------

    def post_purchase(
        self, extraction: PurchaseExtraction, create_new_supplier: bool = False
    ) -> PostingResult:
        """Post an accepted purchase extraction.

        Args:
            extraction: the reviewed purchase.
            create_new_supplier: create a new supplier even if one with the
                same name exists. Without a match a supplier is always created.

        Raises:
            ValidationError: required data is missing or the purchase number
                was already posted. Raised before any catalog change.
            PersistenceError: the catalog rejected a write.
        """
        self._validate_purchase(extraction)
        purchase_number = extraction.invoice_number or generate_purchase_number()
        if self._catalog.find_purchase_by_number(purchase_number) is not None:
            raise ValidationError(f"Purchase {purchase_number!r} has already been posted")

        supplier_id, supplier_created = self._resolve_supplier(
            extraction.vendor, create_new_supplier
        )
        result = PostingResult(
            purchase={}, supplier_id=supplier_id, supplier_created=supplier_created
        )

        # Grows as categories are created so later items can reuse them
        categories = {name_key(c["name"]): c for c in self._catalog.list_categories()}

        purchase_items: list[dict] = []
        for item in extraction.items:
            category_name = item.category or derive_category(item.description)
            category = categories.get(name_key(category_name))
            if category is None:
                category, created = self._catalog.find_or_create_category(category_name)
                categories[name_key(category["name"])] = category
                if created:
                    result.categories_created += 1
                    logger.info("Created category %r", category["name"])

            product, created = self._catalog.find_or_create_product(
                item.description,
                sku_factory=generate_sku,
                category_id=category["id"],
                supplier_id=supplier_id,
                unit_price=item.unit_price,
                quantity=item.quantity,
                min_stock=initial_min_stock(item.quantity),
            )
            if created:
                result.products_created += 1
                logger.info("Created product %r (%s)", product["name"], product["sku"])
            else:
                updates: dict = {"supplier_id": supplier_id}
                if not product["category_id"]:
                    updates["category_id"] = category["id"]
                self._catalog.update_product(product["id"], **updates)
                product = self._catalog.increment_stock(product["id"], item.quantity)
                result.products_updated += 1
                logger.info(
                    "Updated product %r: stock now %d", product["name"], product["quantity"]
                )

            purchase_items.append({
                "product_id": product["id"],
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            })

        result.purchase = self._catalog.create_purchase(
            purchase_number,
            supplier_id,
            extraction.total_amount,
            purchase_items,
            tax_amount=extraction.tax_amount,
            status="received",
            purchase_date=extraction.date,
            notes=extraction.notes,
        )
        logger.info(
            "Posted purchase %s: %d products created, %d updated, %d categories created",
            purchase_number,
            result.products_created,
            result.products_updated,
            result.categories_created,
        )
        return result

    @staticmethod
    def _validate_purchase(extraction: PurchaseExtraction) -> None:
        if not extraction.vendor or not extraction.vendor.strip():
            raise ValidationError("Purchase has no vendor")
        if extraction.total_amount is None or extraction.total_amount < 0:
            raise ValidationError("Purchase has no valid total amount")
        for index, item in enumerate(extraction.items):
            if not item.description or not item.description.strip():
                raise ValidationError(f"Line item {index + 1} has no description")
            if item.quantity < 1:
                raise ValidationError(f"Line item {index + 1} has a quantity below 1")

    def _resolve_supplier(self, vendor: str, create_new: bool) -> tuple[str, bool]:
        match = self.find_supplier_match(vendor)
        if match is not None and not create_new:
            logger.info("Using existing supplier %r", match.name)
            return match.id, False
        if match is None:
            supplier, created = self._catalog.find_or_create_supplier(vendor)
        else:
            supplier, created = self._catalog.create_supplier(vendor), True
        if created:
            logger.info("Created supplier %r", supplier["name"])
        else:
            logger.info("Using existing supplier %r", supplier["name"])
        return supplier["id"], created

    # -- products ------------------------------------------------------------

    def reconcile_product(self, extraction: ProductExtraction) -> tuple[dict, bool]:
        """Create or update the catalog product for an accepted extraction.

        Returns ``(product, created)``. An existing product keeps its stock
        level; missing fields are filled in and the unit price refreshed.
        """
        if not extraction.name or not extraction.name.strip():
            raise ValidationError("Product has no name")

        supplier_id = None
        if extraction.supplier:
            supplier, _ = self._catalog.find_or_create_supplier(extraction.supplier)
            supplier_id = supplier["id"]
        category_id = None
        if extraction.category:
            category, _ = self._catalog.find_or_create_category(extraction.category)
            category_id = category["id"]

        match = self.find_product_match(extraction.name, extraction.sku)
        if match is None:
            new_fields = {
                "description": extraction.description,
                "category_id": category_id,
                "supplier_id": supplier_id,
                "unit_price": extraction.unit_price or 0.0,
                "quantity": extraction.quantity,
                "min_stock": extraction.min_stock,
            }
            if extraction.sku:
                new_fields["sku"] = extraction.sku
            product, created = self._catalog.find_or_create_product(
                extraction.name,
                sku_factory=None if extraction.sku else generate_sku,
                **new_fields,
            )
            if created:
                logger.info("Created product %r (%s)", product["name"], product["sku"])
                return product, True
            existing = product
        else:
            existing = self._catalog.get_product(match.id)

        updates: dict = {}
        if extraction.unit_price is not None:
            updates["unit_price"] = extraction.unit_price
        for column, value in (
            ("description", extraction.description),
            ("sku", extraction.sku),
            ("category_id", category_id),
            ("supplier_id", supplier_id),
        ):
            if value and not existing[column]:  # type: ignore[index]
                updates[column] = value
        return self._catalog.update_product(existing["id"], **updates), False  # type: ignore[index]
