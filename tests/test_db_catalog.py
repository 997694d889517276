"""Tests for CatalogDB and DocumentDB CRUD operations."""

import threading

import pytest

from stockpilot.db.catalog import CatalogDB
from stockpilot.db.documents import DocumentDB
from stockpilot.errors import PersistenceError


@pytest.fixture
def db(tmp_path):
    """Create a temporary CatalogDB."""
    catalog = CatalogDB(db_path=tmp_path / "test.db")
    yield catalog
    catalog.close()


@pytest.fixture
def docs(tmp_path):
    """Create a temporary DocumentDB."""
    store = DocumentDB(db_path=tmp_path / "test.db")
    yield store
    store.close()


class TestCategories:
    def test_default_categories_seeded(self, db):
        names = [c["name"] for c in db.list_categories()]
        assert "Office Supplies" in names
        assert "Software" in names

    def test_find_category_case_insensitive(self, db):
        assert db.find_category_by_name("office supplies")["name"] == "Office Supplies"

    def test_find_or_create_category(self, db):
        created, was_created = db.find_or_create_category("Computer Hardware")
        again, again_created = db.find_or_create_category("COMPUTER HARDWARE")
        assert was_created is True
        assert again_created is False
        assert again["id"] == created["id"]


class TestSuppliers:
    def test_create_and_get(self, db):
        supplier = db.create_supplier("Acme Corp", email="sales@acme.test")
        assert db.get_supplier(supplier["id"])["email"] == "sales@acme.test"
        assert supplier["phone"] is None

    def test_find_supplier_case_insensitive(self, db):
        db.create_supplier("Office Depot")
        assert db.find_supplier_by_name("  office depot ")["name"] == "Office Depot"
        assert db.find_supplier_by_name("Office") is None

    def test_duplicate_names_allowed(self, db):
        db.create_supplier("Acme")
        db.create_supplier("acme")
        assert len(db.list_suppliers()) == 2

    def test_find_or_create_supplier_concurrent(self, tmp_path):
        """Concurrent writers racing on one name produce a single supplier."""
        path = tmp_path / "race.db"
        setup = CatalogDB(path)
        setup.list_suppliers()
        setup.close()
        results = []

        def worker():
            catalog = CatalogDB(path)
            try:
                results.append(catalog.find_or_create_supplier("Globex")[1])
            finally:
                catalog.close()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == [False, False, False, True]
        catalog = CatalogDB(path)
        assert len(catalog.list_suppliers()) == 1
        catalog.close()


class TestProducts:
    def test_create_product(self, db):
        product = db.create_product("Stapler", sku="SKU-1", unit_price=9.5, quantity=3)
        assert product["quantity"] == 3
        assert db.find_product_by_sku("SKU-1")["id"] == product["id"]
        assert db.find_product_by_name("STAPLER")["id"] == product["id"]

    def test_duplicate_sku_rejected(self, db):
        db.create_product("A", sku="SKU-1")
        with pytest.raises(PersistenceError):
            db.create_product("B", sku="SKU-1")

    def test_increment_stock(self, db):
        product = db.create_product("Pen", quantity=2)
        assert db.increment_stock(product["id"], 5)["quantity"] == 7

    def test_increment_missing_product(self, db):
        with pytest.raises(PersistenceError):
            db.increment_stock("missing", 1)

    def test_update_product(self, db):
        product = db.create_product("Pen")
        updated = db.update_product(product["id"], unit_price=1.25, min_stock=4)
        assert updated["unit_price"] == 1.25
        assert updated["min_stock"] == 4

    def test_update_rejects_unknown_fields(self, db):
        product = db.create_product("Pen")
        with pytest.raises(ValueError):
            db.update_product(product["id"], id="other")

    def test_find_or_create_product(self, db):
        product, created = db.find_or_create_product("Monitor", quantity=2, min_stock=1)
        again, again_created = db.find_or_create_product("monitor", quantity=9)
        assert created is True
        assert again_created is False
        assert again["id"] == product["id"]
        assert again["quantity"] == 2

    def test_find_or_create_product_generates_free_sku(self, db):
        db.create_product("Pen", sku="SKU-1")
        skus = iter(["SKU-1", "SKU-1", "SKU-2"])
        product, created = db.find_or_create_product("Pencil", sku_factory=lambda: next(skus))
        assert created is True
        assert product["sku"] == "SKU-2"

    def test_find_or_create_product_suffixes_constant_sku(self, db):
        db.create_product("Pen", sku="SKU-1")
        product, _ = db.find_or_create_product("Pencil", sku_factory=lambda: "SKU-1")
        assert product["sku"] == "SKU-1-2"


class TestPurchases:
    def test_create_purchase_with_items(self, db):
        supplier = db.create_supplier("Acme")
        product = db.create_product("Pen", unit_price=2.0)
        purchase = db.create_purchase(
            "INV-1",
            supplier["id"],
            4.0,
            [{"product_id": product["id"], "quantity": 2, "unit_price": 2.0, "total_price": 4.0}],
            status="received",
            purchase_date="2024-03-15",
        )
        assert purchase["status"] == "received"
        assert purchase["purchase_date"] == "2024-03-15"
        assert len(purchase["items"]) == 1
        assert db.find_purchase_by_number("INV-1")["id"] == purchase["id"]
        assert len(db.list_purchases()) == 1

    def test_purchase_number_unique(self, db):
        supplier = db.create_supplier("Acme")
        db.create_purchase("INV-1", supplier["id"], 1.0, [])
        with pytest.raises(PersistenceError):
            db.create_purchase("INV-1", supplier["id"], 1.0, [])

    def test_bad_item_rolls_back_purchase(self, db):
        supplier = db.create_supplier("Acme")
        with pytest.raises(PersistenceError):
            db.create_purchase(
                "INV-2",
                supplier["id"],
                1.0,
                [{"product_id": "missing", "quantity": 1, "unit_price": 1.0, "total_price": 1.0}],
            )
        assert db.find_purchase_by_number("INV-2") is None


class TestDocuments:
    def test_create_document(self, docs):
        doc = docs.create_document("r.jpg", mime_type="image/jpeg", original_data="data:...")
        assert doc["status"] == "processing"
        assert doc["document_type"] == "receipt"

    def test_list_by_status(self, docs):
        a = docs.create_document("a.jpg")
        docs.create_document("b.jpg")
        docs.update_document(a["id"], status="completed")
        assert [d["filename"] for d in docs.list_documents("completed")] == ["a.jpg"]
        assert len(docs.list_documents()) == 2

    def test_conditional_update(self, docs):
        doc = docs.create_document("a.jpg")
        docs.update_document(doc["id"], expected_status="processing", status="failed")
        with pytest.raises(PersistenceError):
            docs.update_document(doc["id"], expected_status="processing", status="completed")
        assert docs.get_document(doc["id"])["status"] == "failed"

    def test_update_rejects_unknown_fields(self, docs):
        doc = docs.create_document("a.jpg")
        with pytest.raises(ValueError):
            docs.update_document(doc["id"], created_at="yesterday")

    def test_delete_document(self, docs):
        doc = docs.create_document("a.jpg")
        docs.delete_document(doc["id"])
        assert docs.get_document(doc["id"]) is None
