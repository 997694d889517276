"""Catalog storage: categories, suppliers, products and purchases."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from pathlib import Path

from ..errors import PersistenceError
from .schema import ensure_schema, name_key, new_id, transaction

_PRODUCT_FIELDS = frozenset({
    "name", "description", "sku", "category_id", "supplier_id",
    "unit_price", "quantity", "min_stock",
})


def _unused_sku(conn: sqlite3.Connection, sku_factory: Callable[[], str]) -> str:
    """First SKU from ``sku_factory`` not already taken, suffixed if it keeps colliding."""

    def taken(sku: str) -> bool:
        return conn.execute("SELECT 1 FROM products WHERE sku = ?", (sku,)).fetchone() is not None

    base = sku_factory()
    for _ in range(3):
        if not taken(base):
            return base
        base = sku_factory()
    sku, counter = base, 1
    while taken(sku):
        counter += 1
        sku = f"{base}-{counter}"
    return sku


class CatalogDB:
    """Manages the categories, suppliers, products and purchases tables.

    ``find_or_create_*`` methods do their lookup and insert inside one
    ``BEGIN IMMEDIATE`` transaction, so two writers racing on the same
    name cannot both insert it.
    """

    def __init__(self, db_path: str | Path = "~/.config/stockpilot/stockpilot.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = ensure_schema(self._db_path)
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open catalog database: {e}") from e
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        try:
            rows = self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        return [dict(r) for r in rows]

    def _fetch_one(self, sql: str, params: tuple = ()) -> dict | None:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    # -- categories ----------------------------------------------------------

    def list_categories(self) -> list[dict]:
        return self._fetch_all("SELECT * FROM categories ORDER BY rowid")

    def get_category(self, category_id: str) -> dict | None:
        return self._fetch_one("SELECT * FROM categories WHERE id = ?", (category_id,))

    def find_category_by_name(self, name: str) -> dict | None:
        return self._fetch_one(
            "SELECT * FROM categories WHERE name_key(name) = ? ORDER BY rowid LIMIT 1",
            (name_key(name),),
        )

    def create_category(self, name: str, description: str | None = None) -> dict:
        category = {"id": new_id(), "name": name.strip(), "description": description}
        with transaction(self._get_conn()) as conn:
            conn.execute(
                "INSERT INTO categories (id, name, description) VALUES (?, ?, ?)",
                (category["id"], category["name"], description),
            )
        return category

    def find_or_create_category(self, name: str) -> tuple[dict, bool]:
        """Return ``(category, created)`` for a case-insensitive exact name."""
        with transaction(self._get_conn()) as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE name_key(name) = ? ORDER BY rowid LIMIT 1",
                (name_key(name),),
            ).fetchone()
            if row is not None:
                return dict(row), False
            category = {"id": new_id(), "name": name.strip(), "description": None}
            conn.execute(
                "INSERT INTO categories (id, name, description) VALUES (?, ?, ?)",
                (category["id"], category["name"], None),
            )
        return category, True

    # -- suppliers -----------------------------------------------------------

    def list_suppliers(self) -> list[dict]:
        return self._fetch_all("SELECT * FROM suppliers ORDER BY created_at, rowid")

    def get_supplier(self, supplier_id: str) -> dict | None:
        return self._fetch_one("SELECT * FROM suppliers WHERE id = ?", (supplier_id,))

    def find_supplier_by_name(self, name: str) -> dict | None:
        return self._fetch_one(
            "SELECT * FROM suppliers WHERE name_key(name) = ? ORDER BY rowid LIMIT 1",
            (name_key(name),),
        )

    def create_supplier(
        self,
        name: str,
        *,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
    ) -> dict:
        supplier_id = new_id()
        with transaction(self._get_conn()) as conn:
            conn.execute(
                """INSERT INTO suppliers (id, name, email, phone, address)
                   VALUES (?, ?, ?, ?, ?)""",
                (supplier_id, name.strip(), email, phone, address),
            )
        return self.get_supplier(supplier_id)  # type: ignore[return-value]

    def find_or_create_supplier(self, name: str) -> tuple[dict, bool]:
        """Return ``(supplier, created)`` for a case-insensitive exact name."""
        supplier_id = new_id()
        with transaction(self._get_conn()) as conn:
            row = conn.execute(
                "SELECT * FROM suppliers WHERE name_key(name) = ? ORDER BY rowid LIMIT 1",
                (name_key(name),),
            ).fetchone()
            if row is not None:
                return dict(row), False
            conn.execute(
                "INSERT INTO suppliers (id, name) VALUES (?, ?)",
                (supplier_id, name.strip()),
            )
        return self.get_supplier(supplier_id), True  # type: ignore[return-value]

    # -- products ------------------------------------------------------------

    def list_products(self) -> list[dict]:
        return self._fetch_all("SELECT * FROM products ORDER BY created_at, rowid")

    def get_product(self, product_id: str) -> dict | None:
        return self._fetch_one("SELECT * FROM products WHERE id = ?", (product_id,))

    def find_product_by_name(self, name: str) -> dict | None:
        return self._fetch_one(
            "SELECT * FROM products WHERE name_key(name) = ? ORDER BY rowid LIMIT 1",
            (name_key(name),),
        )

    def find_product_by_sku(self, sku: str) -> dict | None:
        return self._fetch_one("SELECT * FROM products WHERE sku = ?", (sku.strip(),))

    def create_product(
        self,
        name: str,
        *,
        sku: str | None = None,
        description: str | None = None,
        category_id: str | None = None,
        supplier_id: str | None = None,
        unit_price: float = 0.0,
        quantity: int = 0,
        min_stock: int = 0,
    ) -> dict:
        product_id = new_id()
        with transaction(self._get_conn()) as conn:
            conn.execute(
                """INSERT INTO products
                   (id, name, description, sku, category_id, supplier_id,
                    unit_price, quantity, min_stock)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    product_id,
                    name.strip(),
                    description,
                    sku,
                    category_id,
                    supplier_id,
                    unit_price,
                    quantity,
                    min_stock,
                ),
            )
        return self.get_product(product_id)  # type: ignore[return-value]

    def find_or_create_product(
        self,
        name: str,
        *,
        sku_factory: Callable[[], str] | None = None,
        **defaults,
    ) -> tuple[dict, bool]:
        """Return ``(product, created)``; ``defaults`` fill a newly created row.

        When ``sku_factory`` is given, a new row gets a generated SKU that is
        checked against existing SKUs in the same transaction.
        """
        unknown = set(defaults) - _PRODUCT_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)}")
        product_id = new_id()
        columns = {"id": product_id, "name": name.strip(), **defaults}
        with transaction(self._get_conn()) as conn:
            row = conn.execute(
                "SELECT * FROM products WHERE name_key(name) = ? ORDER BY rowid LIMIT 1",
                (name_key(name),),
            ).fetchone()
            if row is not None:
                return dict(row), False
            if sku_factory is not None:
                columns["sku"] = _unused_sku(conn, sku_factory)
            conn.execute(
                f"INSERT INTO products ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                tuple(columns.values()),
            )
        return self.get_product(product_id), True  # type: ignore[return-value]

    def update_product(self, product_id: str, **fields) -> dict:
        """Update the given columns of a product and return the new row."""
        unknown = set(fields) - _PRODUCT_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            with transaction(self._get_conn()) as conn:
                cur = conn.execute(
                    f"UPDATE products SET {assignments} WHERE id = ?",
                    (*fields.values(), product_id),
                )
                if cur.rowcount == 0:
                    raise PersistenceError(f"Product not found: {product_id}")
        product = self.get_product(product_id)
        if product is None:
            raise PersistenceError(f"Product not found: {product_id}")
        return product

    def increment_stock(self, product_id: str, amount: int) -> dict:
        """Add ``amount`` to a product's quantity in a single statement."""
        with transaction(self._get_conn()) as conn:
            cur = conn.execute(
                "UPDATE products SET quantity = quantity + ? WHERE id = ?",
                (amount, product_id),
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"Product not found: {product_id}")
        return self.get_product(product_id)  # type: ignore[return-value]

    # -- purchases -----------------------------------------------------------

    def create_purchase(
        self,
        purchase_number: str,
        supplier_id: str,
        total_amount: float,
        items: list[dict],
        *,
        tax_amount: float = 0.0,
        status: str = "pending",
        purchase_date: str | None = None,
        notes: str | None = None,
    ) -> dict:
        """Insert a purchase and its items in one transaction.

        Each item needs ``product_id``, ``quantity``, ``unit_price`` and
        ``total_price``.
        """
        purchase_id = new_id()
        with transaction(self._get_conn()) as conn:
            conn.execute(
                """INSERT INTO purchases
                   (id, purchase_number, supplier_id, total_amount, tax_amount,
                    status, purchase_date, notes)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    purchase_id,
                    purchase_number,
                    supplier_id,
                    total_amount,
                    tax_amount,
                    status,
                    purchase_date,
                    notes,
                ),
            )
            conn.executemany(
                """INSERT INTO purchase_items
                   (id, purchase_id, product_id, quantity, unit_price, total_price)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (
                        new_id(),
                        purchase_id,
                        item["product_id"],
                        item["quantity"],
                        item["unit_price"],
                        item["total_price"],
                    )
                    for item in items
                ],
            )
        return self.get_purchase(purchase_id)  # type: ignore[return-value]

    def get_purchase(self, purchase_id: str) -> dict | None:
        purchase = self._fetch_one("SELECT * FROM purchases WHERE id = ?", (purchase_id,))
        if purchase is None:
            return None
        purchase["items"] = self._fetch_all(
            "SELECT * FROM purchase_items WHERE purchase_id = ? ORDER BY rowid",
            (purchase_id,),
        )
        return purchase

    def find_purchase_by_number(self, purchase_number: str) -> dict | None:
        row = self._fetch_one(
            "SELECT id FROM purchases WHERE purchase_number = ?", (purchase_number,)
        )
        return self.get_purchase(row["id"]) if row else None

    def list_purchases(self) -> list[dict]:
        return self._fetch_all("SELECT * FROM purchases ORDER BY created_at DESC, rowid DESC")
