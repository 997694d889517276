"""SQLite storage for the catalog and AI documents."""

from .catalog import CatalogDB
from .documents import DocumentDB
from .schema import ensure_schema

__all__ = [
    "CatalogDB",
    "DocumentDB",
    "ensure_schema",
]
