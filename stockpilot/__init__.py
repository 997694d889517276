"""AI receipt, invoice and product extraction with catalog reconciliation."""

from .config import ApiKeyCell, StockpilotConfig, load_config
from .db import CatalogDB, DocumentDB
from .documents import DocumentWorkflow
from .errors import (
    ConfigurationError,
    InvalidTransitionError,
    MalformedResponseError,
    PersistenceError,
    StockpilotError,
    TransportError,
    ValidationError,
)
from .extraction import Extractor, derive_category, repair
from .models import (
    DocumentAnalysis,
    ExtractionRequest,
    ImageAnalysis,
    LineItem,
    PostingResult,
    ProductExtraction,
    PurchaseExtraction,
    UseCase,
)
from .reconcile import Reconciler
from .vision import VisionBackend, create_backend

__all__ = [
    "Extractor",
    "Reconciler",
    "DocumentWorkflow",
    "VisionBackend",
    "create_backend",
    "repair",
    "derive_category",
    "ExtractionRequest",
    "DocumentAnalysis",
    "ProductExtraction",
    "PurchaseExtraction",
    "LineItem",
    "ImageAnalysis",
    "PostingResult",
    "UseCase",
    "CatalogDB",
    "DocumentDB",
    "StockpilotConfig",
    "ApiKeyCell",
    "load_config",
    "StockpilotError",
    "ConfigurationError",
    "TransportError",
    "MalformedResponseError",
    "ValidationError",
    "PersistenceError",
    "InvalidTransitionError",
]
