"""AI extraction pipeline: repair, normalize, fallback and orchestration."""

from .categories import derive_category
from .normalize import normalize, normalize_date
from .orchestrator import Extractor
from .repair import RepairOutcome, repair, repair_with_stage

__all__ = [
    "Extractor",
    "RepairOutcome",
    "derive_category",
    "normalize",
    "normalize_date",
    "repair",
    "repair_with_stage",
]
