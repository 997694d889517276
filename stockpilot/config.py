"""TOML configuration loader and the shared API-key cell."""

from __future__ import annotations

import logging
import os
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

API_KEY_ENV = "GEMINI_API_KEY"

DEFAULT_KNOWN_VENDORS: list[str] = [
    "lapcom", "amazon", "walmart", "bestbuy", "office", "depot", "staples",
]


@dataclass
class AIConfig:
    backend: str = "rest"
    api_key: str = ""
    model: str = "gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    timeout_seconds: float = 30.0
    purchase_timeout_seconds: float = 45.0
    purchase_attempts: int = 2


@dataclass
class DatabaseConfig:
    path: str = "~/.config/stockpilot/stockpilot.db"


@dataclass
class FallbackConfig:
    known_vendors: list[str] = field(
        default_factory=lambda: list(DEFAULT_KNOWN_VENDORS)
    )


@dataclass
class StockpilotConfig:
    ai: AIConfig = field(default_factory=AIConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)


def load_config(path: str | Path | None = None) -> StockpilotConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    The API key can be supplied via the GEMINI_API_KEY environment variable.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    ai = raw.get("ai", {})
    db = raw.get("database", {})
    fb = raw.get("fallback", {})

    # Resolve API key: config file → environment variable
    api_key = ai.get("api_key", "") or os.environ.get(API_KEY_ENV, "")

    defaults = AIConfig()
    return StockpilotConfig(
        ai=AIConfig(
            backend=ai.get("backend", defaults.backend),
            api_key=api_key,
            model=ai.get("model", defaults.model),
            base_url=ai.get("base_url", defaults.base_url),
            timeout_seconds=float(ai.get("timeout_seconds", defaults.timeout_seconds)),
            purchase_timeout_seconds=float(
                ai.get("purchase_timeout_seconds", defaults.purchase_timeout_seconds)
            ),
            purchase_attempts=int(ai.get("purchase_attempts", defaults.purchase_attempts)),
        ),
        database=DatabaseConfig(
            path=db.get("path", DatabaseConfig().path),
        ),
        fallback=FallbackConfig(
            known_vendors=[v.lower() for v in fb.get("known_vendors", DEFAULT_KNOWN_VENDORS)],
        ),
    )


def mask_key(key: str) -> str:
    """Render a key for logs: first five and last four characters only."""
    if len(key) <= 9:
        return "*" * len(key)
    return f"{key[:5]}...{key[-4:]}"


class ApiKeyCell:
    """Single-writer, multi-reader holder for the model API key.

    Readers see either the old or the new key, never a partial value.
    ``reload()`` only ever replaces the key with a non-empty value, so a
    request in flight during a reload keeps a usable credential.
    """

    def __init__(self, initial: str = "", env_var: str = API_KEY_ENV) -> None:
        self._lock = threading.Lock()
        self._env_var = env_var
        self._value = initial.strip()
        if not self._value:
            logger.warning("%s is not set. AI features will not work.", env_var)
        else:
            logger.info("AI API key configured: %s", mask_key(self._value))

    def get(self) -> str:
        with self._lock:
            return self._value

    def is_configured(self) -> bool:
        return bool(self.get())

    def set(self, value: str) -> bool:
        """Replace the key; empty values are ignored. Returns True on change."""
        value = value.strip()
        if not value:
            return False
        with self._lock:
            if value == self._value:
                return False
            self._value = value
        logger.info("AI API key replaced: %s", mask_key(value))
        return True

    def reload(self) -> bool:
        """Re-read the key from the environment. Returns True if it changed."""
        return self.set(os.environ.get(self._env_var, ""))
