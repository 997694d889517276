"""Exception hierarchy for the extraction pipeline and catalog stores.

Only :class:`ConfigurationError` and :class:`PersistenceError` are meant to
reach callers of the extraction entry points; the rest are raised and
absorbed inside the pipeline.
"""

from __future__ import annotations


class StockpilotError(Exception):
    """Base class for all stockpilot errors."""


class ConfigurationError(StockpilotError):
    """No model API credential is configured; AI features are unavailable."""


class TransportError(StockpilotError):
    """The model request failed (network, timeout or non-2xx status)."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    OTHER = "other"

    def __init__(
        self, message: str, *, kind: str = OTHER, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int, message: str) -> TransportError:
        """Classify an HTTP error status."""
        if status_code in (401, 403):
            return cls(
                f"Authentication error: {message}. Please check your API key.",
                kind=cls.AUTH,
                status_code=status_code,
            )
        if status_code == 429:
            return cls(
                "Rate limit exceeded. Please try again later.",
                kind=cls.RATE_LIMIT,
                status_code=status_code,
            )
        return cls(
            f"API error ({status_code}): {message}",
            kind=cls.OTHER,
            status_code=status_code,
        )


class MalformedResponseError(StockpilotError):
    """Model output could not be repaired or normalized into a result."""


class ValidationError(MalformedResponseError):
    """Extracted data is missing a field required for posting."""


class PersistenceError(StockpilotError):
    """The underlying store rejected a read or write."""


class InvalidTransitionError(StockpilotError):
    """An AI document status change that the review workflow forbids."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move document from {current!r} to {target!r}")
        self.current = current
        self.target = target
