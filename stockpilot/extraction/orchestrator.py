"""Extraction orchestrator: model call → repair → normalize → fallback.

One :class:`Extractor` serves any number of concurrent extractions. The
only state it holds across calls is the API-key cell, which may be
reloaded at any time.
"""

from __future__ import annotations

import json
import logging

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from ..config import ApiKeyCell, StockpilotConfig
from ..errors import ConfigurationError, MalformedResponseError, TransportError
from ..models import (
    DocumentAnalysis,
    ExtractionRequest,
    ExtractionResult,
    ImageAnalysis,
    ProductExtraction,
    PurchaseExtraction,
    UseCase,
)
from ..vision import VisionBackend, create_backend
from . import fallback
from .normalize import normalize
from .prompts import GENERATION_PARAMS, PROMPTS
from .repair import repair_with_stage

logger = logging.getLogger(__name__)


class Extractor:
    """Runs one extraction per call for a given use case."""

    def __init__(
        self,
        backend: VisionBackend,
        api_key: ApiKeyCell,
        *,
        timeout: float = 30.0,
        purchase_timeout: float = 45.0,
        purchase_attempts: int = 2,
        known_vendors: list[str] | None = None,
    ) -> None:
        self._backend = backend
        self._api_key = api_key
        self._timeout = timeout
        self._purchase_timeout = purchase_timeout
        self._purchase_attempts = max(1, purchase_attempts)
        self._known_vendors = known_vendors

    @classmethod
    def from_config(cls, config: StockpilotConfig) -> Extractor:
        return cls(
            create_backend(config),
            ApiKeyCell(config.ai.api_key),
            timeout=config.ai.timeout_seconds,
            purchase_timeout=config.ai.purchase_timeout_seconds,
            purchase_attempts=config.ai.purchase_attempts,
            known_vendors=config.fallback.known_vendors,
        )

    @property
    def api_key(self) -> ApiKeyCell:
        return self._api_key

    def is_configured(self) -> bool:
        return self._api_key.is_configured()

    def reload_api_key(self) -> bool:
        return self._api_key.reload()

    # -- public call shapes --------------------------------------------------

    async def analyze(
        self, image: bytes | str, mime_type: str, filename: str | None = None
    ) -> DocumentAnalysis:
        """Extract financial fields from a receipt, invoice or expense."""
        return await self.extract(_request(image, mime_type, filename), UseCase.DOCUMENT)

    async def extract_product(self, image: bytes | str, mime_type: str) -> ProductExtraction:
        return await self.extract(_request(image, mime_type), UseCase.PRODUCT)

    async def extract_purchase(
        self, image: bytes | str, mime_type: str, filename: str | None = None
    ) -> PurchaseExtraction:
        """Extract a purchase with line items; retried before falling back."""
        return await self.extract(_request(image, mime_type, filename), UseCase.PURCHASE)

    async def analyze_image(self, image: bytes | str, mime_type: str) -> ImageAnalysis:
        return await self.extract(_request(image, mime_type), UseCase.IMAGE)

    async def extract(self, request: ExtractionRequest, use_case: str) -> ExtractionResult:
        """Run the full pipeline for ``use_case``.

        Raises:
            ConfigurationError: no API key is configured.
        """
        if use_case not in UseCase.ALL:
            raise ValueError(f"Unknown use case: {use_case!r}")

        if not self._api_key.is_configured():
            raise ConfigurationError(
                "API key is not set. Please set the GEMINI_API_KEY environment variable."
            )

        logger.info("Starting %s extraction for %s image", use_case, request.mime_type)
        attempts = self._purchase_attempts if use_case == UseCase.PURCHASE else 1
        timeout = self._purchase_timeout if use_case == UseCase.PURCHASE else self._timeout
        image_b64 = request.to_base64()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                retry=retry_if_exception_type((TransportError, MalformedResponseError)),
                reraise=True,
                before=lambda state: logger.debug(
                    "Attempt %d of %d...", state.attempt_number, attempts
                ),
                before_sleep=lambda state: logger.warning(
                    "Attempt %d failed: %s",
                    state.attempt_number,
                    state.outcome.exception(),  # type: ignore[union-attr]
                ),
            ):
                with attempt:
                    return await self._attempt(use_case, image_b64, request, timeout)
        except TransportError as e:
            _log_transport_error(use_case, e)
        except MalformedResponseError as e:
            logger.warning("%s extraction produced no usable result: %s", use_case, e)

        logger.warning("All %s extraction attempts failed, using fallback", use_case)
        return self._fallback(use_case, request.filename)

    # -- internals -----------------------------------------------------------

    async def _attempt(
        self,
        use_case: str,
        image_b64: str,
        request: ExtractionRequest,
        timeout: float,
    ) -> ExtractionResult:
        # Read per attempt so a reload between attempts takes effect
        api_key = self._api_key.get()
        text = await self._backend.generate(
            image_b64,
            request.mime_type,
            PROMPTS[use_case],
            GENERATION_PARAMS[use_case],
            api_key=api_key,
            timeout=timeout,
        )
        logger.info("%s response received: %s...", use_case, text[:100])

        outcome = repair_with_stage(text)
        if outcome.is_fallback:
            raise MalformedResponseError("Model response could not be repaired")
        return normalize(use_case, json.loads(outcome.text), request.filename)

    def _fallback(self, use_case: str, filename: str | None) -> ExtractionResult:
        match use_case:
            case UseCase.PURCHASE:
                if filename:
                    return fallback.fallback_purchase(filename, self._known_vendors)
                return fallback.zero_purchase()
            case UseCase.DOCUMENT:
                if filename:
                    return fallback.fallback_document(filename)
                return fallback.zero_document()
            case UseCase.PRODUCT:
                return fallback.zero_product()
            case _:
                return fallback.zero_image_analysis()


def _request(
    image: bytes | str, mime_type: str, filename: str | None = None
) -> ExtractionRequest:
    if isinstance(image, str):
        return ExtractionRequest.from_base64(image, mime_type, filename)
    return ExtractionRequest(image=image, mime_type=mime_type, filename=filename)


def _log_transport_error(use_case: str, error: TransportError) -> None:
    match error.kind:
        case TransportError.AUTH:
            logger.error("%s extraction: credential rejected (%s): %s",
                         use_case, error.status_code, error)
        case TransportError.RATE_LIMIT:
            logger.warning("%s extraction: rate limited: %s", use_case, error)
        case TransportError.TIMEOUT:
            logger.warning("%s extraction: %s", use_case, error)
        case _:
            logger.error("%s extraction failed: %s", use_case, error)
