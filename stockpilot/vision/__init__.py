"""Model backend base class and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import StockpilotConfig
    from ..extraction.prompts import GenerationParams


class VisionBackend(ABC):
    """Abstract base for a vision-capable text-generation model."""

    @abstractmethod
    async def generate(
        self,
        image_b64: str,
        mime_type: str,
        prompt: str,
        params: GenerationParams,
        *,
        api_key: str,
        timeout: float,
    ) -> str:
        """Send one image plus instructions and return the raw model text.

        Raises:
            TransportError: network failure, timeout or non-2xx response.
            MalformedResponseError: the response carried no text candidate.
        """
        ...


def create_backend(config: StockpilotConfig) -> VisionBackend:
    """Create a model backend based on configuration."""
    backend_name = config.ai.backend

    match backend_name:
        case "rest":
            from .rest import GeminiRestBackend

            return GeminiRestBackend(
                model=config.ai.model,
                base_url=config.ai.base_url,
            )
        case "sdk":
            from .gemini import GeminiSDKBackend

            return GeminiSDKBackend(model=config.ai.model)
        case _:
            raise ValueError(
                f"Unknown AI backend: {backend_name!r} (choose rest or sdk)"
            )
