"""Gemini backend using the google-generativeai SDK."""

from __future__ import annotations

import asyncio
import base64
from typing import TYPE_CHECKING

from ..errors import MalformedResponseError, TransportError
from . import VisionBackend

if TYPE_CHECKING:
    from ..extraction.prompts import GenerationParams


class GeminiSDKBackend(VisionBackend):
    """Extract structured data using Google Gemini through its Python SDK."""

    def __init__(self, model: str = "gemini-2.5-flash") -> None:
        self._model = model

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
        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(self._model)

        parts: list = [
            {"mime_type": mime_type, "data": base64.b64decode(image_b64)},
            prompt,
        ]
        generation_config = {
            "temperature": params.temperature,
            "top_p": params.top_p,
            "top_k": params.top_k,
            "max_output_tokens": params.max_output_tokens,
            "response_mime_type": params.response_mime_type,
        }

        try:
            response = await asyncio.wait_for(
                model.generate_content_async(parts, generation_config=generation_config),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Model request timed out after {timeout:.0f}s",
                kind=TransportError.TIMEOUT,
            ) from e
        except Exception as e:
            # google.api_core errors carry the HTTP status as ``code``
            status = getattr(e, "code", None)
            if isinstance(status, int):
                raise TransportError.from_status(status, str(e)) from e
            raise TransportError(f"Model request failed: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or empty
            raise MalformedResponseError(f"Model returned no text: {e}") from e
        return text
