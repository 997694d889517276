"""Gemini ``generateContent`` over plain HTTPS with httpx."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from ..errors import MalformedResponseError, TransportError
from . import VisionBackend

if TYPE_CHECKING:
    from ..extraction.prompts import GenerationParams

logger = logging.getLogger(__name__)


def build_payload(
    image_b64: str, mime_type: str, prompt: str, params: GenerationParams
) -> dict:
    return {
        "contents": [
            {
                "parts": [
                    {"inlineData": {"data": image_b64, "mimeType": mime_type}},
                    {"text": prompt},
                ]
            }
        ],
        "generationConfig": params.to_request(),
    }


def first_candidate_text(data: object) -> str:
    """Return ``candidates[0].content.parts[0].text`` or raise."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]  # type: ignore[index]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError("Unexpected API response format") from e
    if not isinstance(text, str):
        raise MalformedResponseError("Unexpected API response format")
    return text


def _error_message(resp: httpx.Response) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return resp.text[:200] or resp.reason_phrase


class GeminiRestBackend(VisionBackend):
    """Call the Gemini REST API with the key passed as a query parameter."""

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta/models",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._model}:generateContent"

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
        payload = build_payload(image_b64, mime_type, prompt, params)
        logger.info("Making API request to: %s?key=REDACTED", self.url)

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout), transport=self._transport
        ) as client:
            try:
                resp = await client.post(
                    self.url,
                    params={"key": api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
            except httpx.TimeoutException as e:
                raise TransportError(
                    f"Model request timed out after {timeout:.0f}s",
                    kind=TransportError.TIMEOUT,
                ) from e
            except httpx.HTTPError as e:
                raise TransportError(f"Model request failed: {e}") from e

        if not resp.is_success:
            raise TransportError.from_status(resp.status_code, _error_message(resp))

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError("Model API returned non-JSON body") from e
        return first_candidate_text(data)
