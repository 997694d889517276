"""Tests for model backends (mocked HTTP and SDK calls)."""

import asyncio
import base64
import json
import sys
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import httpx
import pytest

from stockpilot.config import load_config
from stockpilot.errors import MalformedResponseError, TransportError
from stockpilot.extraction.prompts import GENERATION_PARAMS
from stockpilot.models import UseCase
from stockpilot.vision import create_backend
from stockpilot.vision.gemini import GeminiSDKBackend
from stockpilot.vision.rest import GeminiRestBackend, build_payload, first_candidate_text

PARAMS = GENERATION_PARAMS[UseCase.PURCHASE]
IMAGE_B64 = base64.b64encode(b"fake-image").decode()


def _candidate(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


async def _generate(backend, **kwargs):
    return await backend.generate(
        IMAGE_B64, "image/jpeg", "Extract it", PARAMS,
        api_key=kwargs.get("api_key", "secret-key"),
        timeout=kwargs.get("timeout", 45.0),
    )


class TestCreateBackend:
    def test_default_is_rest(self):
        backend = create_backend(load_config())
        assert isinstance(backend, GeminiRestBackend)
        assert backend.url.endswith("/gemini-2.5-flash:generateContent")

    def test_sdk_backend(self):
        config = load_config()
        config.ai.backend = "sdk"
        assert isinstance(create_backend(config), GeminiSDKBackend)

    def test_unknown_backend(self):
        config = load_config()
        config.ai.backend = "unknown"
        with pytest.raises(ValueError, match="Unknown AI backend"):
            create_backend(config)


class TestPayload:
    def test_build_payload(self):
        payload = build_payload(IMAGE_B64, "image/png", "Extract it", PARAMS)
        parts = payload["contents"][0]["parts"]
        assert parts[0] == {"inlineData": {"data": IMAGE_B64, "mimeType": "image/png"}}
        assert parts[1] == {"text": "Extract it"}
        assert payload["generationConfig"] == {
            "temperature": 0.05,
            "topP": 0.95,
            "topK": 40,
            "maxOutputTokens": 2048,
            "responseMimeType": "application/json",
        }

    def test_first_candidate_text(self):
        assert first_candidate_text(_candidate("hello")) == "hello"

    @pytest.mark.parametrize(
        "data",
        [{}, {"candidates": []}, {"candidates": [{"content": {}}]}, [], _candidate(None)],
    )
    def test_first_candidate_text_malformed(self, data):
        with pytest.raises(MalformedResponseError):
            first_candidate_text(data)


class TestGeminiRestBackend:
    @pytest.mark.asyncio
    async def test_generate(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_candidate('{"vendor": "Acme"}'))

        backend = GeminiRestBackend(
            model="gemini-test",
            base_url="https://example.test/v1beta/models/",
            transport=httpx.MockTransport(handler),
        )
        text = await _generate(backend)

        assert text == '{"vendor": "Acme"}'
        assert seen["url"].path == "/v1beta/models/gemini-test:generateContent"
        assert seen["url"].params["key"] == "secret-key"
        assert seen["body"]["generationConfig"]["temperature"] == 0.05

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,kind",
        [
            (401, TransportError.AUTH),
            (403, TransportError.AUTH),
            (429, TransportError.RATE_LIMIT),
            (500, TransportError.OTHER),
        ],
    )
    async def test_status_classification(self, status, kind):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "nope"}})

        backend = GeminiRestBackend(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError) as exc_info:
            await _generate(backend)
        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_error_message_from_body(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Image too large"}})

        backend = GeminiRestBackend(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError, match="Image too large"):
            await _generate(backend)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        backend = GeminiRestBackend(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError) as exc_info:
            await _generate(backend, timeout=30.0)
        assert exc_info.value.kind == TransportError.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        backend = GeminiRestBackend(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError) as exc_info:
            await _generate(backend)
        assert exc_info.value.kind == TransportError.OTHER

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        backend = GeminiRestBackend(transport=httpx.MockTransport(handler))
        with pytest.raises(MalformedResponseError):
            await _generate(backend)

    @pytest.mark.asyncio
    async def test_key_not_logged(self, caplog):
        def handler(request):
            return httpx.Response(200, json=_candidate("{}"))

        backend = GeminiRestBackend(transport=httpx.MockTransport(handler))
        with caplog.at_level("DEBUG"):
            await _generate(backend, api_key="super-secret-value")
        assert "super-secret-value" not in caplog.text


@contextmanager
def _mock_genai(generate):
    """Context manager that mocks google.generativeai with ``generate`` as the model call."""
    mock_model = MagicMock()
    mock_model.generate_content_async = generate
    mock_genai = MagicMock()
    mock_genai.GenerativeModel.return_value = mock_model
    mock_google = MagicMock()
    mock_google.generativeai = mock_genai
    with patch.dict(sys.modules, {"google": mock_google, "google.generativeai": mock_genai}):
        yield mock_genai, mock_model


class TestGeminiSDKBackend:
    @pytest.mark.asyncio
    async def test_generate(self):
        response = MagicMock()
        response.text = '{"name": "Stapler"}'
        with _mock_genai(AsyncMock(return_value=response)) as (genai, model):
            text = await _generate(GeminiSDKBackend(model="gemini-test"))

        assert text == '{"name": "Stapler"}'
        genai.configure.assert_called_once_with(api_key="secret-key")
        genai.GenerativeModel.assert_called_once_with("gemini-test")
        parts = model.generate_content_async.await_args.args[0]
        assert parts[0] == {"mime_type": "image/jpeg", "data": b"fake-image"}
        config = model.generate_content_async.await_args.kwargs["generation_config"]
        assert config["max_output_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_status_error(self):
        error = Exception("quota")
        error.code = 429
        with _mock_genai(AsyncMock(side_effect=error)):
            with pytest.raises(TransportError) as exc_info:
                await _generate(GeminiSDKBackend())
        assert exc_info.value.kind == TransportError.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        with _mock_genai(slow):
            with pytest.raises(TransportError) as exc_info:
                await _generate(GeminiSDKBackend(), timeout=0.01)
        assert exc_info.value.kind == TransportError.TIMEOUT

    @pytest.mark.asyncio
    async def test_blocked_response(self):
        response = MagicMock()
        type(response).text = PropertyMock(side_effect=ValueError("blocked"))
        with _mock_genai(AsyncMock(return_value=response)):
            with pytest.raises(MalformedResponseError, match="blocked"):
                await _generate(GeminiSDKBackend())
