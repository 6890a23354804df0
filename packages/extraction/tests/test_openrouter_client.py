"""Tests for OpenRouterClient."""

import json

import httpx
import pytest
import respx
from httpx import Response

from libris_common import SourceTimeoutError, TransientSourceError
from libris_extraction.openrouter_client import DEFAULT_URL, OpenRouterClient

pytestmark = pytest.mark.unit


def _reply(content):
    return Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


class TestOpenRouterClient:
    """Tests for OpenRouterClient.complete()."""

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="API key"):
            OpenRouterClient(api_key="")

    @respx.mock
    async def test_request_shape(self):
        """Model, single user message, limits and bearer auth are sent."""
        route = respx.post(DEFAULT_URL).mock(return_value=_reply('{"genres": ["Law"]}'))

        async with OpenRouterClient(api_key="sk-test", model="m1") as client:
            text = await client.complete("prompt text", max_tokens=150, temperature=0.3)

        assert text == '{"genres": ["Law"]}'
        request = route.calls.last.request
        body = json.loads(request.content)
        assert body == {
            "model": "m1",
            "messages": [{"role": "user", "content": "prompt text"}],
            "max_tokens": 150,
            "temperature": 0.3,
        }
        assert request.headers["authorization"] == "Bearer sk-test"

    @respx.mock
    async def test_error_status(self):
        respx.post(DEFAULT_URL).mock(return_value=Response(502, text="bad gateway"))

        async with OpenRouterClient(api_key="k") as client:
            with pytest.raises(TransientSourceError, match="Completion API error: 502"):
                await client.complete("p")

    @respx.mock
    async def test_timeout(self):
        respx.post(DEFAULT_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        async with OpenRouterClient(api_key="k", timeout=15) as client:
            with pytest.raises(SourceTimeoutError, match="timed out"):
                await client.complete("p")

    @respx.mock
    async def test_invalid_structure(self):
        respx.post(DEFAULT_URL).mock(return_value=Response(200, json={"choices": []}))

        async with OpenRouterClient(api_key="k") as client:
            with pytest.raises(TransientSourceError, match="Invalid completion response"):
                await client.complete("p")

    async def test_shared_client_not_closed(self):
        """A caller-supplied HTTP client stays open after close()."""
        http = httpx.AsyncClient()
        client = OpenRouterClient(api_key="k", client=http)

        await client.close()

        assert not http.is_closed
        await http.aclose()
