"""Tests for the CompletionClient abstract base class."""

from abc import ABC

import pytest

from libris_extraction.base_client import CompletionClient

pytestmark = pytest.mark.unit


class ConcreteClient(CompletionClient):
    """Minimal concrete implementation for testing."""

    def __init__(self):
        self.closed = False

    @property
    def model_name(self) -> str:
        return "test:model"

    async def complete(self, prompt: str, max_tokens: int = 150, temperature: float = 0.3) -> str:
        return prompt.upper()

    async def close(self) -> None:
        self.closed = True


class TestCompletionClientInterface:
    """Tests for the abstract interface."""

    def test_is_abstract_base_class(self):
        """CompletionClient is an ABC and cannot be instantiated."""
        assert issubclass(CompletionClient, ABC)

        with pytest.raises(TypeError, match="abstract"):
            CompletionClient()

    def test_abstract_methods_defined(self):
        assert CompletionClient.__abstractmethods__ == {"complete", "close", "model_name"}

    async def test_async_context_manager_closes(self):
        """Leaving the context closes the client."""
        async with ConcreteClient() as client:
            assert await client.complete("hi") == "HI"

        assert client.closed is True
