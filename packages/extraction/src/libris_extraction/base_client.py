"""Abstract base class for chat-completion backends."""

from abc import ABC, abstractmethod


class CompletionClient(ABC):
    """Backend that turns a single user prompt into response text.

    Implementations raise ``TransientSourceError`` (or a subclass) on
    transport, status or response-shape failures. Callers decide whether a
    failure is fatal; the classifier and description generator never are.
    """

    @abstractmethod
    async def complete(self, prompt: str, max_tokens: int = 150, temperature: float = 0.3) -> str:
        """Return the model's reply to ``prompt``."""

    @abstractmethod
    async def close(self) -> None:
        """Release any resources held by the client."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identifier of the model answering requests."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
