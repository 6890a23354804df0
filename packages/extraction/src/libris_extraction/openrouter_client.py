"""OpenRouter chat-completions client over httpx."""

from typing import Optional

import httpx
from libris_common import SourceTimeoutError, TransientSourceError, get_logger

from libris_extraction.base_client import CompletionClient

logger = get_logger(__name__)

DEFAULT_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "meta-llama/llama-3.2-3b-instruct:free"
DEFAULT_TIMEOUT_SECONDS = 15.0
APP_REFERER = "https://libris.local"
APP_TITLE = "Libris Digital Library"


class OpenRouterClient(CompletionClient):
    """Single-message chat completions against OpenRouter.

    Example:
        >>> async with OpenRouterClient(api_key=settings.openrouter_api_key) as client:
        ...     text = await client.complete("Classify this book ...")
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        url: str = DEFAULT_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenRouter API key
            model: Model identifier
            url: Chat completions endpoint
            timeout: Per-request timeout in seconds
            client: Shared HTTP client (one is created and owned otherwise)

        Raises:
            ValueError: If no API key is given
        """
        if not api_key:
            raise ValueError("OpenRouter API key is required")
        self._api_key = api_key
        self._model = model
        self.url = url
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    @property
    def model_name(self) -> str:
        return self._model

    async def complete(self, prompt: str, max_tokens: int = 150, temperature: float = 0.3) -> str:
        """Send ``prompt`` as a single user message.

        Raises:
            SourceTimeoutError: If the request times out
            TransientSourceError: On transport errors, non-2xx status or an
                unexpected response shape
        """
        try:
            response = await self._client.post(
                self.url,
                json={
                    "model": self._model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                },
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "HTTP-Referer": APP_REFERER,
                    "X-Title": APP_TITLE,
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(f"Completion request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise TransientSourceError(f"Completion request failed: {e}") from e

        if not response.is_success:
            logger.warning(
                "completion_api_error",
                model=self._model,
                status=response.status_code,
                body=response.text[:200],
            )
            raise TransientSourceError(f"Completion API error: {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise TransientSourceError("Invalid completion response structure") from e

        if not isinstance(content, str):
            raise TransientSourceError("Completion response has no text content")
        return content

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
