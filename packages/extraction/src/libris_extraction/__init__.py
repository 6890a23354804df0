"""Libris Extraction - AI genre classification and catalog descriptions.

This package provides:
- CompletionClient: Abstract base for chat-completion backends
- OpenRouterClient: OpenRouter API over httpx
- MockCompletionClient: Deterministic keyword backend (mock mode)
- GenreClassifier: Taxonomy-constrained classification with retry
- DescriptionGenerator: Best-effort descriptions and synopses
- get_completion_client: Factory function for backend selection
"""

from typing import Optional

from libris_common import Settings

from libris_extraction.base_client import CompletionClient
from libris_extraction.description_generator import DescriptionGenerator
from libris_extraction.genre_classifier import GenreClassifier, parse_classification
from libris_extraction.mock_client import MockCompletionClient
from libris_extraction.openrouter_client import OpenRouterClient
from libris_extraction.taxonomy import (
    PRIMARY_GENRES,
    SUB_GENRES,
    is_valid_genre,
    is_valid_subgenre,
    validate_genre,
    validate_genre_names,
    validate_genres,
    validate_subgenre,
)


def get_completion_client(
    backend: str = "openrouter",
    model: Optional[str] = None,
    **kwargs,
) -> CompletionClient:
    """Factory function to create a completion client.

    Args:
        backend: Backend type ("openrouter" or "mock")
        model: Model identifier (default depends on backend)
        **kwargs: Additional arguments passed to the client constructor

    Returns:
        CompletionClient instance for the specified backend

    Raises:
        ValueError: If backend is unknown

    Example:
        >>> client = get_completion_client("openrouter", api_key=key)
        >>> client = get_completion_client("mock")
    """
    if backend == "openrouter":
        if model:
            kwargs["model"] = model
        return OpenRouterClient(**kwargs)
    elif backend == "mock":
        return MockCompletionClient()
    else:
        raise ValueError(f"Unknown backend: {backend}. Supported: 'openrouter', 'mock'")


def create_genre_classifier(settings: Settings, http_client=None) -> GenreClassifier:
    """Classifier configured from settings.

    Disabled when classification is switched off or, outside mock mode,
    when no API key is configured.
    """
    client: Optional[CompletionClient] = None
    if settings.enable_genre_classification:
        if settings.classifier_mock_mode:
            client = get_completion_client("mock")
        elif settings.openrouter_api_key:
            client = get_completion_client(
                "openrouter",
                model=settings.classifier_model,
                api_key=settings.openrouter_api_key,
                url=settings.openrouter_url,
                client=http_client,
            )
    return GenreClassifier(client, enabled=client is not None)


def create_description_generator(settings: Settings, http_client=None) -> DescriptionGenerator:
    """Description generator configured from settings (inactive without a key)."""
    client: Optional[CompletionClient] = None
    if settings.classifier_mock_mode:
        client = get_completion_client("mock")
    elif settings.openrouter_api_key:
        client = get_completion_client(
            "openrouter",
            model=settings.description_model,
            api_key=settings.openrouter_api_key,
            url=settings.openrouter_url,
            client=http_client,
        )
    return DescriptionGenerator(client)


__all__ = [
    # Base class
    "CompletionClient",
    # Clients
    "OpenRouterClient",
    "MockCompletionClient",
    # Classification
    "GenreClassifier",
    "parse_classification",
    "DescriptionGenerator",
    # Taxonomy
    "PRIMARY_GENRES",
    "SUB_GENRES",
    "validate_genre",
    "validate_genres",
    "validate_subgenre",
    "validate_genre_names",
    "is_valid_genre",
    "is_valid_subgenre",
    # Factories
    "get_completion_client",
    "create_genre_classifier",
    "create_description_generator",
]
