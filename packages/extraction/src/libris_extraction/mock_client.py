"""Deterministic completion backend for mock mode and tests.

Classification prompts are answered from title keywords; any other prompt
gets a fixed descriptive paragraph. No network access.
"""

import json
import re

from libris_extraction.base_client import CompletionClient
from libris_extraction.prompts import CLASSIFICATION_MARKER

_TITLE_LINE = re.compile(r"^Title:\s*(.*)$", re.MULTILINE)

# (keywords, response) pairs checked in order; first match wins
KEYWORD_RESPONSES: list[tuple[tuple[str, ...], dict]] = [
    (("philosoph", "plato", "aristotle"), {"genres": ["Philosophy", "Ethics"], "subgenre": "Ancient"}),
    (("bible", "religion", "god", "church"), {"genres": ["Religion", "Theology"], "subgenre": "Canonical Text"}),
    (("history", "war", "empire"), {"genres": ["History", "Biography"], "subgenre": "Medieval"}),
    (("science", "math", "physics"), {"genres": ["Science", "Mathematics"], "subgenre": None}),
    (("law", "legal", "court"), {"genres": ["Law", "Politics"], "subgenre": "Legal Code"}),
    (("poem", "poetry", "verse"), {"genres": ["Literature", "Poetry"], "subgenre": "Classical"}),
]
DEFAULT_RESPONSE = {"genres": ["Literature"], "subgenre": None}


def mock_classification(title: str) -> dict:
    """Keyword classification of a title."""
    lowered = title.lower()
    for keywords, response in KEYWORD_RESPONSES:
        if any(k in lowered for k in keywords):
            return response
    return DEFAULT_RESPONSE


class MockCompletionClient(CompletionClient):
    """Completion client that never leaves the process."""

    def __init__(self) -> None:
        self.calls = 0

    @property
    def model_name(self) -> str:
        return "mock"

    async def complete(self, prompt: str, max_tokens: int = 150, temperature: float = 0.3) -> str:
        self.calls += 1
        match = _TITLE_LINE.search(prompt)
        title = match.group(1).strip() if match else ""

        if CLASSIFICATION_MARKER in prompt:
            return json.dumps(mock_classification(title))
        return (
            f"{title or 'This work'} is a public-domain text preserved for readers, students "
            "and researchers. This catalog entry was generated offline."
        )

    async def close(self) -> None:
        pass
