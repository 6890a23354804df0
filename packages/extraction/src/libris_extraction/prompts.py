"""Prompt templates for classification and catalog descriptions."""

from typing import Optional

from libris_extraction.taxonomy import PRIMARY_GENRES, SUB_GENRES

MAX_DESCRIPTION_CHARS = 500
CLASSIFICATION_MARKER = "ALLOWED PRIMARY GENRES"


def _truncate(text: Optional[str], limit: int = MAX_DESCRIPTION_CHARS) -> str:
    return (text or "")[:limit]


def build_classification_prompt(
    title: Optional[str],
    author: Optional[str] = None,
    year: Optional[int] = None,
    description: Optional[str] = None,
    source: str = "Internet Archive",
) -> str:
    """Taxonomy-constrained classification prompt asking for JSON only."""
    return f"""You are a librarian classifying public-domain books. Analyze the book and assign genres.

BOOK INFORMATION:
Title: {title or "Unknown"}
Author: {author or "Unknown"}
Year: {year or "Unknown"}
Description: {_truncate(description) or "No description available"}
Source: {source}

{CLASSIFICATION_MARKER} (choose 1-3):
{", ".join(PRIMARY_GENRES)}

ALLOWED SUB-GENRES (choose 0-1):
{", ".join(SUB_GENRES)}

RULES:
1. Choose 1-3 primary genres that best describe the book
2. Optionally choose 1 sub-genre if applicable
3. Use ONLY genres from the lists above - do not invent new ones
4. Respond with ONLY valid JSON, no explanations or extra text

RESPONSE FORMAT (JSON only):
{{"genres": ["Genre1", "Genre2"], "subgenre": "SubGenre"}}

If no sub-genre applies, use: {{"genres": ["Genre1"], "subgenre": null}}"""


def build_description_prompt(
    title: Optional[str],
    author: Optional[str] = None,
    year: Optional[int] = None,
    description: Optional[str] = None,
) -> str:
    """Prompt for a 150-200 word catalog description."""
    existing = _truncate(description)
    source_line = f"Source Description: {existing}\n" if existing else ""
    reference_line = (
        "You may use the source description as reference but expand and improve it.\n"
        if existing
        else ""
    )
    return f"""You are an expert librarian writing book descriptions for a digital library catalog.

Book Information:
Title: {title or "Unknown"}
Author: {author or "Unknown"}
Year: {year or "Unknown"}
{source_line}
TASK: Write a professional, engaging book description (150-200 words) covering its subject
matter and themes, the audience it serves, and its historical or cultural context.

The description should be informative, accurate, and suitable for a library catalog.
{reference_line}
Respond with ONLY the description text, no JSON, no formatting, just the paragraph."""


def build_synopsis_prompt(title: Optional[str], author: Optional[str], description: str) -> str:
    """Prompt for a two-sentence synopsis of an extracted book."""
    return f"""Summarize this book for a library card in at most two sentences.

Title: {title or "Unknown"}
Author: {author or "Unknown"}
Description: {_truncate(description)}

Respond with ONLY the synopsis text."""
