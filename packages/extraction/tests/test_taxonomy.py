"""Tests for the genre taxonomy."""

import pytest

from libris_extraction.taxonomy import (
    PRIMARY_GENRES,
    SUB_GENRES,
    is_valid_genre,
    is_valid_subgenre,
    validate_genre_names,
    validate_genres,
)

pytestmark = pytest.mark.unit


class TestTaxonomy:
    """Tests for the fixed vocabulary."""

    def test_sizes(self):
        assert len(PRIMARY_GENRES) == 27
        assert len(SUB_GENRES) == 9
        assert len(set(g.lower() for g in PRIMARY_GENRES)) == 27

    @pytest.mark.parametrize("genre", ["Philosophy", "philosophy", "  MILITARY & STRATEGY "])
    def test_valid_genre_case_insensitive(self, genre):
        assert is_valid_genre(genre)

    @pytest.mark.parametrize("genre", ["Cooking", "", None, 42])
    def test_invalid_genre(self, genre):
        assert not is_valid_genre(genre)

    def test_subgenre(self):
        assert is_valid_subgenre("early modern")
        assert not is_valid_subgenre("Philosophy")


class TestValidateGenres:
    """Tests for validate_genres()."""

    def test_drops_invalid_individually(self):
        assert validate_genres(["Cooking", "history", "Gardening"]) == ["History"]

    def test_deduplicates_and_caps(self):
        result = validate_genres(["Law", "law", "Ethics", "Poetry", "Drama"])
        assert result == ["Law", "Ethics", "Poetry"]

    def test_not_a_list(self):
        assert validate_genres("Philosophy") == []


class TestValidateGenreNames:
    """Tests for validate_genre_names() used by filter configuration."""

    def test_unknown_dropped_without_cap(self):
        names = ["philosophy", "Cooking", "Law", "Ethics", "Poetry", "LAW"]
        assert validate_genre_names(names) == ["Philosophy", "Law", "Ethics", "Poetry"]
