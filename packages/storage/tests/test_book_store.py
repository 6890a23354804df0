"""Tests for BookStore - catalog lookups and inserts.

Tests cover:
- exists_by_identifier: blank ids, found/not found
- existing_identifiers: single batched query, empty input
- insert: required fields, defaults, duplicate handling
- Error propagation as PersistenceError
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import asyncpg
import pytest

from libris_common import DuplicateRecordError, PersistenceError
from libris_contracts import BookRecord
from libris_storage.book_store import DEFAULT_COVER_URL, BookStore

pytestmark = pytest.mark.unit


def _make_mock_pool(conn_mock):
    """Create a mock connection pool wrapping the given connection mock."""
    pool = MagicMock()
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn_mock)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx
    return pool


def _book(**overrides) -> BookRecord:
    data = {
        "title": "Meditations",
        "author": "Marcus Aurelius",
        "source_identifier": "meditations00marc",
        "pdf_url": "https://storage/books/internet_archive/meditations00marc.pdf",
    }
    data.update(overrides)
    return BookRecord(**data)


class TestExistsByIdentifier:
    """Tests for BookStore.exists_by_identifier()."""

    @pytest.mark.parametrize("identifier", [None, "", "   "])
    async def test_blank_identifier_is_false(self, identifier):
        """Blank identifiers never hit the database."""
        conn = AsyncMock()
        store = BookStore(_make_mock_pool(conn))

        assert await store.exists_by_identifier(identifier) is False
        conn.fetchval.assert_not_called()

    async def test_found(self):
        """Existing identifier returns True."""
        conn = AsyncMock()
        conn.fetchval = AsyncMock(return_value=True)
        store = BookStore(_make_mock_pool(conn))

        assert await store.exists_by_identifier("abc") is True
        assert conn.fetchval.call_args[0][1] == "abc"

    async def test_db_error_wrapped(self):
        """Driver errors become PersistenceError."""
        conn = AsyncMock()
        conn.fetchval = AsyncMock(side_effect=RuntimeError("connection lost"))
        store = BookStore(_make_mock_pool(conn))

        with pytest.raises(PersistenceError, match="connection lost"):
            await store.exists_by_identifier("abc")


class TestExistingIdentifiers:
    """Tests for BookStore.existing_identifiers()."""

    async def test_single_batched_query(self):
        """All identifiers are looked up with one ANY() query."""
        conn = AsyncMock()
        conn.fetch = AsyncMock(return_value=[{"source_identifier": "b"}])
        store = BookStore(_make_mock_pool(conn))

        result = await store.existing_identifiers(["a", "b", "c"])

        assert result == {"b"}
        assert conn.fetch.call_count == 1
        sql, ids = conn.fetch.call_args[0]
        assert "ANY" in sql
        assert ids == ["a", "b", "c"]

    async def test_empty_input_skips_query(self):
        """Empty or blank-only input returns an empty set without querying."""
        conn = AsyncMock()
        store = BookStore(_make_mock_pool(conn))

        assert await store.existing_identifiers(["", ""]) == set()
        conn.fetch.assert_not_called()


class TestInsert:
    """Tests for BookStore.insert()."""

    async def test_insert_returns_id(self):
        """insert returns the new row id and applies the default cover."""
        book_id = uuid4()
        conn = AsyncMock()
        conn.fetchval = AsyncMock(return_value=book_id)
        store = BookStore(_make_mock_pool(conn))

        result = await store.insert(_book())

        assert result == book_id
        args = conn.fetchval.call_args[0]
        assert args[1] == "Meditations"
        assert args[6] == DEFAULT_COVER_URL

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"title": "  "}, "title"),
            ({"author": " "}, "author"),
            ({"pdf_url": None}, "pdf_url"),
        ],
    )
    async def test_required_fields(self, overrides, message):
        """Missing required fields are rejected before any query."""
        conn = AsyncMock()
        store = BookStore(_make_mock_pool(conn))

        with pytest.raises(PersistenceError, match=message):
            await store.insert(_book(**overrides))
        conn.fetchval.assert_not_called()

    async def test_duplicate_raises_duplicate_error(self):
        """Unique violations become DuplicateRecordError."""
        conn = AsyncMock()
        conn.fetchval = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate key"))
        store = BookStore(_make_mock_pool(conn))

        with pytest.raises(DuplicateRecordError):
            await store.insert(_book())


class TestFindCategory:
    """Tests for BookStore.find_category_id()."""

    async def test_none_name(self):
        """No name means no lookup."""
        conn = AsyncMock()
        store = BookStore(_make_mock_pool(conn))

        assert await store.find_category_id(None) is None
        conn.fetchval.assert_not_called()

    async def test_lookup(self):
        """Category id is returned from the lookup."""
        category_id = uuid4()
        conn = AsyncMock()
        conn.fetchval = AsyncMock(return_value=category_id)
        store = BookStore(_make_mock_pool(conn))

        assert await store.find_category_id("Philosophy") == category_id
