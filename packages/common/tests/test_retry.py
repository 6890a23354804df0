"""Tests for the tenacity-based retry decorator."""

import pytest

from libris_common import retry_on_exception

pytestmark = pytest.mark.unit


class TestRetryOnException:
    """Tests for retry_on_exception."""

    def test_retries_until_success(self):
        """Test transient failures are retried."""
        calls = []

        @retry_on_exception((ConnectionError,), max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("down")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_reraises_after_exhaustion(self):
        """Test the last exception propagates."""

        @retry_on_exception((ConnectionError,), max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)
        def always_down():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            always_down()

    def test_other_exceptions_not_retried(self):
        """Test unlisted exceptions fail immediately."""
        calls = []

        @retry_on_exception((ConnectionError,), max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)
        def broken():
            calls.append(1)
            raise ValueError("bug")

        with pytest.raises(ValueError):
            broken()
        assert len(calls) == 1

    async def test_async_callable(self):
        """Test coroutines are retried too."""
        calls = []

        @retry_on_exception((TimeoutError,), max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)
        async def slow():
            calls.append(1)
            if len(calls) == 1:
                raise TimeoutError()
            return 42

        assert await slow() == 42
        assert len(calls) == 2
