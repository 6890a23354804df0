"""Tests for the error hierarchy."""

import pytest

from libris_common import (
    ClassificationFailure,
    CrawlAbortedError,
    CrawlError,
    DuplicateRecordError,
    LibrisError,
    PersistenceError,
    RateLimitedError,
    RunAlreadyInProgressError,
    SourceTimeoutError,
    StateTransitionError,
    TransientSourceError,
    configure_logging,
    get_logger,
)

pytestmark = pytest.mark.unit


class TestHierarchy:
    """Errors share a common base so callers can catch broadly."""

    @pytest.mark.parametrize(
        "error_cls",
        [TransientSourceError, PersistenceError, ClassificationFailure, CrawlError],
    )
    def test_subclasses_base(self, error_cls):
        """Test every family derives from LibrisError."""
        assert issubclass(error_cls, LibrisError)

    def test_transient_family(self):
        """Test rate limit and timeout are transient source errors."""
        assert issubclass(RateLimitedError, TransientSourceError)
        assert issubclass(SourceTimeoutError, TransientSourceError)

    def test_duplicate_is_persistence(self):
        """Test unique violations are a persistence error."""
        assert issubclass(DuplicateRecordError, PersistenceError)

    def test_aborted_is_crawl_error(self):
        """Test cancellation is a distinct crawl error."""
        assert issubclass(CrawlAbortedError, CrawlError)

    def test_run_in_progress_message(self):
        """Test ingestion claim conflicts keep their message."""
        err = RunAlreadyInProgressError("internet_archive is running")
        assert "internet_archive" in str(err)


class TestStateTransitionError:
    """Tests for StateTransitionError."""

    def test_carries_statuses(self):
        """Test the rejected pair is kept on the error."""
        err = StateTransitionError("job-1", "completed", "running")

        assert err.job_id == "job-1"
        assert err.from_status == "completed"
        assert err.to_status == "running"
        assert str(err) == "Invalid status transition from completed to running"


class TestRateLimitedError:
    """Tests for RateLimitedError."""

    def test_retry_after_optional(self):
        """Test retry_after defaults to None."""
        assert RateLimitedError("slow down").retry_after is None
        assert RateLimitedError("slow down", retry_after=30).retry_after == 30


class TestLogging:
    """Tests for logging helpers."""

    @pytest.mark.parametrize("fmt", ["json", "console"])
    def test_configure_and_log(self, fmt):
        """Test both renderers can be configured and used."""
        configure_logging("DEBUG", fmt)
        logger = get_logger("libris.test")

        logger.info("test_event", key="value")
