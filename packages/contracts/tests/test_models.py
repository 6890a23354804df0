"""Tests for libris contract models."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from libris_contracts import (
    Candidate,
    CatalogSource,
    Classification,
    ExtractionJob,
    IngestionOptions,
    IngestionResult,
    IngestionState,
    JobStatus,
    RunError,
    RunStatus,
)

pytestmark = pytest.mark.unit


class TestCandidate:
    """Tests for Candidate."""

    def test_minimal_candidate(self):
        """Test only identifier, title and source are required."""
        candidate = Candidate(identifier="meditations", title="Meditations", source="internet_archive")

        assert candidate.source == CatalogSource.INTERNET_ARCHIVE
        assert candidate.genres == []
        assert candidate.completeness_score == 0

    def test_completeness_bounded(self):
        """Test completeness score must be 0-100."""
        with pytest.raises(ValidationError):
            Candidate(identifier="x", title="X", source="manual", completeness_score=120)


class TestClassification:
    """Tests for Classification bounds."""

    def test_requires_one_genre(self):
        """Test an empty genre list is invalid."""
        with pytest.raises(ValidationError):
            Classification(genres=[])

    def test_at_most_three_genres(self):
        """Test more than three genres is invalid."""
        with pytest.raises(ValidationError):
            Classification(genres=["History", "Law", "Poetry", "Drama"])


class TestIngestionModels:
    """Tests for scheduled ingestion models."""

    def test_state_defaults(self):
        """Test a fresh state starts on page 1 and idle."""
        state = IngestionState(source="internet_archive")

        assert state.last_page == 1
        assert state.last_run_status == RunStatus.IDLE
        assert state.is_paused is False

    def test_options_defaults(self):
        """Test run option defaults."""
        options = IngestionOptions()

        assert options.batch_size == 30
        assert options.delay_between_books_ms == 1000
        assert options.time_budget_seconds == 55.0
        assert options.dry_run is False

    def test_result_serializes_errors(self):
        """Test result errors keep identifier and timestamp."""
        now = datetime.now(timezone.utc)
        result = IngestionResult(errors=[RunError(identifier="job", error="boom", timestamp=now)])

        dumped = result.model_dump(mode="json")
        assert dumped["errors"][0]["identifier"] == "job"


class TestJobStatus:
    """Tests for JobStatus."""

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (JobStatus.PENDING, False),
            (JobStatus.RUNNING, False),
            (JobStatus.PAUSED, False),
            (JobStatus.COMPLETED, True),
            (JobStatus.FAILED, True),
            (JobStatus.STOPPED, True),
        ],
    )
    def test_terminal_states(self, status, terminal):
        """Test completed, failed and stopped are terminal."""
        assert status.is_terminal is terminal

    def test_job_defaults(self):
        """Test a new job is pending with zero counters."""
        job = ExtractionJob(id=uuid4(), source_url="https://example.com/books")

        assert job.status == JobStatus.PENDING
        assert job.books_extracted == 0
        assert job.started_at is None
