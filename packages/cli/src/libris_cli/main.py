"""Libris CLI - Main entry point.

Provides the ``libris`` command-line interface.
Sub-commands are grouped by domain: ingest, jobs, queue and search.

Usage:
    libris ingest run --dry-run
    libris jobs create https://example.org/library --max-books 20
    libris queue add meditations00marc --priority 5
    libris search books "meditations" --limit 10
"""

from typing import Optional

import typer

from libris_cli.commands.ingest import app as ingest_app
from libris_cli.commands.jobs import app as jobs_app
from libris_cli.commands.queue import app as queue_app
from libris_cli.commands.search import app as search_app
from libris_common import configure_logging, get_settings

# ---------------------------------------------------------------------------
# Root Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="libris",
    help="Ingest public-domain books, run PDF extraction jobs and manage the ingestion queue.",
    add_completion=False,
)

# Register sub-apps
app.add_typer(ingest_app, name="ingest")
app.add_typer(jobs_app, name="jobs")
app.add_typer(queue_app, name="queue")
app.add_typer(search_app, name="search")


@app.callback()
def setup(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Configure logging from settings before any command runs."""
    settings = get_settings()
    configure_logging(level=(log_level or settings.log_level).upper(), fmt=settings.log_format)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
