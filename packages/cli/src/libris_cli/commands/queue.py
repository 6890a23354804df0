"""Manual ingestion queue commands for libris.

Commands:
    add      Queue a specific book
    process  Ingest pending entries
    status   Show queue entries and counts
    clear    Delete finished entries
    retry    Put failed entries back to pending
"""

import asyncio
from typing import Optional

import typer

from libris_cli._shared import OutputFormat, echo_json, fail
from libris_common import LibrisError
from libris_contracts import QueueStatus
from libris_pipeline import clear_queue, enqueue, get_queue_status, open_context, process_queue, retry_failed

app = typer.Typer(help="Manual ingestion queue")


@app.command()
def add(
    identifier: str = typer.Argument(..., help="Source identifier"),
    source: str = typer.Option("internet_archive", "--source", "-s", help="Catalog source"),
    title: Optional[str] = typer.Option(None, "--title", help="Title (required for non-IA sources)"),
    author: Optional[str] = typer.Option(None, "--author", help="Author"),
    year: Optional[int] = typer.Option(None, "--year", help="Publication year"),
    pdf_url: Optional[str] = typer.Option(None, "--pdf-url", help="PDF location for non-IA sources"),
    priority: int = typer.Option(0, "--priority", "-p", help="Higher is processed first"),
    by: Optional[str] = typer.Option(None, "--by", help="Who queued the book"),
):
    """Queue a book for ingestion.

    Examples:

        libris queue add meditations00marc --priority 5

        libris queue add notes-1 --source manual --title "Lecture Notes" --pdf-url https://example.org/n.pdf
    """
    metadata = {
        key: value
        for key, value in {"title": title, "author": author, "year": year, "pdf_url": pdf_url}.items()
        if value is not None
    }

    async def _add():
        async with open_context() as ctx:
            return await enqueue(ctx, identifier, source, metadata, priority, by)

    try:
        result = asyncio.run(_add())
    except LibrisError as e:
        fail(e)

    if not result.success:
        fail(result.reason)
    typer.echo(f"Queued {identifier} ({result.queue_id})")


@app.command()
def process(
    limit: int = typer.Option(10, "--limit", "-l", help="Entries to process (1-50)"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Ingest pending entries in priority order."""

    async def _process():
        async with open_context() as ctx:
            return await process_queue(ctx, limit)

    try:
        summary = asyncio.run(_process())
    except LibrisError as e:
        fail(e)

    if format == OutputFormat.json:
        echo_json(summary)
        return

    typer.echo(f"Processed {summary.processed}: {summary.succeeded} succeeded, {summary.failed} failed")
    for result in summary.results:
        mark = "ok" if result.success else "!!"
        detail = f" ({result.reason})" if result.reason else ""
        typer.echo(f"  {mark} {result.identifier}{detail}")


@app.command()
def status(
    status_filter: Optional[QueueStatus] = typer.Option(None, "--status", help="Only this status"),
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum entries (1-100)"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Show queue entries and counts by status."""

    async def _status():
        async with open_context() as ctx:
            return await get_queue_status(ctx, status_filter, limit)

    try:
        info = asyncio.run(_status())
    except LibrisError as e:
        fail(e)

    if format == OutputFormat.json:
        echo_json(info)
        return

    stats = info["stats"]
    typer.echo(
        "Queue: "
        + ", ".join(f"{name} {stats.get(name, 0)}" for name in ("pending", "processing", "completed", "failed"))
        + f" (total {stats.get('total', 0)})"
    )
    for entry in info["entries"]:
        line = f"  [{entry.status.value:10}] p{entry.priority:<3} {entry.source.value:17} {entry.identifier}"
        if entry.error_message:
            line += f"  ({entry.error_message})"
        typer.echo(line)


@app.command()
def clear(
    status_filter: str = typer.Option("completed", "--status", help="completed, failed or all"),
    older_than_days: int = typer.Option(7, "--older-than-days", help="Age threshold"),
):
    """Delete finished entries; pending and processing entries are never cleared."""

    async def _clear():
        async with open_context() as ctx:
            return await clear_queue(ctx, status_filter, older_than_days)

    try:
        deleted = asyncio.run(_clear())
    except (LibrisError, ValueError) as e:
        fail(e)
    typer.echo(f"Deleted {deleted} entries")


@app.command()
def retry(max_retries: int = typer.Option(3, "--max-retries", help="Retry limit per entry")):
    """Put failed entries back to pending."""

    async def _retry():
        async with open_context() as ctx:
            return await retry_failed(ctx, max_retries)

    try:
        reset = asyncio.run(_retry())
    except LibrisError as e:
        fail(e)
    typer.echo(f"Reset {reset} failed entries to pending")
