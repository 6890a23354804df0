"""Scheduled ingestion commands for libris.

Commands:
    run     Run one ingestion pass (honors the time budget)
    state   Show the per-source cursor and last run
    history Show recent runs and filter outcomes
    reset   Reset the cursor to page 1
    pause   Pause scheduled ingestion for a source
    resume  Resume scheduled ingestion for a source
"""

import asyncio
from typing import Optional

import typer

from libris_cli._shared import OutputFormat, echo_json, fail
from libris_common import LibrisError, get_settings
from libris_contracts import IngestionOptions, IngestionResult, IngestionState, RunStatus
from libris_pipeline import StateManager, open_context, run_ingestion_job

app = typer.Typer(help="Scheduled catalog ingestion")

SOURCE_OPTION = typer.Option("internet_archive", "--source", help="Catalog source")


def _print_result(result: IngestionResult) -> None:
    mode = " (dry run)" if result.dry_run else ""
    typer.echo(f"Ingestion {result.status.value}{mode} in {result.duration_seconds:.1f}s")
    typer.echo(f"  Processed: {result.processed}")
    typer.echo(f"  Added:     {result.added}")
    typer.echo(f"  Skipped:   {result.skipped}")
    typer.echo(f"  Filtered:  {result.filtered}")
    typer.echo(f"  Failed:    {result.failed}")
    typer.echo(f"  Next page: {result.next_page}")
    if result.timed_out:
        typer.echo("  Time budget reached; progress saved")
    if result.note:
        typer.echo(f"  Note: {result.note}")
    for error in result.errors[:10]:
        typer.echo(f"  ! {error.identifier}: {error.error}")
    if len(result.errors) > 10:
        typer.echo(f"  ... {len(result.errors) - 10} more errors")


def _print_state(state: IngestionState) -> None:
    typer.echo(f"Source:         {state.source}")
    typer.echo(f"Next page:      {state.last_page}")
    typer.echo(f"Total ingested: {state.total_ingested}")
    typer.echo(f"Last run:       {state.last_run_at or 'never'} ({state.last_run_status.value})")
    typer.echo(
        f"Last counts:    added {state.last_run_added}, "
        f"skipped {state.last_run_skipped}, failed {state.last_run_failed}"
    )
    if state.is_paused:
        typer.echo(f"Paused:         yes (by {state.paused_by or 'unknown'} at {state.paused_at})")
    else:
        typer.echo("Paused:         no")


@app.command()
def run(
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Books per page"),
    max_books: Optional[int] = typer.Option(None, "--max-books", "-m", help="Stop after this many books"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Fetch and dedup only; change nothing"),
    start_page: Optional[int] = typer.Option(None, "--start-page", help="Override the stored page"),
    delay_ms: Optional[int] = typer.Option(None, "--delay-ms", help="Delay between books"),
    time_budget: Optional[float] = typer.Option(None, "--time-budget", help="Seconds before stopping"),
    source: str = SOURCE_OPTION,
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Run one scheduled ingestion pass.

    Examples:

        libris ingest run --dry-run

        libris ingest run --batch-size 10 --max-books 5
    """
    settings = get_settings()
    try:
        options = IngestionOptions(
            batch_size=batch_size or settings.ingest_batch_size,
            max_books=max_books,
            dry_run=dry_run,
            start_page=start_page,
            delay_between_books_ms=(
                settings.ingest_delay_between_books_ms if delay_ms is None else delay_ms
            ),
            time_budget_seconds=time_budget or settings.ingest_time_budget_seconds,
            source=source,
        )
    except ValueError as e:
        fail(e)

    async def _run():
        async with open_context(settings) as ctx:
            return await run_ingestion_job(ctx, options)

    try:
        result = asyncio.run(_run())
    except (LibrisError, ValueError) as e:
        fail(e)

    if format == OutputFormat.json:
        echo_json(result)
    else:
        _print_result(result)

    if result.status == RunStatus.FAILED:
        raise typer.Exit(1)


@app.command()
def state(
    source: str = SOURCE_OPTION,
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Show the ingestion cursor and last run for a source."""

    async def _state():
        async with open_context() as ctx:
            return await StateManager(ctx.states).get_state(source)

    try:
        current = asyncio.run(_state())
    except LibrisError as e:
        fail(e)

    if format == OutputFormat.json:
        echo_json(current)
    else:
        _print_state(current)


@app.command()
def reset(
    source: str = SOURCE_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Reset the ingestion cursor to page 1."""
    if not yes:
        typer.confirm(f"Reset the ingestion cursor for {source}?", abort=True)

    async def _reset():
        async with open_context() as ctx:
            return await StateManager(ctx.states).reset_state(source)

    try:
        asyncio.run(_reset())
    except LibrisError as e:
        fail(e)
    typer.echo(f"Cursor for {source} reset to page 1")


@app.command()
def pause(
    source: str = SOURCE_OPTION,
    by: Optional[str] = typer.Option(None, "--by", help="Who paused ingestion"),
):
    """Pause scheduled ingestion for a source."""

    async def _pause():
        async with open_context() as ctx:
            return await StateManager(ctx.states).pause(source, by)

    try:
        asyncio.run(_pause())
    except LibrisError as e:
        fail(e)
    typer.echo(f"Ingestion paused for {source}")


@app.command()
def resume(source: str = SOURCE_OPTION):
    """Resume scheduled ingestion for a source."""

    async def _resume():
        async with open_context() as ctx:
            return await StateManager(ctx.states).resume(source)

    try:
        asyncio.run(_resume())
    except LibrisError as e:
        fail(e)
    typer.echo(f"Ingestion resumed for {source}")


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=100, help="Runs to show"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Show recent ingestion runs and filter outcome counts."""

    async def _history():
        async with open_context() as ctx:
            runs = await ctx.ingestion_logs.recent_runs(limit)
            stats = await ctx.ingestion_logs.filter_stats()
            return runs, stats

    try:
        runs, stats = asyncio.run(_history())
    except LibrisError as e:
        fail(e)

    if format == OutputFormat.json:
        echo_json({"runs": runs, "filter_stats": stats})
        return

    if not runs:
        typer.echo("No ingestion runs recorded")
    for run_row in runs:
        mode = " dry-run" if run_row.get("dry_run") else ""
        typer.echo(
            f"{run_row['started_at']}  {run_row['source']:<17} {run_row['status']:<9}{mode}  "
            f"processed {run_row['books_processed']}, added {run_row['books_added']}, "
            f"skipped {run_row['books_skipped']}, failed {run_row['books_failed']}"
        )
    typer.echo(
        f"Filter decisions: {stats['total']} "
        f"(passed {stats['passed']}, genre {stats['filtered_genre']}, author {stats['filtered_author']})"
    )
