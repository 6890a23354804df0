"""Extraction job commands for libris.

Commands:
    create    Create a pending job for a source URL
    start     Mark a pending job as running
    run       Crawl and process a job's PDFs in this process
    pause     Pause a running job
    resume    Resume a paused job
    stop      Stop a running or paused job
    delete    Delete a job that is not running
    progress  Show counters and time estimates
    history   List recent jobs
    logs      Show a job's log entries
    books     List a job's extracted books
    publish   Promote a job's completed books to the catalog
"""

import asyncio
from typing import Optional

import typer

from libris_catalog import CancellationToken
from libris_cli._shared import OutputFormat, echo_json, fail, format_duration, parse_uuid
from libris_common import LibrisError
from libris_contracts import ExtractionJob
from libris_pipeline import ExtractionJobManager, open_context

app = typer.Typer(help="Manage PDF extraction jobs")


def _print_job(job: ExtractionJob) -> None:
    typer.echo(f"Job {job.id}")
    typer.echo(f"  Source:    {job.source_url}")
    typer.echo(f"  Status:    {job.status.value}")
    typer.echo(f"  Limits:    {job.max_books} books / {job.max_time_minutes} min")
    typer.echo(f"  Extracted: {job.books_extracted} (queued {job.books_queued}, errors {job.error_count})")


async def _with_manager(action):
    async with open_context() as ctx:
        return await action(ExtractionJobManager(ctx))


def _run_action(action):
    try:
        return asyncio.run(_with_manager(action))
    except (LibrisError, ValueError) as e:
        fail(e)


@app.command()
def create(
    source_url: str = typer.Argument(..., help="Page to crawl for PDF links"),
    max_time: Optional[int] = typer.Option(None, "--max-time", help="Time limit in minutes (default 60)"),
    max_books: Optional[int] = typer.Option(None, "--max-books", help="Book limit (default 100)"),
    by: Optional[str] = typer.Option(None, "--by", help="Creator"),
):
    """Create a pending extraction job.

    Examples:

        libris jobs create https://example.org/library --max-books 20
    """
    job = _run_action(lambda m: m.create_job(source_url, by, max_time, max_books))
    _print_job(job)


@app.command()
def start(job_id: str = typer.Argument(..., help="Job id")):
    """Mark a pending job as running."""
    job_uuid = parse_uuid(job_id)
    job = _run_action(lambda m: m.start_job(job_uuid))
    typer.echo(f"Job {job.id} is {job.status.value}")


@app.command(name="run")
def run_job(job_id: str = typer.Argument(..., help="Job id")):
    """Crawl the job's source and process every PDF found.

    Ctrl+C cancels the crawl and leaves the job status unchanged.
    """
    job_uuid = parse_uuid(job_id)
    token = CancellationToken()

    async def _run(manager: ExtractionJobManager):
        try:
            return await manager.run_job(job_uuid, token)
        except asyncio.CancelledError:
            token.cancel()
            raise

    try:
        job = _run_action(_run)
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(130)
    _print_job(job)


@app.command()
def pause(job_id: str = typer.Argument(..., help="Job id")):
    """Pause a running job; counters are preserved."""
    job_uuid = parse_uuid(job_id)
    job = _run_action(lambda m: m.pause_job(job_uuid))
    typer.echo(f"Job {job.id} is {job.status.value} ({job.books_extracted} books extracted)")


@app.command()
def resume(job_id: str = typer.Argument(..., help="Job id")):
    """Resume a paused job."""
    job_uuid = parse_uuid(job_id)
    job = _run_action(lambda m: m.resume_job(job_uuid))
    typer.echo(f"Job {job.id} is {job.status.value} ({job.books_extracted} books extracted)")


@app.command()
def stop(job_id: str = typer.Argument(..., help="Job id")):
    """Stop a running or paused job; extracted books are kept."""
    job_uuid = parse_uuid(job_id)
    job = _run_action(lambda m: m.stop_job(job_uuid))
    typer.echo(f"Job {job.id} is {job.status.value}")


@app.command()
def delete(
    job_id: str = typer.Argument(..., help="Job id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a job with its books and logs."""
    job_uuid = parse_uuid(job_id)
    if not yes:
        typer.confirm(f"Delete job {job_uuid}?", abort=True)

    deleted = _run_action(lambda m: m.delete_job(job_uuid))
    if not deleted:
        fail(f"Job not found: {job_uuid}")
    typer.echo(f"Deleted job {job_uuid}")


@app.command()
def progress(
    job_id: str = typer.Argument(..., help="Job id"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Show counters, elapsed time and estimated time remaining."""
    job_uuid = parse_uuid(job_id)
    info = _run_action(lambda m: m.get_job_progress(job_uuid))

    if format == OutputFormat.json:
        echo_json(info)
        return

    typer.echo(f"Job {info.job_id} ({info.status.value})")
    typer.echo(f"  Books:     {info.books_extracted}/{info.max_books} (queued {info.books_queued})")
    typer.echo(f"  Errors:    {info.error_count}")
    typer.echo(f"  Elapsed:   {format_duration(info.elapsed_seconds)} of {info.max_time_minutes}m")
    typer.echo(f"  Remaining: ~{format_duration(info.estimated_remaining_seconds)}")


@app.command()
def history(
    by: Optional[str] = typer.Option(None, "--by", help="Only jobs created by this user"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum jobs"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """List recent extraction jobs, newest first."""
    jobs = _run_action(lambda m: m.get_job_history(by, limit))

    if format == OutputFormat.json:
        echo_json(jobs)
        return
    if not jobs:
        typer.echo("No extraction jobs.")
        return

    for job in jobs:
        typer.echo(
            f"  {str(job.id)[:8]}  {job.status.value:10} {job.books_extracted:4}/{job.max_books:<4} "
            f"{job.source_url}"
        )


@app.command()
def logs(
    job_id: str = typer.Argument(..., help="Job id"),
    limit: int = typer.Option(100, "--limit", "-l", help="Maximum entries"),
):
    """Show a job's log entries."""
    job_uuid = parse_uuid(job_id)
    entries = _run_action(lambda m: m.get_job_logs(job_uuid, limit))

    if not entries:
        typer.echo("No log entries.")
        return
    for entry in entries:
        typer.echo(f"  {entry.created_at}  {entry.level.value.upper():7} {entry.message}")


@app.command()
def books(
    job_id: str = typer.Argument(..., help="Job id"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """List the books extracted by a job."""
    job_uuid = parse_uuid(job_id)
    extracted = _run_action(lambda m: m.get_extracted_books(job_uuid))

    if format == OutputFormat.json:
        echo_json(extracted)
        return
    if not extracted:
        typer.echo("No extracted books.")
        return

    typer.echo(f"Found {len(extracted)} books:\n")
    for book in extracted:
        line = f"  [{book.status.value:10}] {book.title[:60]}"
        if book.error_message:
            line += f"  ({book.error_message})"
        typer.echo(line)


@app.command()
def publish(job_id: str = typer.Argument(..., help="Job id")):
    """Promote a job's completed books into the catalog."""
    job_uuid = parse_uuid(job_id)
    published = _run_action(lambda m: m.publish_extracted_books(job_uuid))
    typer.echo(f"Published {published} books")
