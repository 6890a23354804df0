"""Catalog search commands for libris.

Commands:
    books  Search every enabled catalog source at once
"""

import asyncio
from typing import Optional

import typer

from libris_catalog import MultiSourceSearch
from libris_cli._shared import OutputFormat, echo_json, fail
from libris_common import LibrisError
from libris_contracts import CatalogSource, SearchCriteria
from libris_pipeline import open_context

app = typer.Typer(help="Search external catalogs")

SEARCHABLE_SOURCES = (
    CatalogSource.INTERNET_ARCHIVE,
    CatalogSource.OPEN_LIBRARY,
    CatalogSource.GOOGLE_BOOKS,
)


@app.command()
def books(
    query: Optional[str] = typer.Argument(None, help="Free-text query"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author filter"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Subject/genre filter"),
    year_from: Optional[int] = typer.Option(None, "--year-from", help="Earliest year"),
    year_to: Optional[int] = typer.Option(None, "--year-to", help="Latest year"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum results"),
    sources: Optional[list[CatalogSource]] = typer.Option(
        None, "--source", "-s", help="Limit to these sources (repeatable)"
    ),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format"),
):
    """Search Internet Archive, Open Library and Google Books together.

    Results are merged across sources, ranked by relevance and marked when
    the book is already in the library.

    Examples:

        libris search books "meditations" --author "marcus aurelius"

        libris search books --genre philosophy --year-to 1900 -s internet_archive
    """
    if not any([query, author, genre]):
        fail("Provide a query, --author or --genre")

    selected = [s for s in (sources or SEARCHABLE_SOURCES) if s in SEARCHABLE_SOURCES]

    try:
        criteria = SearchCriteria(
            query=query, author=author, genre=genre, year_from=year_from, year_to=year_to, limit=limit
        )
    except ValueError as e:
        fail(e)

    async def _search():
        async with open_context() as ctx:
            search = MultiSourceSearch(list(ctx.fetchers.values()))
            result = await search.search(criteria, selected)
            in_library = await ctx.books.existing_identifiers([c.identifier for c in result.candidates])
            return result, in_library

    try:
        result, in_library = asyncio.run(_search())
    except LibrisError as e:
        fail(e)

    if format == OutputFormat.json:
        echo_json(
            [
                {**c.model_dump(mode="json"), "in_library": c.identifier in in_library}
                for c in result.candidates
            ]
        )
        return

    if not result.candidates:
        typer.echo("No results.")
        return

    typer.echo(f"Found {result.count} results:\n")
    for c in result.candidates:
        badge = "[in library]" if c.identifier in in_library else ""
        also = f" +{','.join(s.value for s in c.other_sources)}" if c.other_sources else ""
        typer.echo(
            f"  {c.relevance_score:5.1f}  {c.title[:50]:50} {(c.author or '')[:25]:25} "
            f"{c.year or '':>4}  {c.source.value}{also} {badge}"
        )
