"""Shared enums and helpers for CLI commands.

Every command opens its own ``PipelineContext`` inside ``asyncio.run`` and
reports failures through ``fail`` so error output is always sanitized.
"""

import json
from enum import Enum
from typing import Any, NoReturn
from uuid import UUID

import typer
from pydantic import BaseModel

from libris_common import sanitize_error_message

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OutputFormat(str, Enum):
    """Output format options."""

    text = "text"
    json = "json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_uuid(value: str) -> UUID:
    """Parse a job or queue id, exiting with a usage error if malformed."""
    try:
        return UUID(value)
    except ValueError:
        raise typer.BadParameter(f"Not a valid id: {value}") from None


def fail(error: object) -> NoReturn:
    """Print a sanitized error and exit with status 1."""
    typer.echo(f"Error: {sanitize_error_message(error)}", err=True)
    raise typer.Exit(1)


def to_jsonable(value: Any) -> Any:
    """Pydantic models (and lists/dicts of them) as JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


def echo_json(value: Any) -> None:
    typer.echo(json.dumps(to_jsonable(value), indent=2, default=str))


def format_duration(seconds: float) -> str:
    """Human-readable duration, e.g. ``1h 02m`` or ``3m 20s``."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
