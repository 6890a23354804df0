"""Sanitize error messages before they leave the pipeline.

Messages stored in run results, job logs and queue rows, or printed by the
CLI, must not leak file paths, stack frames, secrets or credentials.
"""

import re
from typing import Optional

MAX_MESSAGE_LENGTH = 200
UNKNOWN_ERROR = "Unknown error"

_WINDOWS_PATH = re.compile(r"[A-Za-z]:\\[^\s]+")
_CREDENTIALED_URL = re.compile(r"https?://[^:/\s]+:[^@\s]+@")
_POSIX_PATH = re.compile(r"(?<![\w:/])/[^\s/]+/[^\s]+")
_TOKEN = re.compile(r"[a-zA-Z0-9]{32,}")
_STACK_FRAME = re.compile(r"\s+at\s+.+")
_PY_TRACEBACK = re.compile(r"Traceback \(most recent call last\):.*", re.DOTALL)


def sanitize_error_message(message: Optional[object]) -> str:
    """Strip sensitive details from an error message and cap its length.

    Args:
        message: Raw message (an exception is converted with ``str()``)

    Returns:
        Sanitized message, never empty

    Example:
        >>> sanitize_error_message("open /srv/app/secret.txt failed")
        'open [path] failed'
    """
    if message is None:
        return UNKNOWN_ERROR
    text = str(message)
    if not text.strip():
        return UNKNOWN_ERROR

    text = _PY_TRACEBACK.sub("", text)
    text = _CREDENTIALED_URL.sub("https://[redacted]@", text)
    text = _WINDOWS_PATH.sub("[path]", text)
    text = _POSIX_PATH.sub("[path]", text)
    text = _TOKEN.sub("[redacted]", text)
    text = _STACK_FRAME.sub("", text)

    if len(text) > MAX_MESSAGE_LENGTH:
        text = text[:MAX_MESSAGE_LENGTH] + "..."

    return text.strip() or UNKNOWN_ERROR
