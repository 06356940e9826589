"""
Error types and error logging for daybook.

Operations fail with one of two kinds of error:

- ValidationError: malformed model output or a corrupt stored vector.
- TransportError: the completion or embedding service could not be reached,
  timed out, or answered with a failure.

Both are fatal to the single operation that raised them. Nothing partial is
persisted; the next natural trigger is the retry.

The CLI logs full stack traces to a file while showing clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class DaybookError(Exception):
    """Base class for daybook errors."""


class ValidationError(DaybookError):
    """Model output or stored data failed validation."""


class TransportError(DaybookError):
    """A completion or embedding request failed."""


class SummaryNotFoundError(DaybookError):
    """No summary row exists for the requested (type, period_key)."""

    def __init__(self, summary_type: str, period_key: str):
        super().__init__(f"No {summary_type} summary for {period_key}")
        self.summary_type = summary_type
        self.period_key = period_key


def _error_log_path(home=None) -> Path:
    """Resolve error log path, respecting DAYBOOK_HOME."""
    home = home or os.environ.get("DAYBOOK_HOME")
    if home:
        return Path(home) / "daybook-errors.log"
    return Path.home() / ".daybook" / "daybook-errors.log"


def log_exception(exc: Exception, context: str = "", home=None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        home: Daybook home (DAYBOOK_HOME or ~/.daybook if None)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(home)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
