"""
CLI interface for daybook.

Usage:
    daybook record user "我喜欢跑步"
    daybook daily --date 2025-01-05
    daybook search "运动"
    daybook ask "我喜欢什么运动？" --refs
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Memory
from .errors import DaybookError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .rollup import RollupResult

# Configure quiet mode by default (suppress verbose library output)
# Set DAYBOOK_VERBOSE=1 to enable debug mode via environment
if os.environ.get("DAYBOOK_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_home_override: Optional[Path] = None


def _home_callback(value: Optional[Path]):
    global _home_override
    if value is not None:
        _home_override = value


app = typer.Typer(
    name="daybook",
    help="Long-term conversational memory with daily, weekly, and monthly summaries.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    home: Annotated[Optional[Path], typer.Option(
        "--home",
        envvar="DAYBOOK_HOME",
        help="Daybook home directory (default: ~/.daybook/)",
        callback=_home_callback,
        is_eager=True,
    )] = None,
):
    """Long-term conversational memory with daily, weekly, and monthly summaries."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_memory() -> Memory:
    """Open memory at the selected home, exiting cleanly on config errors."""
    try:
        return Memory(_home_override)
    except (DaybookError, ValueError, OSError) as e:
        _fail(e, "init")


def _fail(exc: Exception, command: str):
    log_path = log_exception(exc, context=f"daybook {command}", home=_home_override)
    typer.echo(f"Error: {exc}", err=True)
    typer.echo(f"Details logged to {log_path}", err=True)
    raise typer.Exit(1)


def _report_rollup(result: RollupResult) -> None:
    if result.status == "created":
        typer.echo(f"{result.summary_type} {result.period_key}: created ({result.chunks} chunk(s))")
    elif result.status == "exists":
        typer.echo(f"{result.summary_type} {result.period_key}: exists (use --force to regenerate)")
    else:
        typer.echo(f"{result.summary_type} {result.period_key}: nothing to summarize")


ForceOption = Annotated[
    bool,
    typer.Option("--force", "-f", help="Delete and regenerate an existing summary"),
]


# -----------------------------------------------------------------------------
# Rollups
# -----------------------------------------------------------------------------

@app.command()
def daily(
    date: Annotated[Optional[str], typer.Option(
        "--date", "-d", help="Day to summarize, YYYY-MM-DD (default: yesterday)",
    )] = None,
    force: ForceOption = False,
):
    """Build the daily summary of one day's log."""
    mem = _get_memory()
    try:
        _report_rollup(mem.daily(date, force=force))
    except (DaybookError, ValueError, OSError) as e:
        _fail(e, "daily")
    finally:
        mem.close()


@app.command()
def weekly(
    week: Annotated[Optional[str], typer.Option(
        "--week", "-w", help="ISO week to summarize, YYYY-Www (default: last week)",
    )] = None,
    force: ForceOption = False,
):
    """Build the weekly summary from that week's daily summaries."""
    mem = _get_memory()
    try:
        _report_rollup(mem.weekly(week, force=force))
    except (DaybookError, ValueError, OSError) as e:
        _fail(e, "weekly")
    finally:
        mem.close()


@app.command()
def monthly(
    month: Annotated[Optional[str], typer.Option(
        "--month", "-m", help="Month to summarize, YYYY-MM (default: last month)",
    )] = None,
    force: ForceOption = False,
):
    """Build the monthly summary from weekly summaries overlapping the month."""
    mem = _get_memory()
    try:
        _report_rollup(mem.monthly(month, force=force))
    except (DaybookError, ValueError, OSError) as e:
        _fail(e, "monthly")
    finally:
        mem.close()


# -----------------------------------------------------------------------------
# Retrieval
# -----------------------------------------------------------------------------

@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search text")],
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n", help="Maximum results (default: search_top_k)",
    )] = None,
    min_score: Annotated[Optional[float], typer.Option(
        "--min-score", help="Minimum cosine score (default: search_min_score)",
    )] = None,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
):
    """Rank stored summaries by similarity to a query."""
    mem = _get_memory()
    try:
        hits = mem.search(query, top_k=limit, min_score=min_score)
    except (DaybookError, ValueError) as e:
        _fail(e, "search")
    finally:
        mem.close()

    if output_json:
        typer.echo(json.dumps([h.to_dict() for h in hits], ensure_ascii=False, indent=2))
        return
    if not hits:
        typer.echo("No results.")
        return
    for h in hits:
        typer.echo(f"[{h.score:.3f}] {h.type} {h.period_key}")
        for line in h.text.splitlines():
            typer.echo(f"  {line}")


@app.command()
def ask(
    question: Annotated[str, typer.Argument(help="Question to answer from memory")],
    refs: Annotated[bool, typer.Option("--refs", help="Append up to 10 references")] = False,
):
    """Answer a question from your own history."""
    mem = _get_memory()
    try:
        typer.echo(mem.ask(question, show_refs=refs))
        if mem.speech is not None:
            mem.speech.wait_idle()
    except (DaybookError, ValueError) as e:
        _fail(e, "ask")
    finally:
        mem.close()


@app.command()
def chat(
    message: Annotated[str, typer.Argument(help="Message to send")],
):
    """Send one chat message with memory context; both turns are logged."""
    mem = _get_memory()
    try:
        typer.echo(mem.chat(message))
    except (DaybookError, ValueError, OSError) as e:
        _fail(e, "chat")
    finally:
        mem.close()


@app.command()
def context(
    question: Annotated[str, typer.Argument(help="Question to build context for")],
):
    """Print the system prompt chat would send, without calling the model."""
    mem = _get_memory()
    try:
        typer.echo(mem.chat_context(question))
    except (DaybookError, ValueError) as e:
        _fail(e, "context")
    finally:
        mem.close()


# -----------------------------------------------------------------------------
# Day log
# -----------------------------------------------------------------------------

@app.command()
def record(
    role: Annotated[str, typer.Argument(help="user or assistant")],
    content: Annotated[str, typer.Argument(help="Turn text")],
):
    """Append one conversation turn to today's log."""
    mem = _get_memory()
    try:
        path = mem.record(role, content)
    except (ValueError, OSError) as e:
        _fail(e, "record")
    finally:
        mem.close()
    typer.echo(f"Recorded to {path.name}")


@app.command()
def remember(
    fact: Annotated[str, typer.Argument(help="Fact about yourself")],
):
    """Record an explicit fact for the next daily summary."""
    mem = _get_memory()
    try:
        mem.remember(fact)
    except (ValueError, OSError) as e:
        _fail(e, "remember")
    finally:
        mem.close()
    typer.echo(f"Remembered: {fact}")


@app.command()
def forget(
    fact: Annotated[str, typer.Argument(help="Fact to retract")],
):
    """Record the retraction of a fact."""
    mem = _get_memory()
    try:
        mem.forget(fact)
    except (ValueError, OSError) as e:
        _fail(e, "forget")
    finally:
        mem.close()
    typer.echo(f"Retracted: {fact}")


# -----------------------------------------------------------------------------
# Maintenance
# -----------------------------------------------------------------------------

@app.command()
def reindex(
    scope: Annotated[str, typer.Argument(help="daily, weekly, monthly, or all")] = "all",
):
    """Embed summaries that have no vector for the configured model."""
    mem = _get_memory()
    try:
        result = mem.reindex(scope)
    except (DaybookError, ValueError) as e:
        _fail(e, "reindex")
    finally:
        mem.close()
    typer.echo(
        f"reindex {scope}: total={result.total} created={result.created} "
        f"skipped={result.skipped} failed={result.failed}"
    )


@app.command()
def archive():
    """Move summarized raw logs older than the retention window into monthly bundles."""
    mem = _get_memory()
    try:
        result = mem.archive()
    except (DaybookError, OSError) as e:
        _fail(e, "archive")
    finally:
        mem.close()
    typer.echo(
        f"archived={len(result.archived)} "
        f"waiting_for_summary={len(result.unsummarized)} failed={len(result.failed)}"
    )
    for key in result.archived:
        typer.echo(f"  {key}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="daybook CLI", home=_home_override)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
