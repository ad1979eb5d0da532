"""Shared utility functions for the app generation core.

Provides token-amount rounding, JSON I/O, duration formatting and the
Rich-based console helpers every other module reports through.
"""

from __future__ import annotations

import asyncio
import json
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

console = Console()

TOKEN_QUANTUM = Decimal("0.01")

# ---------------------------------------------------------------------------
# Token amounts
# ---------------------------------------------------------------------------


def round_tokens(amount: Decimal | float | int | str) -> Decimal:
    """Round a token amount to two decimals, half away from zero.

    ``Decimal.quantize`` with ``ROUND_HALF_UP`` rounds ties away from zero for
    negative values too, so credits and debits round symmetrically.

    Examples::

        round_tokens("0.105")  -> Decimal("0.11")
        round_tokens("-0.105") -> Decimal("-0.11")
        round_tokens(2)        -> Decimal("2.00")
    """
    if isinstance(amount, float):
        # Go through repr so 0.1 becomes Decimal("0.1"), not its binary expansion.
        amount = repr(amount)
    return Decimal(amount).quantize(TOKEN_QUANTUM, rounding=ROUND_HALF_UP)


def format_tokens(amount: Decimal | float | int | str) -> str:
    """Format a token amount for display, e.g. ``"2.10 tokens"``."""
    return f"{round_tokens(amount)} tokens"


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed dictionary. A top-level array is wrapped as ``{"_root": [...]}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        return {"_root": data}
    return data


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> None:
    """Save data as pretty-printed JSON.

    Parent directories are created automatically. The write runs in the
    default executor so large projects do not block the event loop.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, file_path.write_text, content, "utf-8")


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


def truncate(text: str, limit: int) -> str:
    """Clip *text* to at most *limit* characters."""
    return text if len(text) <= limit else text[:limit]


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")


def print_info(message: str) -> None:
    """Print a dim informational message."""
    console.print(f"[dim]{message}[/dim]")


def create_progress() -> Progress:
    """Create a Rich progress display for a running job.

    Returns:
        A ``Progress`` instance suitable for use as a context manager.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    )
