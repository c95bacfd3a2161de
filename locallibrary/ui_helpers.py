import html
import json
import os
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

OUTPUT_MODE_ENV = "LOCALLIBRARY_CLI_OUTPUT"
OUTPUT_MODES = ("plain", "json", "rich")

_console = Console()

STAT_LABELS = (
    ("book_count", "Books"),
    ("book_instance_count", "Copies"),
    ("book_instance_available_count", "Copies available"),
    ("author_count", "Authors"),
    ("genre_count", "Genres"),
)


def set_output_mode(mode: str) -> str:
    """Choose how later print_* calls render. Unknown modes raise ValueError."""
    normalized = mode.strip().lower()
    if normalized not in OUTPUT_MODES:
        raise ValueError(f"Unknown output mode '{mode}' (expected one of: {', '.join(OUTPUT_MODES)})")
    os.environ[OUTPUT_MODE_ENV] = normalized
    return normalized


def get_output_mode() -> str:
    # a stale or misspelled value in the environment falls back to plain
    mode = os.environ.get(OUTPUT_MODE_ENV, "").strip().lower()
    return mode if mode in OUTPUT_MODES else "plain"


def print_list_result(books: List[Any]) -> None:
    """Print book summaries in the current output mode.
    Titles are stored HTML-escaped and are decoded back to text here.
    - plain: 'Title - Author' lines, or 'No books in library.'
    - json: array of {id, title, author}
    - rich: a table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    rows = [(b.id, html.unescape(b.title), b.author_name) for b in books]
    if mode == "json":
        payload = [{"id": book_id, "title": title, "author": author} for book_id, title, author in rows]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Books", show_lines=True, header_style="bold cyan")
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Id", style="magenta", no_wrap=True)
        for book_id, title, author in rows:
            table.add_row(Text(title), Text(author), book_id)
        _console.print(table)
    else:
        for _, title, author in rows:
            print(f"{title} - {author}")


def print_stats_result(stats: Optional[Dict[str, Any]]) -> None:
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in STAT_LABELS)
        _console.print(Panel.fit(content, title="Library", border_style="blue"))
    else:
        for key, label in STAT_LABELS:
            print(f"{label}: {stats.get(key, 0)}")
