"""Shared Rich Console for CLI output.

User-supplied text (filenames, tags, notes) must be passed through
``rich.markup.escape`` before it reaches these helpers.
"""

from typing import Any, Dict, Iterable, Sequence, Tuple, Union

from rich.console import Console
from rich.table import Table

# Either a header, or (header, Table.add_column keyword options)
ColumnSpec = Union[str, Tuple[str, Dict[str, Any]]]

_console: Console | None = None


def get_console() -> Console:
    """Get or create the global Rich Console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def safe_print(message: str, style: str | None = None) -> None:
    """Print a markup string, optionally styled (e.g. "bold red")."""
    get_console().print(message, style=style, highlight=False)


def print_table(
    title: str,
    columns: Sequence[ColumnSpec],
    rows: Iterable[Sequence[str]],
    show_header: bool = True,
) -> None:
    """Render rows as a titled table.

    Examples:
        print_table("Samples", ["ID", ("Duration", {"justify": "right"})], rows)
    """
    table = Table(title=title, show_header=show_header)
    for column in columns:
        if isinstance(column, str):
            table.add_column(column)
        else:
            header, options = column
            table.add_column(header, **options)
    for row in rows:
        table.add_row(*row)
    get_console().print(table)
