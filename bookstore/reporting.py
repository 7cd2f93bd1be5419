"""Console rendering of query results."""

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

INDEX_COLUMN = "(index)"


def collect_columns(rows: Sequence[Mapping[str, Any]]) -> List[str]:
    """Union of the rows' keys, in first-seen order."""
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def format_cell(value: Any) -> Text:
    if value is None:
        return Text("")
    # ObjectId, datetime, Decimal128 and friends all print sensibly via str()
    return Text(str(value))


class Reporter:
    """
    Prints labeled result tables.

    Output goes to a rich ``Console``; pass one built on a ``StringIO`` to
    capture it.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def build_table(self, rows: Sequence[Mapping[str, Any]]) -> Table:
        table = Table(show_header=True, header_style="bold magenta")
        columns = collect_columns(rows)

        table.add_column(INDEX_COLUMN, style="dim")
        for column in columns:
            table.add_column(column)

        for position, row in enumerate(rows):
            table.add_row(Text(str(position)), *(format_cell(row.get(column)) for column in columns))

        return table

    def render(self, label: str, rows: Iterable[Mapping[str, Any]]) -> None:
        """Print ``label`` followed by a table of ``rows``; no rows gives an empty table."""
        rows = list(rows)
        self.console.print()
        self.console.print(Text(label, style="bold cyan"))
        self.console.print(self.build_table(rows))

    def message(self, text: str) -> None:
        self.console.print(Text(text))
