"""Panel rendering helpers."""

from __future__ import annotations

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

STATUS_BORDER = {
    "ok": "cyan",
    "warn": "yellow",
    "error": "red",
}

FOCUS_BORDER = "white"


def border_for(status: str, focused: bool = False) -> str:
    if focused:
        return FOCUS_BORDER
    return STATUS_BORDER.get(status, "cyan")


def empty_panel(title: str, message: str = "No data") -> Panel:
    return Panel(Text(message, style="dim"), title=f"[bold]{escape(title)}[/bold]", border_style="cyan")


def kv_table(rows: list[tuple[str, str | Text]]) -> Table:
    table = Table(box=None, show_header=False, expand=True, pad_edge=False)
    table.add_column("key", style="bold", no_wrap=True)
    table.add_column("value", style="default", overflow="fold")
    for key, value in rows:
        table.add_row(key, value)
    return table


def panel_from_table(title: str, status: str, table: Table, focused: bool = False) -> Panel:
    return Panel(table, title=f"[bold]{escape(title)}[/bold]", border_style=border_for(status, focused))


