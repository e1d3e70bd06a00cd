"""Agents panel renderer."""

from __future__ import annotations

from rich.table import Table
from rich.text import Text

from dash_core.formatting import status_color, status_icon
from dash_core.models import PanelData
from dash_core.panels import panel_from_table


def render(data: PanelData, selected: int = 0, focused: bool = False):
    table = Table(box=None, expand=True, show_header=False)
    table.add_column("", no_wrap=True, width=1)
    table.add_column("Agent", overflow="fold")
    table.add_column("Status", no_wrap=True)

    if not data.items:
        table.add_row(" ", Text("none", style="dim"), Text("-", style="dim"))
    else:
        for idx, item in enumerate(data.items):
            status = str(item.get("status", "unknown"))
            color = status_color(status)
            row_style = "bold white on blue" if idx == selected else ""
            table.add_row(
                Text(status_icon(status), style=color),
                Text(str(item.get("name", "-"))),
                Text(status, style=color),
                style=row_style,
            )

    filter_text = data.meta.get("filter")
    if filter_text:
        title = f"agents [/{filter_text}]"
    else:
        title = f"agents ({data.meta.get('count', 0)})"
    return panel_from_table(title, data.status, table, focused)
