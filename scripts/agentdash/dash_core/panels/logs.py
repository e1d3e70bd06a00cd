"""Logs panel renderer."""

from __future__ import annotations

from rich.table import Table
from rich.text import Text

from dash_core.collectors.logs import SOURCE_CONTROL, SOURCE_NOTICE
from dash_core.models import PanelData
from dash_core.panels import panel_from_table

SOURCE_STYLE = {
    SOURCE_CONTROL: "yellow",
    SOURCE_NOTICE: "grey50",
}


def render(data: PanelData, height: int = 40, focused: bool = False):
    table = Table(box=None, expand=True)
    table.add_column("Time", no_wrap=True)
    table.add_column("Message", overflow="fold")

    if not data.items:
        table.add_row("-", Text("No logs", style="dim"))
    else:
        for item in data.items[-max(1, height) :]:
            style = SOURCE_STYLE.get(str(item.get("source")), "")
            table.add_row(
                str(item.get("time") or ""),
                Text(str(item.get("message", "")), style=style),
            )

    return panel_from_table(data.title, data.status, table, focused)
