"""Selected agent detail panel."""

from __future__ import annotations

from datetime import datetime, timezone

from rich.text import Text

from dash_core.formatting import format_uptime, status_color
from dash_core.models import AgentRecord
from dash_core.panels import empty_panel, kv_table, panel_from_table


def render(agent: AgentRecord | None, now: datetime | None = None):
    if agent is None:
        return empty_panel("detail", "No agent selected")

    now = now or datetime.now(timezone.utc)
    rows = [
        ("Name:", Text(agent.name)),
        ("Status:", Text(agent.status, style=status_color(agent.status))),
        ("PID:", Text(str(agent.pid) if agent.pid else "-")),
        ("Uptime:", Text(format_uptime(agent.uptime_seconds(now)))),
        ("Mission:", Text(agent.mission) if agent.mission else Text("(none)", style="dim")),
    ]
    return panel_from_table("detail", "ok", kv_table(rows))
