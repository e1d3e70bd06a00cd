"""Chat panel renderer."""

from __future__ import annotations

from rich.console import Group
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from dash_core.formatting import channel_color, name_color
from dash_core.models import PanelData
from dash_core.panels import FOCUS_BORDER


def format_item(item: dict) -> Text:
    kind = item.get("kind")
    if kind == "system":
        return Text(f"--- {item.get('text', '')}", style="grey50")
    if kind == "error":
        return Text(f"! {item.get('text', '')}", style="red")

    line = Text()
    channel = str(item.get("channel") or "")
    if item.get("foreign"):
        line.append(f"[{channel}] ", style=channel_color(channel))
    sender = str(item.get("sender") or "?")
    line.append(sender, style="cyan" if item.get("is_self") else name_color(sender))
    line.append(f": {item.get('content', '')}")
    return line


def render(data: PanelData, draft: str | None = None, height: int = 40, focused: bool = False):
    lines = [format_item(item) for item in data.items[-max(1, height) :]]
    if not lines:
        lines = [Text("No messages", style="dim")]
    body = Panel(
        Group(*lines),
        title=f"[bold]{escape(data.title)}[/bold]",
        border_style=FOCUS_BORDER if focused else "magenta",
    )
    if draft is None:
        return body
    prompt = Panel(Text(f"> {draft}"), border_style="magenta", height=3)
    return Group(body, prompt)
