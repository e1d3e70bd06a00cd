"""Status bar renderer."""

from __future__ import annotations

from rich.text import Text

from dash_core.models import CONNECTED, CONNECTING

KEY_HELP = "[s]tart [x]stop [r]estart [K]ill [c]ontext [/]filter [i]chat [tab]focus [?]help [q]uit"


def chat_indicator(state: str, channel: str) -> Text:
    if state == CONNECTED:
        return Text.assemble(("●", "green"), f" {channel}")
    if state == CONNECTING:
        return Text.assemble(("◐", "yellow"), " connecting")
    return Text.assemble(("○", "red"), " disconnected")


def render(
    focus: str,
    name: str,
    persistent_identity: bool,
    chat_state: str,
    channel: str,
    message: str | None = None,
) -> Text:
    if message:
        return Text(f" {message}", style="bold white on blue")
    bar = Text(" ", style="white on blue")
    bar.append(KEY_HELP)
    bar.append(f"  [{focus}]  ")
    bar.append(name, style="green" if persistent_identity else "grey70")
    bar.append("  chat: ")
    bar.append_text(chat_indicator(chat_state, channel))
    return bar
