"""Width-driven arrangement of the four dashboard panels plus status bar."""

from __future__ import annotations

from rich.console import Group, RenderableType
from rich.layout import Layout

NARROW_MAX = 100
MEDIUM_MAX = 160

# left column / logs / chat, as percentages of the body width
WIDE_COLUMNS = (25, 40, 35)
# agents list / detail, within the left column
LEFT_SPLIT = (55, 45)


def select_layout_mode(width: int) -> str:
    if width < NARROW_MAX:
        return "narrow"
    if width < MEDIUM_MAX:
        return "medium"
    return "wide"


def arrange(
    mode: str,
    agents: RenderableType,
    detail: RenderableType,
    logs: RenderableType,
    chat: RenderableType,
    status: RenderableType,
) -> RenderableType:
    if mode == "narrow":
        return Group(agents, detail, logs, chat, status)

    layout = Layout()
    layout.split_column(Layout(name="body"), Layout(status, name="status", size=1))

    if mode == "medium":
        layout["body"].split_row(
            Layout(Group(agents, detail), name="left", ratio=1),
            Layout(name="right", ratio=2),
        )
        layout["body"]["right"].split_column(
            Layout(logs, name="logs", ratio=1),
            Layout(chat, name="chat", ratio=1),
        )
        return layout

    left, middle, right = WIDE_COLUMNS
    layout["body"].split_row(
        Layout(name="left", ratio=left),
        Layout(logs, name="logs", ratio=middle),
        Layout(chat, name="chat", ratio=right),
    )
    top, bottom = LEFT_SPLIT
    layout["body"]["left"].split_column(
        Layout(agents, name="agents", ratio=top),
        Layout(detail, name="detail", ratio=bottom),
    )
    return layout
