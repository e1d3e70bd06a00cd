"""Chat panel scrollback collector."""

from __future__ import annotations

from collections import deque

from dash_core.models import CONNECTED, CONNECTING, ChatEvent, PanelData

SCROLLBACK = 500


class ChatBuffer:
    def __init__(self, scrollback: int = SCROLLBACK) -> None:
        self._events: deque[ChatEvent] = deque(maxlen=scrollback)

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: ChatEvent) -> None:
        self._events.append(event)

    def events(self) -> list[ChatEvent]:
        return list(self._events)


def collect(buffer: ChatBuffer, active_channel: str, state: str, limit: int = 200) -> PanelData:
    items = []
    for event in buffer.events()[-limit:]:
        items.append(
            {
                "kind": event.kind,
                "sender": event.sender,
                "channel": event.channel,
                "content": event.content,
                "text": event.text,
                "is_self": event.is_self,
                # prefix traffic from channels other than the one being typed into
                "foreign": event.kind == "msg" and bool(event.channel) and event.channel != active_channel,
            }
        )

    if state == CONNECTED:
        status = "ok"
    elif state == CONNECTING:
        status = "warn"
    else:
        status = "error"
    return PanelData(
        key="chat",
        title=active_channel,
        status=status,
        items=items,
        meta={"state": state, "channel": active_channel},
        errors=[] if state == CONNECTED else [state],
    )
