"""Log panel scrollback collector."""

from __future__ import annotations

import re
from collections import deque

from dash_core.formatting import parse_iso_timestamp
from dash_core.models import PanelData
from dash_core.tailer import PLACEHOLDERS

TIMESTAMP_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+\-]\d{2}:\d{2})?")
SCROLLBACK = 1000

SOURCE_LOG = "log"
SOURCE_CONTROL = "agentctl"
SOURCE_NOTICE = "notice"


def _display_time(line: str) -> str:
    match = TIMESTAMP_RE.search(line)
    if not match:
        return ""
    parsed = parse_iso_timestamp(match.group(0))
    if parsed is None:
        return ""
    return parsed.strftime("%H:%M:%S")


class LogBuffer:
    """Bounded scrollback fed by the tail streamer and control commands."""

    def __init__(self, scrollback: int = SCROLLBACK) -> None:
        self.label = "logs"
        self._rows: deque[dict] = deque(maxlen=scrollback)

    def __len__(self) -> int:
        return len(self._rows)

    def reset(self, label: str = "logs") -> None:
        self.label = label
        self._rows.clear()

    def extend(self, lines: list[str], source: str = SOURCE_LOG) -> None:
        for line in lines:
            kind = SOURCE_NOTICE if line in PLACEHOLDERS else source
            self._rows.append({"source": kind, "time": _display_time(line), "message": line})

    def lines(self) -> list[str]:
        return [row["message"] for row in self._rows]

    def rows(self) -> list[dict]:
        return list(self._rows)


def collect(buffer: LogBuffer, limit: int = 200) -> PanelData:
    entries = buffer.rows()[-limit:]
    status = "ok" if entries else "warn"
    return PanelData(
        key="logs",
        title=buffer.label,
        status=status,
        items=entries,
        meta={"shown": len(entries), "buffered": len(buffer)},
        errors=[] if entries else ["no log lines available"],
    )
