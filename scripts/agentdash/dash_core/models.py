"""Shared model contracts for modular TUI data flow."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

RUNNING = "running"
STOPPING = "stopping"
STOPPED = "stopped"
DEAD = "dead"
UNKNOWN = "unknown"

AGENT_STATUSES = (RUNNING, STOPPING, STOPPED, DEAD, UNKNOWN)

IDLE = "idle"
CONNECTING = "connecting"
CONNECTED = "connected"
DISCONNECTED = "disconnected"
ERROR = "error"


@dataclass
class PanelData:
    key: str
    title: str
    status: str = "ok"
    items: list[dict[str, Any]] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "title": self.title,
            "status": self.status,
            "items": self.items,
            "meta": self.meta,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class AgentRecord:
    """One discovered agent directory, re-derived on every scan."""

    name: str
    path: Path
    status: str = UNKNOWN
    pid: int | None = None
    mission: str = ""
    started_at: datetime | None = None

    def uptime_seconds(self, now: datetime | None = None) -> float | None:
        if self.started_at is None:
            return None
        now = now or datetime.now(self.started_at.tzinfo)
        return max(0.0, (now - self.started_at).total_seconds())

    @property
    def log_path(self) -> Path:
        return self.path / "supervisor.log"

    @property
    def context_path(self) -> Path:
        return self.path / "context.md"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dir": str(self.path),
            "status": self.status,
            "pid": self.pid,
            "mission": self.mission,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


@dataclass
class ChatEvent:
    """Chat item pushed to the controller.

    ``kind`` is ``msg`` for chat traffic, ``system`` for local notices and
    ``error`` for failures the operator should see.
    """

    kind: str
    text: str = ""
    sender: str = ""
    channel: str = ""
    content: str = ""
    is_self: bool = False
    at: float = field(default_factory=time.time)

    @classmethod
    def notice(cls, text: str) -> "ChatEvent":
        return cls(kind="system", text=text)

    @classmethod
    def failure(cls, text: str) -> "ChatEvent":
        return cls(kind="error", text=text)
