"""Agent directory scanner."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from dash_core.collectors import list_agent_dirs, read_text
from dash_core.collectors.status import LivenessProbe, pid_alive, resolve_agent_dir
from dash_core.formatting import format_uptime
from dash_core.models import RUNNING, AgentRecord, PanelData

MISSION_FILE = "mission.txt"


def read_agent(agent_dir: Path, probe: LivenessProbe = pid_alive) -> AgentRecord:
    resolution = resolve_agent_dir(agent_dir, probe)
    mission = (read_text(agent_dir / MISSION_FILE) or "").strip()
    return AgentRecord(
        name=agent_dir.name,
        path=agent_dir,
        status=resolution.status,
        pid=resolution.pid,
        mission=mission,
        started_at=resolution.started_at,
    )


def scan_agents(agents_dir: Path, probe: LivenessProbe = pid_alive) -> tuple[AgentRecord, ...]:
    return tuple(read_agent(child, probe) for child in list_agent_dirs(agents_dir))


def filter_agents(records: tuple[AgentRecord, ...] | list[AgentRecord], text: str) -> list[AgentRecord]:
    needle = (text or "").strip().lower()
    if not needle:
        return list(records)
    return [record for record in records if needle in record.name.lower()]


def collect(records: tuple[AgentRecord, ...] | list[AgentRecord], filter_text: str = "") -> PanelData:
    now = datetime.now(timezone.utc)
    shown = filter_agents(records, filter_text)
    items = [
        {
            "name": record.name,
            "status": record.status,
            "pid": record.pid,
            "uptime": format_uptime(record.uptime_seconds(now)),
        }
        for record in shown
    ]
    status = "ok" if records else "warn"
    return PanelData(
        key="agents",
        title="Agents",
        status=status,
        items=items,
        meta={
            "count": len(shown),
            "total": len(records),
            "running": len([r for r in records if r.status == RUNNING]),
            "filter": filter_text,
        },
        errors=[] if records else ["no agents discovered"],
    )
