"""Agent lifecycle status resolution.

Status is derived from four filesystem facts, read in a fixed order:

    stop              sentinel, presence only
    supervisor.pid    integer PID written by the supervisor
    state.json        ``{"status": ...}`` written by the supervisor

``resolve_status`` is a pure function over ``AgentFacts``; the rules are an
ordered list and the first match wins. ``gather_facts`` does the reading and
``apply_verdict`` performs the one mutation, removal of a stale PID file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from dash_core.collectors import read_json
from dash_core.models import DEAD, RUNNING, STOPPED, STOPPING, UNKNOWN

logger = logging.getLogger(__name__)

PID_FILE = "supervisor.pid"
STOP_FILE = "stop"
STATE_FILE = "state.json"

LivenessProbe = Callable[[int], bool]


@dataclass(frozen=True)
class AgentFacts:
    readable: bool = True
    stop_exists: bool = False
    pid_exists: bool = False
    pid_value: int | None = None
    pid_alive: bool | None = None
    pid_mtime: float | None = None
    state_status: str | None = None
    # identity of the PID file as read, so cleanup can tell a rewrite apart
    pid_inode: int | None = None
    pid_mtime_ns: int | None = None
    pid_text: str | None = None


@dataclass(frozen=True)
class Verdict:
    status: str
    remove_pid: bool = False


def _unreadable(facts: AgentFacts) -> Verdict | None:
    if not facts.readable:
        return Verdict(UNKNOWN)
    return None


def _stop_sentinel(facts: AgentFacts) -> Verdict | None:
    if facts.stop_exists:
        return Verdict(STOPPING)
    return None


def _live_pid(facts: AgentFacts) -> Verdict | None:
    if facts.pid_exists and facts.pid_value is not None and facts.pid_alive:
        return Verdict(RUNNING)
    return None


def _stale_pid(facts: AgentFacts) -> Verdict | None:
    if facts.pid_exists:
        return Verdict(STOPPED, remove_pid=True)
    return None


def _state_file(facts: AgentFacts) -> Verdict | None:
    if facts.state_status == "stopped":
        return Verdict(STOPPED)
    return None


def _fallback(facts: AgentFacts) -> Verdict | None:
    return Verdict(STOPPED)


RULES: list[Callable[[AgentFacts], Verdict | None]] = [
    _unreadable,
    _stop_sentinel,
    _live_pid,
    _stale_pid,
    _state_file,
    _fallback,
]


def resolve_status(facts: AgentFacts) -> Verdict:
    for rule in RULES:
        verdict = rule(facts)
        if verdict is not None:
            return verdict
    return Verdict(UNKNOWN)


def pid_alive(pid: int) -> bool:
    """Signal-0 probe: does a process with this PID exist."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    except OSError:
        return False
    return True


def parse_pid(text: str | None) -> int | None:
    if text is None:
        return None
    try:
        value = int(text.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def gather_facts(agent_dir: Path, probe: LivenessProbe = pid_alive) -> AgentFacts:
    try:
        if not agent_dir.is_dir():
            return AgentFacts(readable=False)
    except OSError:
        return AgentFacts(readable=False)

    try:
        stop_exists = (agent_dir / STOP_FILE).exists()
    except OSError:
        return AgentFacts(readable=False)

    pid_path = agent_dir / PID_FILE
    pid_exists = False
    pid_value = None
    pid_mtime = None
    pid_stamp = None
    pid_text = None
    try:
        stat = pid_path.stat()
        pid_exists = True
        pid_mtime = stat.st_mtime
        pid_text = pid_path.read_text()
        pid_stamp = (stat.st_ino, stat.st_mtime_ns)
        pid_value = parse_pid(pid_text)
    except OSError:
        pass

    pid_is_alive = None
    if not stop_exists and pid_value is not None:
        pid_is_alive = probe(pid_value)

    state = read_json(agent_dir / STATE_FILE)
    state_status = None
    if isinstance(state, dict) and state.get("status") is not None:
        state_status = str(state["status"])

    return AgentFacts(
        stop_exists=stop_exists,
        pid_exists=pid_exists,
        pid_value=pid_value,
        pid_alive=pid_is_alive,
        pid_mtime=pid_mtime,
        state_status=state_status,
        pid_inode=pid_stamp[0] if pid_stamp else None,
        pid_mtime_ns=pid_stamp[1] if pid_stamp else None,
        pid_text=pid_text,
    )


REMOVED = "removed"
FAILED = "failed"
REWRITTEN = "rewritten"


def _pid_file_rewritten(path: Path, facts: AgentFacts) -> bool:
    stat = path.stat()
    current = (stat.st_ino, stat.st_mtime_ns, path.read_text())
    return current != (facts.pid_inode, facts.pid_mtime_ns, facts.pid_text)


def remove_stale_pid(agent_dir: Path, facts: AgentFacts | None = None) -> str:
    """Best-effort delete; a file already gone counts as removed.

    With ``facts`` the file is only deleted if it is still the one that was
    judged stale. A supervisor that rewrote it since keeps its file.
    """
    path = agent_dir / PID_FILE
    try:
        if facts is not None and facts.pid_inode is not None and _pid_file_rewritten(path, facts):
            logger.debug("pid file in %s was rewritten, leaving it", agent_dir)
            return REWRITTEN
        path.unlink()
    except FileNotFoundError:
        return REMOVED
    except OSError as exc:
        logger.debug("could not remove stale pid file in %s: %s", agent_dir, exc)
        return FAILED
    logger.debug("removed stale pid file in %s", agent_dir)
    return REMOVED


@dataclass(frozen=True)
class Resolution:
    status: str
    pid: int | None = None
    started_at: datetime | None = None


def apply_verdict(agent_dir: Path, facts: AgentFacts, verdict: Verdict) -> Resolution | None:
    """Carry out the verdict; None when the PID file changed under us."""
    if verdict.remove_pid:
        outcome = remove_stale_pid(agent_dir, facts)
        if outcome == REWRITTEN:
            return None
        if outcome == REMOVED:
            return Resolution(STOPPED)
        return Resolution(DEAD, pid=facts.pid_value)

    started_at = None
    if verdict.status == RUNNING and facts.pid_mtime is not None:
        started_at = datetime.fromtimestamp(facts.pid_mtime, tz=timezone.utc)
    return Resolution(verdict.status, pid=facts.pid_value, started_at=started_at)


def resolve_agent_dir(agent_dir: Path, probe: LivenessProbe = pid_alive, attempts: int = 2) -> Resolution:
    for _ in range(attempts):
        facts = gather_facts(agent_dir, probe)
        resolution = apply_verdict(agent_dir, facts, resolve_status(facts))
        if resolution is not None:
            return resolution
    # still being rewritten; the next scan settles it
    return Resolution(UNKNOWN)
