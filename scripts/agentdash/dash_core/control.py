"""Bounded invocation of the external agentctl control script."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

CONTROL_TIMEOUT_SECONDS = 30.0
ACTIONS = ("start", "stop", "restart", "kill")


def find_agentctl(explicit: str | None = None) -> Path | None:
    candidates = []
    if explicit:
        candidates.append(Path(explicit).expanduser())
    env_path = os.environ.get("AGENTCTL_PATH")
    if env_path:
        candidates.append(Path(env_path).expanduser())
    home = Path.home()
    candidates.extend(
        [
            home / "dev/claude/agentchat/lib/supervisor/agentctl.sh",
            home / "dev/claude/projects/agent5/agentchat/lib/supervisor/agentctl.sh",
        ]
    )
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


@dataclass
class ControlResult:
    args: list[str]
    returncode: int | None
    lines: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.error


async def run_control(
    script: Path,
    action: str,
    agent_name: str,
    extra: str | None = None,
    timeout: float = CONTROL_TIMEOUT_SECONDS,
) -> ControlResult:
    if action not in ACTIONS:
        raise ValueError(f"unknown control action: {action}")
    args = [action, agent_name]
    if extra:
        args.append(extra)

    logger.info("agentctl %s", " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            "bash",
            str(script),
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        return ControlResult(args, None, error=str(exc))

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("agentctl %s timed out after %ss", action, timeout)
        return ControlResult(args, proc.returncode, error=f"timed out after {int(timeout)}s")

    output = (stdout or b"").decode("utf-8", errors="replace")
    lines = [line for line in output.strip().splitlines() if line]
    return ControlResult(args, proc.returncode, lines)
