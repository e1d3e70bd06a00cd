"""Collector helpers and package exports."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, ValueError):
        return None


def read_text(path: Path) -> str | None:
    try:
        return path.read_text(errors="replace")
    except OSError:
        return None


def list_agent_dirs(agents_dir: Path) -> list[Path]:
    try:
        children = list(agents_dir.iterdir())
    except OSError:
        return []
    dirs = []
    for child in children:
        try:
            if child.is_dir():
                dirs.append(child)
        except OSError:
            continue
    return sorted(dirs, key=lambda p: p.name)


def env_agents_dir() -> Path:
    configured = os.environ.get("AGENTDASH_AGENTS_DIR")
    if configured:
        return Path(configured)
    return Path.home() / ".agentchat" / "agents"
