"""Settings resolution: built-in defaults, JSON config, environment, flags."""

from __future__ import annotations

import json
import os
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_SETTINGS: dict = {
    "refresh_seconds": 3,
    "tail_lines": 100,
    "debounce_ms": 100,
    "reconnect_seconds": 5,
    "max_message_length": 4096,
    "dedupe_seconds": 5,
    "channels": ["#general", "#engineering"],
    "name": "tui",
}

LOCAL_SERVER = "ws://localhost:6667"
PUBLIC_SERVER = "wss://agentchat-server.fly.dev"
LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}

POSITIVE_INT_KEYS = ("refresh_seconds", "tail_lines", "reconnect_seconds", "max_message_length")
NON_NEGATIVE_KEYS = ("debounce_ms", "dedupe_seconds")


def load_user_config(path: str | None) -> dict:
    if not path:
        return {}

    config_path = Path(path)
    if not config_path.exists():
        raise ValueError(f"config path not found: {config_path}")

    try:
        loaded = json.loads(config_path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON config: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ValueError("config must be a JSON object")
    return loaded


def env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() == "true"


def resolve_server_url(explicit: str | None, public: bool) -> str:
    if explicit:
        host = urlparse(explicit).hostname
        if not host:
            raise ValueError(f"invalid server URL: {explicit}")
        if host not in LOCAL_HOSTS and not public:
            raise ValueError(
                f'server points to remote host "{host}" but AGENTCHAT_PUBLIC is not set; '
                "set AGENTCHAT_PUBLIC=true to allow non-localhost servers"
            )
        return explicit
    return PUBLIC_SERVER if public else LOCAL_SERVER


def identities_dir() -> Path:
    return Path.home() / ".agentchat" / "identities"


def resolve_identity_path(explicit: str | None, name: str | None) -> str | None:
    if explicit:
        return explicit
    if name:
        candidate = identities_dir() / f"{name}.json"
        if candidate.exists():
            return str(candidate)
    return None


def resolve_settings(config_path: str | None = None, overrides: dict | None = None) -> dict:
    resolved = dict(DEFAULT_SETTINGS)
    resolved["channels"] = list(DEFAULT_SETTINGS["channels"])
    user_config = load_user_config(config_path)

    for key in POSITIVE_INT_KEYS:
        if key in user_config:
            resolved[key] = max(1, int(user_config[key]))
    for key in NON_NEGATIVE_KEYS:
        if key in user_config:
            resolved[key] = max(0, int(user_config[key]))

    channels = user_config.get("channels")
    if isinstance(channels, list):
        # channel names must be #-prefixed
        filtered = [str(c) for c in channels if str(c).startswith("#")]
        if filtered:
            resolved["channels"] = filtered

    for key in ("name", "server", "identity", "agents_dir", "agentctl", "transport"):
        if user_config.get(key):
            resolved[key] = str(user_config[key])

    env_map = {
        "AGENTCHAT_NAME": "name",
        "AGENTCHAT_URL": "server",
        "AGENTDASH_AGENTS_DIR": "agents_dir",
        "AGENTCTL_PATH": "agentctl",
        "AGENTDASH_TRANSPORT": "transport",
    }
    for env_name, key in env_map.items():
        value = os.environ.get(env_name)
        if value:
            resolved[key] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            resolved[key] = value

    explicit_name = (overrides or {}).get("name") or os.environ.get("AGENTCHAT_NAME") or user_config.get("name")
    public = env_flag("AGENTCHAT_PUBLIC")
    resolved["public"] = public
    resolved["server"] = resolve_server_url(resolved.get("server"), public)
    resolved["identity"] = resolve_identity_path(
        resolved.get("identity"), explicit_name or None
    )
    return resolved
