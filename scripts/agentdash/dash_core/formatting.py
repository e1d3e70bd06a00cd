"""Shared text and time formatting helpers for human-facing panels."""

from __future__ import annotations

from datetime import datetime, timezone

from dash_core.models import DEAD, RUNNING, STOPPED, STOPPING

STATUS_STYLE = {
    RUNNING: ("●", "green"),
    STOPPING: ("◐", "yellow"),
    STOPPED: ("○", "grey50"),
    DEAD: ("✗", "red"),
}

NAME_COLORS = ["red", "green", "yellow", "blue", "magenta", "cyan", "white"]
CHANNEL_COLORS = ["cyan", "magenta", "yellow", "green", "blue"]


def status_icon(status: str) -> str:
    return STATUS_STYLE.get(status, ("?", "grey50"))[0]


def status_color(status: str) -> str:
    return STATUS_STYLE.get(status, ("?", "grey50"))[1]


def format_uptime(seconds: float | int | None) -> str:
    if not seconds or seconds < 0:
        return "-"
    s = int(seconds)
    m = s // 60
    h = m // 60
    d = h // 24
    if d > 0:
        return f"{d}d {h % 24}h"
    if h > 0:
        return f"{h}h {m % 60}m"
    if m > 0:
        return f"{m}m {s % 60}s"
    return f"{s}s"


def _string_hash(text: str) -> int:
    # 32-bit signed rolling hash, stable across runs unlike hash()
    value = 0
    for ch in text:
        value = ((value << 5) - value + ord(ch)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def name_color(name: str) -> str:
    return NAME_COLORS[_string_hash(name) % len(NAME_COLORS)]


def channel_color(channel: str) -> str:
    return CHANNEL_COLORS[_string_hash(channel) % len(CHANNEL_COLORS)]


def channel_label(destination: str | None) -> str:
    if destination and destination.startswith("#"):
        return destination
    return "DM"


def parse_iso_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
