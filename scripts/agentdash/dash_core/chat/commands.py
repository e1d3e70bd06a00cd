"""Chat input line parsing and dispatch."""

from __future__ import annotations

import re
from dataclasses import dataclass

from dash_core.chat.session import ChatSession

JOIN_RE = re.compile(r"^/join\s+(#\S+)\s*$")
LEAVE_RE = re.compile(r"^/leave\s+(#\S+)\s*$")
DM_RE = re.compile(r"^/dm\s+(@\S+)\s+(.+)$")

USAGE = {
    "/join": "Usage: /join #channel",
    "/leave": "Usage: /leave #channel",
    "/dm": "Usage: /dm @agent message",
}


@dataclass(frozen=True)
class Command:
    kind: str
    channel: str = ""
    target: str = ""
    text: str = ""


def parse_command(line: str) -> Command | None:
    text = (line or "").strip()
    if not text:
        return None
    if not text.startswith("/"):
        return Command("say", text=text)

    if text == "/channels":
        return Command("channels")
    if text == "/id":
        return Command("id")

    match = JOIN_RE.match(text)
    if match:
        return Command("join", channel=match.group(1))
    match = LEAVE_RE.match(text)
    if match:
        return Command("leave", channel=match.group(1))
    match = DM_RE.match(text)
    if match:
        return Command("dm", target=match.group(1), text=match.group(2))

    verb = text.split()[0]
    return Command("invalid", text=USAGE.get(verb, f"Unknown command: {verb}"))


async def handle_input(session: ChatSession, line: str) -> Command | None:
    command = parse_command(line)
    if command is None:
        return None

    if command.kind == "say":
        await session.send(None, command.text)
    elif command.kind == "join":
        await session.switch_channel(command.channel)
    elif command.kind == "leave":
        await session.leave_channel(command.channel)
    elif command.kind == "channels":
        session.notify(f"Channels: {', '.join(session.channels)}")
    elif command.kind == "id":
        session.notify(f"Agent ID: {session.agent_id or 'not connected'}")
    elif command.kind == "dm":
        await session.send(command.target, command.text)
    else:
        session.notify(command.text)
    return command
