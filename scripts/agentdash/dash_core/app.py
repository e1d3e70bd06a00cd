"""Modular TUI application entrypoint for agentdash."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.live import Live

from dash_core.chat.commands import handle_input
from dash_core.chat.dedupe import RecentMessages
from dash_core.chat.session import ChatSession
from dash_core.chat.transport import TransportOptions, load_transport_factory
from dash_core.collectors import env_agents_dir, read_text
from dash_core.collectors.agents import collect as collect_agents
from dash_core.collectors.agents import filter_agents, scan_agents
from dash_core.collectors.chat import ChatBuffer
from dash_core.collectors.chat import collect as collect_chat
from dash_core.collectors.logs import SOURCE_CONTROL, SOURCE_NOTICE, LogBuffer
from dash_core.collectors.logs import collect as collect_logs
from dash_core.control import find_agentctl, run_control
from dash_core.layout import arrange, select_layout_mode
from dash_core.models import IDLE, RUNNING, AgentRecord, ChatEvent
from dash_core.panels.agents import render as render_agents
from dash_core.panels.chat import render as render_chat
from dash_core.panels.detail import render as render_detail
from dash_core.panels.header import render as render_header
from dash_core.panels.logs import render as render_logs
from dash_core.settings import resolve_settings
from dash_core.tailer import LogTailStreamer

logger = logging.getLogger(__name__)

FOCUS_ORDER = ["agents", "logs", "chat"]
REDRAW_SECONDS = 0.25
POST_CONTROL_REFRESH_SECONDS = 1.0

HELP_LINES = [
    "Keybindings:",
    "  Tab / Shift+Tab  cycle focus: agents -> logs -> chat",
    "  i                type in chat",
    "  j/k              navigate agent list",
    "  s                start selected agent",
    "  x                stop selected agent",
    "  r                restart selected agent",
    "  K                kill selected agent (requires confirmation)",
    "  c                view agent context.md",
    "  /                filter agents by name",
    "  Escape           clear filter / leave chat / cancel",
    "  ?                show this help",
    "  q                quit",
    "Chat commands:",
    "  /join #channel   switch active channel",
    "  /leave #channel  leave a channel",
    "  /channels        list joined channels",
    "  /id              show your agent ID",
    "  /dm @agent text  direct message",
]


class Dashboard:
    """Owns the scan snapshot, the single log subscription and the chat session."""

    def __init__(
        self,
        settings: dict,
        agents_dir: Path,
        session: ChatSession | None = None,
        streamer: LogTailStreamer | None = None,
        agentctl: Path | None = None,
    ) -> None:
        self.settings = settings
        self.agents_dir = agents_dir
        self.session = session
        self.streamer = streamer or LogTailStreamer(
            tail_lines=int(settings["tail_lines"]),
            debounce_seconds=int(settings["debounce_ms"]) / 1000.0,
        )
        self.agentctl = agentctl

        self.records: tuple[AgentRecord, ...] = ()
        self.visible: list[AgentRecord] = []
        self.selected = 0
        self.filter_text = ""
        self.focus = "agents"
        self.logs = LogBuffer()
        self.chat = ChatBuffer()
        self.chat_state = IDLE
        self.streamed_agent: str | None = None

        self.prompt: str | None = None
        self.draft = ""
        self.confirm: tuple[str, str] | None = None
        self.status_message: str | None = None
        self.dirty = True
        self._tasks: set[asyncio.Task] = set()

        if session is not None:
            session.add_listener(self._on_chat_event)
            session.add_state_listener(self._on_chat_state)

    # -- state -----------------------------------------------------------

    def selected_agent(self) -> AgentRecord | None:
        if 0 <= self.selected < len(self.visible):
            return self.visible[self.selected]
        return None

    def refresh(self) -> None:
        previous = self.selected_agent()
        self.records = scan_agents(self.agents_dir)
        self._apply_filter(previous.name if previous else None)
        self.dirty = True

    def _apply_filter(self, keep_name: str | None) -> None:
        self.visible = filter_agents(self.records, self.filter_text)
        if keep_name is not None:
            for idx, record in enumerate(self.visible):
                if record.name == keep_name:
                    self.selected = idx
                    break
        if self.selected >= len(self.visible):
            self.selected = max(0, len(self.visible) - 1)
        current = self.selected_agent()
        if (current.name if current else None) != self.streamed_agent:
            self.switch_log_stream()

    def select(self, index: int) -> None:
        if not self.visible:
            return
        index = max(0, min(index, len(self.visible) - 1))
        if index != self.selected:
            self.selected = index
            self.switch_log_stream()
            self.dirty = True

    def switch_log_stream(self) -> None:
        agent = self.selected_agent()
        if agent is None:
            self.streamer.stop()
            self.streamed_agent = None
            self.logs.reset("logs")
            return
        self.logs.reset(f"logs: {agent.name}")
        self.streamed_agent = agent.name
        self.streamer.start(agent.log_path, self._on_log_lines)

    def _on_log_lines(self, lines: list[str]) -> None:
        self.logs.extend(lines)
        self.dirty = True

    def _on_chat_event(self, event: ChatEvent) -> None:
        self.chat.append(event)
        self.dirty = True

    def _on_chat_state(self, state: str) -> None:
        self.chat_state = state
        self.dirty = True

    def log_notice(self, text: str, source: str = SOURCE_NOTICE) -> None:
        self.logs.extend([text], source)
        self.dirty = True

    # -- control ---------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def control(self, action: str, agent: AgentRecord, extra: str | None = None) -> None:
        if self.agentctl is None:
            self.status_message = "agentctl.sh not found"
            self.dirty = True
            return
        args = " ".join([action, agent.name] + ([extra] if extra else []))
        self.log_notice(f"> agentctl {args}", SOURCE_CONTROL)
        result = await run_control(self.agentctl, action, agent.name, extra)
        self.logs.extend([f"> {line}" for line in result.lines], SOURCE_CONTROL)
        if result.error and not result.lines:
            self.log_notice(f"> Error: {result.error}", SOURCE_CONTROL)
        self.status_message = None
        self.dirty = True
        await asyncio.sleep(POST_CONTROL_REFRESH_SECONDS)
        self.refresh()

    def request_start(self, agent: AgentRecord) -> None:
        if agent.status == RUNNING:
            self.log_notice(f"{agent.name} is already running")
            return
        if agent.mission:
            self._spawn(self.control("start", agent, agent.mission))
            return
        self.prompt = f"mission:{agent.name}"
        self.draft = ""
        self.dirty = True

    def request_stop(self, agent: AgentRecord) -> None:
        if agent.status != RUNNING:
            self.log_notice(f"{agent.name} is not running")
            return
        self._spawn(self.control("stop", agent))

    def show_context(self, agent: AgentRecord) -> None:
        content = read_text(agent.context_path)
        if content is None:
            self.log_notice("No context file")
            return
        # the tail must not append into the context view
        self.streamer.stop()
        self.logs.reset(f"context: {agent.name}")
        self.logs.extend(content.split("\n"))
        self.dirty = True

    def show_help(self) -> None:
        self.streamer.stop()
        self.logs.reset("help")
        self.logs.extend(HELP_LINES)
        self.dirty = True

    # -- input -----------------------------------------------------------

    def set_focus(self, panel: str) -> None:
        self.focus = panel
        self.draft = "" if panel != "chat" else self.draft
        self.dirty = True

    def cycle_focus(self, step: int) -> None:
        idx = FOCUS_ORDER.index(self.focus)
        self.set_focus(FOCUS_ORDER[(idx + step) % len(FOCUS_ORDER)])

    async def handle_key(self, key: str) -> bool:
        """Apply one key; False means quit."""
        self.dirty = True
        if key == "\x03":
            return False
        if self.prompt is not None:
            await self._prompt_key(key)
            return True
        if self.focus == "chat":
            await self._chat_key(key)
            return True
        if key in ("\t", "\x1b[Z"):
            if self.confirm is None:
                self.cycle_focus(1 if key == "\t" else -1)
            return True
        return await self._command_key(key)

    async def _command_key(self, key: str) -> bool:
        agent = self.selected_agent()
        if self.confirm is not None:
            action, name = self.confirm
            if key == "y":
                self.confirm = None
                self.status_message = None
                target = next((r for r in self.records if r.name == name), None)
                if target is not None:
                    self._spawn(self.control(action, target))
            elif key in ("n", "K", "\x1b"):
                self.confirm = None
                self.status_message = None
            return True

        if key == "q":
            return False
        if key == "j" and self.focus == "agents":
            self.select(self.selected + 1)
        elif key == "k" and self.focus == "agents":
            self.select(self.selected - 1)
        elif key == "/":
            self.prompt = "filter"
            self.draft = self.filter_text
        elif key == "?":
            self.show_help()
        elif key == "i":
            self.set_focus("chat")
        elif key == "\x1b":
            if self.filter_text:
                self.filter_text = ""
                self._apply_filter(agent.name if agent else None)
        elif agent is None:
            return True
        elif key == "s":
            self.request_start(agent)
        elif key == "x":
            self.request_stop(agent)
        elif key == "r":
            self._spawn(self.control("restart", agent))
        elif key == "K":
            self.confirm = ("kill", agent.name)
            self.status_message = f"Kill {agent.name}? [y]es [n]o"
        elif key == "c":
            self.show_context(agent)
        return True

    async def _prompt_key(self, key: str) -> None:
        if key == "\x1b":
            self.prompt = None
            self.draft = ""
            return
        if key in ("\r", "\n"):
            prompt, value = self.prompt, self.draft.strip()
            self.prompt = None
            self.draft = ""
            if prompt == "filter":
                current = self.selected_agent()
                self.filter_text = value
                self._apply_filter(current.name if current else None)
            elif prompt and prompt.startswith("mission:") and value:
                name = prompt.split(":", 1)[1]
                target = next((r for r in self.records if r.name == name), None)
                if target is not None:
                    self._spawn(self.control("start", target, value))
            return
        self._edit_draft(key)

    async def _chat_key(self, key: str) -> None:
        if key == "\x1b":
            self.draft = ""
            self.set_focus("agents")
            return
        if key in ("\t", "\x1b[Z"):
            self.cycle_focus(1 if key == "\t" else -1)
            return
        if key in ("\r", "\n"):
            line, self.draft = self.draft, ""
            if self.session is None:
                self.chat.append(ChatEvent.failure("Chat disabled: no transport configured"))
                return
            await handle_input(self.session, line)
            return
        self._edit_draft(key)

    def _edit_draft(self, key: str) -> None:
        if key in ("\x7f", "\x08"):
            self.draft = self.draft[:-1]
        elif key.isprintable():
            self.draft += key

    # -- rendering -------------------------------------------------------

    def render(self, width: int, height: int):
        mode = select_layout_mode(width)
        session = self.session
        channel = session.active_channel if session else "chat"
        panel_height = max(5, height - 6)

        agents = render_agents(
            collect_agents(self.records, self.filter_text),
            self.selected,
            self.focus == "agents",
        )
        detail = render_detail(self.selected_agent())
        logs = render_logs(collect_logs(self.logs), panel_height, self.focus == "logs")
        draft = self.draft if self.focus == "chat" else None
        chat = render_chat(collect_chat(self.chat, channel, self.chat_state), draft, panel_height, self.focus == "chat")

        message = self.status_message
        if self.prompt is not None:
            label = "filter" if self.prompt == "filter" else f"mission for {self.prompt.split(':', 1)[1]}"
            message = f"{label}: {self.draft}"
        header = render_header(
            focus=self.focus,
            name=session.name if session else str(self.settings.get("name", "tui")),
            persistent_identity=bool(self.settings.get("identity")),
            chat_state=self.chat_state,
            channel=channel,
            message=message,
        )

        return arrange(mode, agents, detail, logs, chat, header)

    # -- run loop --------------------------------------------------------

    async def _rescan_loop(self) -> None:
        interval = max(1, int(self.settings["refresh_seconds"]))
        while True:
            await asyncio.sleep(interval)
            try:
                self.refresh()
            except OSError as exc:
                logger.warning("agent scan failed: %s", exc)

    async def run_live(self, console: Console) -> int:
        loop = asyncio.get_running_loop()
        stop = asyncio.Event()
        keys: asyncio.Queue[str] = asyncio.Queue()

        fd = sys.stdin.fileno()
        restore = _enter_cbreak(fd)
        if restore is not None:
            loop.add_reader(fd, _read_keys, fd, keys)
        try:
            loop.add_signal_handler(signal.SIGINT, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

        self.refresh()
        if self.session is None:
            self.chat.append(ChatEvent.notice("Chat disabled: no transport configured (--transport module:factory)"))
        else:
            identity = "persistent identity" if self.settings.get("identity") else "ephemeral"
            self.chat.append(ChatEvent.notice(f"Connecting to {self.settings['server']} as {identity}: {self.session.name}"))
            self.chat.append(ChatEvent.notice(f"Channels: {', '.join(self.session.channels)}"))
            self.chat.append(ChatEvent.notice("Type /join #channel to switch, ? for help"))
            self._spawn(self.session.connect())

        rescan = loop.create_task(self._rescan_loop())
        try:
            with Live(console=console, auto_refresh=False, screen=True) as live:
                while not stop.is_set():
                    try:
                        key = await asyncio.wait_for(keys.get(), timeout=REDRAW_SECONDS)
                    except asyncio.TimeoutError:
                        key = None
                    if key is not None and not await self.handle_key(key):
                        break
                    if self.dirty:
                        self.dirty = False
                        live.update(self.render(console.size.width, console.size.height), refresh=True)
        finally:
            rescan.cancel()
            if restore is not None:
                loop.remove_reader(fd)
                restore()
            await self.shutdown()
        return 0

    async def shutdown(self) -> None:
        self.streamer.close()
        if self.session is not None:
            await self.session.disconnect()
        for task in list(self._tasks):
            task.cancel()


ESCAPES = ("\x1b[Z",)


def _split_keys(text: str) -> list[str]:
    keys = []
    i = 0
    while i < len(text):
        matched = next((seq for seq in ESCAPES if text.startswith(seq, i)), None)
        if matched:
            keys.append(matched)
            i += len(matched)
        elif text.startswith("\x1b[", i):
            # unbound arrow/function key sequence
            j = i + 2
            while j < len(text) and not text[j].isalpha() and text[j] != "~":
                j += 1
            i = j + 1
        else:
            keys.append(text[i])
            i += 1
    return keys


def _read_keys(fd: int, keys: asyncio.Queue) -> None:
    try:
        data = os.read(fd, 64)
    except OSError:
        return
    for key in _split_keys(data.decode("utf-8", errors="ignore")):
        keys.put_nowait(key)


def _enter_cbreak(fd: int):
    """Non-canonical, no-echo input; returns a restore callable or None."""
    try:
        import termios
    except ImportError:
        return None
    try:
        old_settings = termios.tcgetattr(fd)
        new = termios.tcgetattr(fd)
        new[3] &= ~(termios.ICANON | termios.ECHO)
        new[6][termios.VMIN] = 1
        new[6][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSADRAIN, new)
    except termios.error:
        return None

    def restore() -> None:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    return restore


def configure_logging(path: str | None, verbose: bool = False) -> None:
    package_logger = logging.getLogger("dash_core")
    if not path:
        package_logger.addHandler(logging.NullHandler())
        package_logger.propagate = False
        return
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def build_session(settings: dict) -> ChatSession | None:
    target = settings.get("transport")
    if not target:
        return None
    factory = load_transport_factory(target)
    options = TransportOptions(
        server=settings["server"],
        name=settings["name"],
        identity=settings.get("identity"),
    )
    return ChatSession(
        factory,
        options,
        default_channels=settings["channels"],
        reconnect_delay=float(settings["reconnect_seconds"]),
        max_message_length=int(settings["max_message_length"]),
        recent=RecentMessages(float(settings["dedupe_seconds"])),
    )


def _json_output(records: tuple[AgentRecord, ...]) -> str:
    payload = {
        "collected_at": datetime.now(timezone.utc).isoformat(),
        "agents": [record.to_dict() for record in records],
    }
    return json.dumps(payload, indent=2)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Agent supervisor dashboard with live logs and group chat")
    parser.add_argument("-l", "--live", action="store_true", help="Run interactive live dashboard")
    parser.add_argument("--json", action="store_true", help="Emit agent snapshot as JSON")
    parser.add_argument("--config", help="Optional JSON config file for setting overrides")
    parser.add_argument("--refresh", type=int, help="Rescan interval seconds override")
    parser.add_argument("--agents-dir", help="Override agents directory")
    parser.add_argument("--server", help="Chat server URL")
    parser.add_argument("--name", help="Chat display name (default: tui)")
    parser.add_argument("--identity", help="Identity file path")
    parser.add_argument("--transport", help="Chat transport factory, as module:callable")
    parser.add_argument("--agentctl", help="Path to agentctl.sh")
    parser.add_argument("--log-file", default=os.environ.get("AGENTDASH_LOG_FILE"), help="Write debug log here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug-level logging")
    args = parser.parse_args(argv)

    configure_logging(args.log_file, args.verbose)

    try:
        settings = resolve_settings(
            args.config,
            {
                "refresh_seconds": args.refresh,
                "agents_dir": args.agents_dir,
                "server": args.server,
                "name": args.name,
                "identity": args.identity,
                "transport": args.transport,
                "agentctl": args.agentctl,
            },
        )
        session = build_session(settings) if args.live else None
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    agents_dir = Path(settings["agents_dir"]).expanduser() if settings.get("agents_dir") else env_agents_dir()

    if args.json:
        print(_json_output(scan_agents(agents_dir)))
        return 0

    console = Console()
    dashboard = Dashboard(settings, agents_dir, session=session, agentctl=find_agentctl(settings.get("agentctl")))

    if args.live:
        try:
            return asyncio.run(dashboard.run_live(console))
        except KeyboardInterrupt:
            return 0

    dashboard.records = scan_agents(agents_dir)
    dashboard.visible = list(dashboard.records)
    console.print(dashboard.render(console.size.width, console.size.height))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
