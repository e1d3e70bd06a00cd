"""Realtime chat session: connection lifecycle, channels, dedupe, fan-out.

State machine::

    idle -> connecting -> connected -> disconnected -> (backoff) -> connecting
                     +-> error -----------------------^
    any  -> idle                                   (explicit disconnect)

A session owns at most one transport at a time. Every reconnect builds a
fresh transport and drops the old one together with its handlers, and
handlers ignore events from any transport that is no longer current.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable

from dash_core.chat import transport as events
from dash_core.chat.dedupe import RecentMessages, fingerprint
from dash_core.chat.transport import ChatTransport, TransportFactory, TransportOptions
from dash_core.formatting import channel_label
from dash_core.models import CONNECTED, CONNECTING, DISCONNECTED, ERROR, IDLE, ChatEvent

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = ("#general", "#engineering")
RECONNECT_DELAY_SECONDS = 5.0
MAX_MESSAGE_LENGTH = 4096

# join/leave chatter the server sends for idempotent requests
NOISY_ERROR_RE = re.compile(r"channel.*not found|not a member|already", re.IGNORECASE)

EventListener = Callable[[ChatEvent], None]
StateListener = Callable[[str], None]


class ChatSession:
    def __init__(
        self,
        factory: TransportFactory,
        options: TransportOptions,
        *,
        default_channels: tuple[str, ...] | list[str] = DEFAULT_CHANNELS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        recent: RecentMessages | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if not default_channels:
            raise ValueError("at least one default channel is required")
        self._factory = factory
        self._options = options
        self._default_channel = default_channels[0]
        self._channels: set[str] = set(default_channels)
        self._active_channel = self._default_channel
        self._reconnect_delay = reconnect_delay
        self._max_message_length = max_message_length
        self._recent = recent or RecentMessages()
        self._loop = loop

        self._transport: ChatTransport | None = None
        self._state = IDLE
        self._agent_id: str | None = None
        self._closed = False
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task | None = None

        self._listeners: list[EventListener] = []
        self._state_listeners: list[StateListener] = []

    # -- accessors -----------------------------------------------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def connected(self) -> bool:
        transport = self._transport
        return self._state == CONNECTED and transport is not None and bool(transport.connected)

    @property
    def agent_id(self) -> str | None:
        return self._agent_id

    @property
    def active_channel(self) -> str:
        return self._active_channel

    @property
    def channels(self) -> list[str]:
        return sorted(self._channels)

    @property
    def name(self) -> str:
        return self._options.name

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # -- fan-out -------------------------------------------------------

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)
        return lambda: self._state_listeners.remove(listener) if listener in self._state_listeners else None

    def _emit(self, event: ChatEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("chat listener failed")

    def _set_state(self, state: str) -> None:
        if state == self._state:
            return
        logger.debug("chat session %s -> %s", self._state, state)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("chat state listener failed")

    def notify(self, text: str) -> None:
        self._emit(ChatEvent.notice(text))

    # -- lifecycle -----------------------------------------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    async def connect(self) -> None:
        if self._closed or self.connected or self._state == CONNECTING:
            return
        self._get_loop()
        self._cancel_reconnect_timer()
        await self._drop_transport()

        self._set_state(CONNECTING)
        transport = None
        try:
            transport = self._factory(self._options)
            self._transport = transport
            self._register_handlers(transport)
            await transport.connect()
        except Exception as exc:
            if transport is not None and transport is not self._transport:
                return
            logger.info("chat connect to %s failed: %s", self._options.server, exc)
            self._set_state(ERROR)
            self._emit(ChatEvent.failure(f"Connection failed: {exc}"))
            self._schedule_reconnect()
            return

        if transport is not self._transport or self._closed:
            return
        if self._state != CONNECTING:
            # dropped during the handshake; the disconnect handler rescheduled
            return
        self._agent_id = transport.agent_id
        self._set_state(CONNECTED)
        logger.info("chat connected to %s as %s", self._options.server, self._agent_id)

        for channel in sorted(self._channels):
            try:
                await transport.join(channel)
            except Exception as exc:
                logger.debug("rejoin of %s failed: %s", channel, exc)

    async def disconnect(self) -> None:
        self._closed = True
        self._cancel_reconnect_timer()
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        await self._drop_transport()
        self._set_state(IDLE)

    async def _drop_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        transport.remove_all_handlers()
        try:
            await transport.disconnect()
        except Exception as exc:
            logger.debug("closing previous transport failed: %s", exc)

    def _schedule_reconnect(self) -> None:
        if self._closed or self._reconnect_handle is not None:
            return
        logger.debug("reconnecting in %.1fs", self._reconnect_delay)
        self._reconnect_handle = self._get_loop().call_later(self._reconnect_delay, self._reconnect_due)

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if self._closed:
            return
        self._reconnect_task = self._get_loop().create_task(self.connect())

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # -- inbound -------------------------------------------------------

    def _register_handlers(self, transport: ChatTransport) -> None:
        def bind(handler: Callable[[dict[str, Any]], None]) -> Callable[[dict[str, Any]], None]:
            def guarded(payload: dict[str, Any]) -> None:
                if transport is not self._transport:
                    return
                handler(payload or {})

            return guarded

        transport.on(events.MESSAGE, bind(self._on_message))
        transport.on(events.AGENT_JOINED, bind(lambda p: self._on_presence(p, "joined")))
        transport.on(events.AGENT_LEFT, bind(lambda p: self._on_presence(p, "left")))
        transport.on(events.JOINED, bind(lambda p: self.notify(f"Joined {p.get('channel')}")))
        transport.on(events.LEFT, bind(lambda p: self.notify(f"Left {p.get('channel')}")))
        transport.on(events.ERROR, bind(self._on_error))
        transport.on(events.DISCONNECT, bind(self._on_disconnect))

    def _on_message(self, payload: dict[str, Any]) -> None:
        sender = payload.get("from")
        if sender is not None and sender == self._agent_id:
            return
        destination = str(payload.get("to") or "")
        content = str(payload.get("content") or "")
        if not self._recent.check_and_remember(fingerprint(sender, destination, content)):
            logger.debug("suppressed duplicate from %s to %s", sender, destination)
            return
        display = payload.get("from_name") or payload.get("name") or sender or "?"
        self._emit(
            ChatEvent(
                kind="msg",
                sender=str(display),
                channel=channel_label(destination),
                content=content,
            )
        )

    def _on_presence(self, payload: dict[str, Any], verb: str) -> None:
        channel = payload.get("channel")
        if channel not in self._channels:
            return
        who = payload.get("name") or payload.get("agent") or "?"
        self.notify(f"{who} {verb} {channel}")

    def _on_error(self, payload: dict[str, Any]) -> None:
        text = str(payload.get("message") or "Unknown error")
        if NOISY_ERROR_RE.search(text):
            logger.debug("suppressed server error: %s", text)
            return
        self._emit(ChatEvent.failure(text))

    def _on_disconnect(self, payload: dict[str, Any]) -> None:
        logger.info("chat disconnected from %s", self._options.server)
        self._set_state(DISCONNECTED)
        if not self._closed:
            self._schedule_reconnect()

    # -- outbound ------------------------------------------------------

    async def send(self, channel: str | None, text: str) -> bool:
        if not text or not text.strip():
            return False
        if len(text) > self._max_message_length:
            text = text[: self._max_message_length]
            self.notify(f"Message truncated to {self._max_message_length} chars")
        text = text.strip()

        transport = self._transport
        if not self.connected or transport is None:
            self._emit(ChatEvent.failure("Not connected"))
            return False

        destination = channel or self._active_channel
        try:
            await transport.send(destination, text)
        except Exception as exc:
            logger.info("send to %s failed: %s", destination, exc)
            self._emit(ChatEvent.failure(f"Send failed: {exc}"))
            return False

        self._recent.remember(fingerprint(self._agent_id, destination, text))
        self._emit(
            ChatEvent(
                kind="msg",
                sender=self._options.name,
                channel=channel_label(destination),
                content=text,
                is_self=True,
            )
        )
        return True

    async def join_channel(self, channel: str) -> None:
        self._channels.add(channel)
        transport = self._transport
        if self.connected and transport is not None:
            try:
                await transport.join(channel)
            except Exception as exc:
                self.notify(f"Could not join {channel}: {exc}")

    async def leave_channel(self, channel: str) -> None:
        self._channels.discard(channel)
        if self._active_channel == channel:
            self._active_channel = self._default_channel
        transport = self._transport
        if self.connected and transport is not None:
            try:
                await transport.leave(channel)
            except Exception as exc:
                self.notify(f"Could not leave {channel}: {exc}")

    async def switch_channel(self, channel: str) -> None:
        self._active_channel = channel
        if channel not in self._channels:
            await self.join_channel(channel)
