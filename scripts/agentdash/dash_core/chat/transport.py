"""Transport contract the chat session drives.

The wire protocol lives outside this package. Anything that satisfies
``ChatTransport`` can be plugged in through a ``module:callable`` factory
target, the callable receiving ``TransportOptions``.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable, Protocol

MESSAGE = "message"
AGENT_JOINED = "agent_joined"
AGENT_LEFT = "agent_left"
JOINED = "joined"
LEFT = "left"
ERROR = "error"
DISCONNECT = "disconnect"

EventHandler = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class TransportOptions:
    server: str
    name: str
    identity: str | None = None


class ChatTransport(Protocol):
    """One underlying connection. Payloads are plain dicts.

    ``message`` payloads carry ``from``, optional ``from_name``/``name``,
    ``to`` and ``content``; presence payloads carry ``channel`` and
    ``name``/``agent``; ``error`` payloads carry ``message``.
    """

    agent_id: str | None

    @property
    def connected(self) -> bool: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def remove_all_handlers(self) -> None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def send(self, destination: str, text: str) -> None: ...

    async def join(self, channel: str) -> None: ...

    async def leave(self, channel: str) -> None: ...


TransportFactory = Callable[[TransportOptions], ChatTransport]


def load_transport_factory(target: str) -> TransportFactory:
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"transport must look like 'module:callable', got: {target}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"cannot import transport module {module_name}: {exc}") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"transport factory not found: {target}")
    return factory
