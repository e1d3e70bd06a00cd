from __future__ import annotations

import asyncio
import unittest
from collections import defaultdict
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from dash_core.chat.dedupe import RecentMessages  # noqa: E402
from dash_core.chat.session import ChatSession  # noqa: E402
from dash_core.chat.transport import TransportOptions  # noqa: E402
from dash_core.models import CONNECTED, DISCONNECTED, ERROR, IDLE  # noqa: E402

RECONNECT = 0.05


class FakeTransport:
    def __init__(self, options, agent_id="agent-1", fail_connect=None, fail_join=()):
        self.options = options
        self.agent_id = None
        self._assigned = agent_id
        self._connected = False
        self.fail_connect = fail_connect
        self.fail_join = set(fail_join)
        self.handlers = defaultdict(list)
        self.sent: list[tuple[str, str]] = []
        self.joined: list[str] = []
        self.left: list[str] = []
        self.closed = False
        self.handlers_at_connect: list[str] = []

    @property
    def connected(self):
        return self._connected

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def remove_all_handlers(self):
        self.handlers.clear()

    async def connect(self):
        self.handlers_at_connect = sorted(self.handlers)
        if self.fail_connect is not None:
            raise self.fail_connect
        self._connected = True
        self.agent_id = self._assigned

    async def disconnect(self):
        self._connected = False
        self.closed = True

    async def send(self, destination, text):
        self.sent.append((destination, text))

    async def join(self, channel):
        if channel in self.fail_join:
            raise RuntimeError(f"cannot join {channel}")
        self.joined.append(channel)

    async def leave(self, channel):
        self.left.append(channel)

    def emit(self, event, payload):
        for handler in list(self.handlers[event]):
            handler(payload)

    def drop(self):
        self._connected = False
        self.emit("disconnect", {})


class FakeFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created: list[FakeTransport] = []

    def __call__(self, options):
        transport = FakeTransport(options, **self.kwargs)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    factory_kwargs: dict = {}

    def setUp(self):
        self.factory = FakeFactory(**self.factory_kwargs)
        self.now = [0.0]
        self.session = ChatSession(
            self.factory,
            TransportOptions(server="ws://localhost:6667", name="tui"),
            reconnect_delay=RECONNECT,
            max_message_length=10,
            recent=RecentMessages(5.0, clock=lambda: self.now[0]),
        )
        self.events = []
        self.states = []
        self.session.add_listener(self.events.append)
        self.session.add_state_listener(self.states.append)

    async def asyncTearDown(self):
        await self.session.disconnect()

    def kinds(self):
        return [e.kind for e in self.events]


class ConnectTests(SessionTestCase):
    async def test_connect_records_id_and_joins_desired_channels(self):
        await self.session.connect()
        transport = self.factory.last
        self.assertEqual(self.session.state, CONNECTED)
        self.assertTrue(self.session.connected)
        self.assertEqual(self.session.agent_id, "agent-1")
        self.assertEqual(sorted(transport.joined), ["#engineering", "#general"])
        self.assertEqual(self.states, ["connecting", "connected"])

    async def test_handlers_registered_before_handshake(self):
        await self.session.connect()
        self.assertIn("message", self.factory.last.handlers_at_connect)
        self.assertIn("disconnect", self.factory.last.handlers_at_connect)

    async def test_connect_when_connected_is_noop(self):
        await self.session.connect()
        await self.session.connect()
        self.assertEqual(len(self.factory.created), 1)

    async def test_explicit_disconnect_is_permanent(self):
        await self.session.connect()
        transport = self.factory.last
        await self.session.disconnect()
        self.assertTrue(transport.closed)
        self.assertEqual(self.session.state, IDLE)
        self.assertFalse(self.session.reconnect_pending)
        await self.session.connect()
        self.assertEqual(len(self.factory.created), 1)


class JoinFailureTests(SessionTestCase):
    factory_kwargs = {"fail_join": {"#engineering"}}

    async def test_one_failed_join_does_not_block_others(self):
        await self.session.connect()
        self.assertEqual(self.factory.last.joined, ["#general"])
        self.assertTrue(self.session.connected)
        self.assertNotIn("error", self.kinds())


class ConnectFailureTests(SessionTestCase):
    factory_kwargs = {"fail_connect": OSError("connection refused")}

    async def test_failed_connect_reports_and_schedules_retry(self):
        await self.session.connect()
        self.assertEqual(self.session.state, ERROR)
        self.assertEqual(self.events[-1].kind, "error")
        self.assertIn("connection refused", self.events[-1].text)
        self.assertTrue(self.session.reconnect_pending)

        await asyncio.sleep(RECONNECT * 3)
        self.assertGreaterEqual(len(self.factory.created), 2)

    async def test_transport_construction_failure_retries(self):
        calls = []
        build = self.factory

        def flaky_factory(options):
            calls.append(options)
            if len(calls) == 1:
                raise OSError("identity file unreadable")
            return build(options)

        session = ChatSession(
            flaky_factory,
            TransportOptions(server="ws://localhost:6667", name="tui"),
            reconnect_delay=RECONNECT,
        )
        events = []
        session.add_listener(events.append)
        build.kwargs = {}
        try:
            await session.connect()
            self.assertEqual(session.state, ERROR)
            self.assertTrue(session.reconnect_pending)
            self.assertIn("identity file unreadable", events[-1].text)

            await asyncio.sleep(RECONNECT * 3)
            self.assertEqual(len(calls), 2)
            self.assertTrue(session.connected)
            self.assertEqual(session.state, CONNECTED)
        finally:
            await session.disconnect()

    async def test_disconnect_cancels_pending_retry(self):
        await self.session.connect()
        await self.session.disconnect()
        await asyncio.sleep(RECONNECT * 3)
        self.assertEqual(len(self.factory.created), 1)


class ReconnectTests(SessionTestCase):
    async def test_two_quick_drops_arm_one_timer(self):
        await self.session.connect()
        transport = self.factory.last
        transport.drop()
        handle = self.session._reconnect_handle
        transport.drop()
        self.assertIs(self.session._reconnect_handle, handle)
        self.assertEqual(self.session.state, DISCONNECTED)

        await asyncio.sleep(RECONNECT * 3)
        self.assertEqual(len(self.factory.created), 2)
        self.assertTrue(self.session.connected)
        self.assertTrue(transport.closed)
        self.assertEqual(dict(transport.handlers), {})

    async def test_rejoins_channels_added_while_connected(self):
        await self.session.connect()
        await self.session.join_channel("#ops")
        self.factory.last.drop()
        await asyncio.sleep(RECONNECT * 3)
        self.assertIn("#ops", self.factory.last.joined)

    async def test_stale_transport_events_ignored(self):
        await self.session.connect()
        old = self.factory.last
        captured = list(old.handlers["message"])
        old.drop()
        await asyncio.sleep(RECONNECT * 3)
        for handler in captured:
            handler({"from": "bob", "to": "#general", "content": "ghost"})
        self.assertNotIn("ghost", [e.content for e in self.events])


class SendTests(SessionTestCase):
    async def test_send_while_disconnected_is_one_error_and_no_transmit(self):
        sent = await self.session.send(None, "hello")
        self.assertFalse(sent)
        self.assertEqual([(e.kind, e.text) for e in self.events], [("error", "Not connected")])
        self.assertEqual(self.factory.created, [])

    async def test_blank_text_is_noop(self):
        await self.session.connect()
        self.events.clear()
        self.assertFalse(await self.session.send(None, "   "))
        self.assertEqual(self.events, [])
        self.assertEqual(self.factory.last.sent, [])

    async def test_long_text_truncated_with_notice(self):
        await self.session.connect()
        self.events.clear()
        await self.session.send(None, "abcdefghijKLMN")
        self.assertEqual(self.factory.last.sent, [("#general", "abcdefghij")])
        self.assertEqual(self.events[0].kind, "system")
        self.assertIn("truncated to 10", self.events[0].text)

    async def test_local_echo_and_remote_echo_deliver_once(self):
        await self.session.connect()
        self.events.clear()
        await self.session.send("#general", "hello")
        self.factory.last.emit("message", {"from": "agent-1", "to": "#general", "content": "hello"})
        messages = [e for e in self.events if e.kind == "msg"]
        self.assertEqual(len(messages), 1)
        self.assertTrue(messages[0].is_self)
        self.assertEqual(messages[0].sender, "tui")

    async def test_direct_message_destination(self):
        await self.session.connect()
        await self.session.send("@bob", "psst")
        self.assertEqual(self.factory.last.sent, [("@bob", "psst")])
        echo = [e for e in self.events if e.kind == "msg"][-1]
        self.assertTrue(echo.is_self)
        self.assertEqual(echo.channel, "DM")


class InboundTests(SessionTestCase):
    async def asyncSetUp(self):
        await self.session.connect()
        self.transport = self.factory.last
        self.events.clear()

    async def test_replayed_message_within_window_suppressed(self):
        payload = {"from": "bob-id", "from_name": "bob", "to": "#general", "content": "hi"}
        self.transport.emit("message", payload)
        self.now[0] += 2
        self.transport.emit("message", payload)
        self.assertEqual(len(self.events), 1)
        self.assertEqual(self.events[0].sender, "bob")
        self.assertEqual(self.events[0].channel, "#general")

        self.now[0] += 10
        self.transport.emit("message", payload)
        self.assertEqual(len(self.events), 2)

    async def test_direct_message_labelled_dm(self):
        self.transport.emit("message", {"from": "bob-id", "to": "agent-1", "content": "yo"})
        self.assertEqual(self.events[0].channel, "DM")
        self.assertEqual(self.events[0].sender, "bob-id")

    async def test_presence_only_for_desired_channels(self):
        self.transport.emit("agent_joined", {"channel": "#general", "name": "bob"})
        self.transport.emit("agent_left", {"channel": "#random", "agent": "amy"})
        self.assertEqual([e.text for e in self.events], ["bob joined #general"])

    async def test_noisy_errors_suppressed(self):
        self.transport.emit("error", {"message": "Channel #x not found"})
        self.transport.emit("error", {"message": "Already a member"})
        self.transport.emit("error", {"message": "rate limited"})
        self.transport.emit("error", {})
        self.assertEqual([e.text for e in self.events], ["rate limited", "Unknown error"])

    async def test_joined_and_left_notices(self):
        self.transport.emit("joined", {"channel": "#ops"})
        self.transport.emit("left", {"channel": "#ops"})
        self.assertEqual([e.text for e in self.events], ["Joined #ops", "Left #ops"])


class ChannelTests(SessionTestCase):
    async def test_switch_to_new_channel_joins_it(self):
        await self.session.connect()
        await self.session.switch_channel("#ops")
        self.assertEqual(self.session.active_channel, "#ops")
        self.assertIn("#ops", self.session.channels)
        self.assertIn("#ops", self.factory.last.joined)

    async def test_leaving_active_channel_falls_back_to_default(self):
        await self.session.connect()
        await self.session.switch_channel("#ops")
        await self.session.leave_channel("#ops")
        self.assertEqual(self.session.active_channel, "#general")
        self.assertNotIn("#ops", self.session.channels)
        self.assertEqual(self.factory.last.left, ["#ops"])

    async def test_join_while_disconnected_updates_desired_set_only(self):
        await self.session.join_channel("#later")
        self.assertIn("#later", self.session.channels)
        await self.session.connect()
        self.assertIn("#later", self.factory.last.joined)


if __name__ == "__main__":
    unittest.main()
