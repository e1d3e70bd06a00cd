from __future__ import annotations

import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from dash_core.chat.commands import Command, handle_input, parse_command  # noqa: E402


class ParseTests(unittest.TestCase):
    def test_plain_text_is_say(self):
        self.assertEqual(parse_command("  hello there "), Command("say", text="hello there"))

    def test_blank_is_none(self):
        self.assertIsNone(parse_command("   "))

    def test_channel_commands(self):
        self.assertEqual(parse_command("/join #ops"), Command("join", channel="#ops"))
        self.assertEqual(parse_command("/leave #ops"), Command("leave", channel="#ops"))
        self.assertEqual(parse_command("/channels"), Command("channels"))
        self.assertEqual(parse_command("/id"), Command("id"))

    def test_dm(self):
        self.assertEqual(parse_command("/dm @bob see you"), Command("dm", target="@bob", text="see you"))

    def test_malformed_commands_get_usage(self):
        self.assertEqual(parse_command("/join ops").kind, "invalid")
        self.assertEqual(parse_command("/join ops").text, "Usage: /join #channel")
        self.assertEqual(parse_command("/dm bob hi").text, "Usage: /dm @agent message")
        self.assertEqual(parse_command("/nope").text, "Unknown command: /nope")


class RecordingSession:
    def __init__(self):
        self.calls = []
        self.channels = ["#engineering", "#general"]
        self.agent_id = None

    async def send(self, channel, text):
        self.calls.append(("send", channel, text))

    async def switch_channel(self, channel):
        self.calls.append(("switch", channel))

    async def leave_channel(self, channel):
        self.calls.append(("leave", channel))

    def notify(self, text):
        self.calls.append(("notify", text))


class DispatchTests(unittest.IsolatedAsyncioTestCase):
    async def test_dispatch(self):
        session = RecordingSession()
        await handle_input(session, "hi all")
        await handle_input(session, "/join #ops")
        await handle_input(session, "/leave #ops")
        await handle_input(session, "/dm @bob yo")
        await handle_input(session, "/channels")
        await handle_input(session, "/id")
        await handle_input(session, "/bogus")
        self.assertEqual(
            session.calls,
            [
                ("send", None, "hi all"),
                ("switch", "#ops"),
                ("leave", "#ops"),
                ("send", "@bob", "yo"),
                ("notify", "Channels: #engineering, #general"),
                ("notify", "Agent ID: not connected"),
                ("notify", "Unknown command: /bogus"),
            ],
        )


if __name__ == "__main__":
    unittest.main()
