from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from dash_core.settings import (  # noqa: E402
    DEFAULT_SETTINGS,
    LOCAL_SERVER,
    PUBLIC_SERVER,
    resolve_identity_path,
    resolve_server_url,
    resolve_settings,
)

CLEAN_ENV = {"HOME": tempfile.gettempdir()}


class ServerUrlTests(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(resolve_server_url(None, False), LOCAL_SERVER)
        self.assertEqual(resolve_server_url(None, True), PUBLIC_SERVER)

    def test_remote_requires_public_opt_in(self):
        with self.assertRaises(ValueError):
            resolve_server_url("wss://chat.example.com", False)
        self.assertEqual(resolve_server_url("wss://chat.example.com", True), "wss://chat.example.com")

    def test_localhost_allowed(self):
        self.assertEqual(resolve_server_url("ws://127.0.0.1:7000", False), "ws://127.0.0.1:7000")


class IdentityTests(unittest.TestCase):
    def test_explicit_wins(self):
        self.assertEqual(resolve_identity_path("/x/id.json", "bob"), "/x/id.json")

    def test_named_identity_file_used_when_present(self):
        with tempfile.TemporaryDirectory() as tmp:
            identities = Path(tmp) / "identities"
            identities.mkdir()
            (identities / "bob.json").write_text("{}")
            with mock.patch("dash_core.settings.identities_dir", return_value=identities):
                self.assertEqual(resolve_identity_path(None, "bob"), str(identities / "bob.json"))
                self.assertIsNone(resolve_identity_path(None, "amy"))
                self.assertIsNone(resolve_identity_path(None, None))


class ResolveSettingsTests(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, CLEAN_ENV, clear=True):
            settings = resolve_settings()
        self.assertEqual(settings["refresh_seconds"], DEFAULT_SETTINGS["refresh_seconds"])
        self.assertEqual(settings["channels"], ["#general", "#engineering"])
        self.assertEqual(settings["server"], LOCAL_SERVER)
        self.assertIsNone(settings["identity"])

    def test_config_file_then_env_then_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            cfg = Path(tmp) / "cfg.json"
            cfg.write_text(
                json.dumps(
                    {"refresh_seconds": 0, "channels": ["#ops", "bad"], "name": "cfg", "dedupe_seconds": 2}
                )
            )
            env = dict(CLEAN_ENV, AGENTCHAT_NAME="envname")
            with mock.patch.dict(os.environ, env, clear=True):
                settings = resolve_settings(str(cfg), {"refresh_seconds": 7, "agents_dir": None})
        self.assertEqual(settings["refresh_seconds"], 7)
        self.assertEqual(settings["channels"], ["#ops"])
        self.assertEqual(settings["name"], "envname")
        self.assertEqual(settings["dedupe_seconds"], 2)
        self.assertNotIn("agents_dir", settings)

    def test_missing_and_invalid_config(self):
        with self.assertRaises(ValueError):
            resolve_settings("/nonexistent/cfg.json")
        with tempfile.TemporaryDirectory() as tmp:
            cfg = Path(tmp) / "cfg.json"
            cfg.write_text("{nope")
            with self.assertRaises(ValueError):
                resolve_settings(str(cfg))

    def test_public_env_switches_default_server(self):
        with mock.patch.dict(os.environ, dict(CLEAN_ENV, AGENTCHAT_PUBLIC="true"), clear=True):
            settings = resolve_settings()
        self.assertEqual(settings["server"], PUBLIC_SERVER)
        self.assertTrue(settings["public"])


if __name__ == "__main__":
    unittest.main()
