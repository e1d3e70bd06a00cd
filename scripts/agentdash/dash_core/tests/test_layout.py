from __future__ import annotations

import unittest
from pathlib import Path
import sys

from rich.console import Group
from rich.layout import Layout
from rich.text import Text

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from dash_core.layout import arrange, select_layout_mode  # noqa: E402


class LayoutTests(unittest.TestCase):
    def test_narrow(self):
        self.assertEqual(select_layout_mode(80), "narrow")

    def test_medium(self):
        self.assertEqual(select_layout_mode(120), "medium")

    def test_wide(self):
        self.assertEqual(select_layout_mode(180), "wide")
        self.assertEqual(select_layout_mode(160), "wide")

    def test_arrange_by_mode(self):
        parts = [Text(name) for name in ("agents", "detail", "logs", "chat", "status")]
        self.assertIsInstance(arrange("narrow", *parts), Group)
        medium = arrange("medium", *parts)
        self.assertIsInstance(medium, Layout)
        self.assertEqual(medium["logs"].renderable.plain, "logs")
        wide = arrange("wide", *parts)
        self.assertEqual(wide["agents"].ratio, 55)
        self.assertEqual(wide["chat"].ratio, 35)


if __name__ == "__main__":
    unittest.main()
