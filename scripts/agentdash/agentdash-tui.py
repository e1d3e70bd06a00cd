#!/usr/bin/env python3
"""Thin compatibility entrypoint for the modular agentdash TUI."""

from __future__ import annotations

from dash_core.app import main


if __name__ == "__main__":
    raise SystemExit(main())
