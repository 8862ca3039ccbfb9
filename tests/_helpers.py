"""Shared test helpers.

Kept out of conftest.py so test modules can import them directly
(``from tests._helpers import FakeClock``).
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any


class FakeClock:
    """Manually advanced UTC clock for session and project timestamps."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _parse(content: list[Any]) -> Any:
    """Extract text content from an MCP result and parse as JSON if possible."""
    text = content[0].text
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text
