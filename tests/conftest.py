"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from mcp_mirror.settings import DATA_DIR_ENV
from mcp_mirror.store.sqlite import SqliteStore


class TickingClock:
    """Deterministic clock: every call returns a strictly later timestamp."""

    def __init__(self) -> None:
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return f"2026-01-01T00:00:00.{self.ticks:06d}Z"


@pytest.fixture(autouse=True)
def _isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the default data directory at a temp dir so no test touches ~/.mcp-mirror."""
    monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "home"))
    monkeypatch.delenv("MCP_MIRROR_PAGE_SIZE", raising=False)
    monkeypatch.delenv("MCP_MIRROR_TIMEOUT", raising=False)


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(tmp_path: Path, clock: TickingClock) -> Iterator[SqliteStore]:
    """An initialized store on a fresh database file."""
    with SqliteStore(tmp_path / "mirror.db", clock=clock) as s:
        yield s
