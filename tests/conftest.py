"""Shared fixtures: keep every test away from the real config dir and log handlers."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from capgraph.core.capability import CapabilityEngine
from capgraph.core.store import InMemoryEntityStore


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in (
        "CAPGRAPH_CONFIG",
        "CAPGRAPH_LOG_LEVEL",
        "CAPGRAPH_LOG_FORMAT",
        "CAPGRAPH_DB_PATH",
        "CAPGRAPH_MAX_ROLE_DEPTH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def engine(store: InMemoryEntityStore) -> CapabilityEngine:
    return CapabilityEngine(store)
