"""Shared fixtures for offline tests.

Home Assistant is imported for real; only its ``Store`` is swapped for an
in-memory double so nothing touches the config directory.
"""

import os
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

# Only load pytest-asyncio explicitly when plugin auto-loading is disabled.
if os.environ.get("PYTEST_DISABLE_PLUGIN_AUTOLOAD") == "1":
    pytest_plugins = ("pytest_asyncio.plugin",)

# Ensure project root is on sys.path for module imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from custom_components.semester_planner import storage as storage_mod  # noqa: E402
from custom_components.semester_planner.const import DOMAIN  # noqa: E402


class MemoryStore:
    """Store double keeping documents in a dict shared per test."""

    documents: dict[str, Any] = {}
    fail_saves: bool = False
    fail_keys: frozenset[str] = frozenset()

    def __init__(self, _hass: Any, version: int, key: str, *args: Any, **kwargs: Any) -> None:
        self.version = version
        self.key = key
        self.save_count = 0

    async def async_load(self) -> Any:
        return self.documents.get(self.key)

    async def async_save(self, data: Any) -> None:
        if MemoryStore.fail_saves or self.key in MemoryStore.fail_keys:
            raise OSError("disk full")
        self.save_count += 1
        self.documents[self.key] = data


@pytest.fixture(autouse=True)
def memory_store(monkeypatch) -> dict[str, Any]:
    """Route DomainStore through MemoryStore; returns the stored documents."""

    documents: dict[str, Any] = {}
    monkeypatch.setattr(MemoryStore, "documents", documents)
    monkeypatch.setattr(MemoryStore, "fail_saves", False)
    monkeypatch.setattr(MemoryStore, "fail_keys", frozenset())
    monkeypatch.setattr(storage_mod, "Store", MemoryStore)
    return documents


@pytest.fixture
def hass() -> MagicMock:
    """Minimal hass: a real data dict and a recording services registry."""

    mock = MagicMock()
    mock.data = {DOMAIN: {}}
    return mock
