"""Shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from quake_reconcile.store import MemoryEventStore


@pytest.fixture
def store():
    return MemoryEventStore()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)
