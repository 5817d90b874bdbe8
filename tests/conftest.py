"""Shared pytest fixtures for Tandem tests."""
import os

# Importing app.main builds the default app, which must not need PostgreSQL.
os.environ.setdefault("STORE_BACKEND", "memory")

from datetime import datetime, timedelta, timezone

import pytest

from app.services.container import Services
from app.store.memory import InMemoryStore


class FakeClock:
    """Deterministic aware clock: each call advances by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def services(store):
    return Services.build(store)
