"""Shared fixtures for fragscore tests."""

from __future__ import annotations

import pytest
from builders import STRONG_ID, WEAK_ID, CountingEventSource, FakeClock, strong_event, weak_event

from fragscore.analysis.models import Participant
from fragscore.infra.cache import MatchScopedCache
from fragscore.infra.database import DatabaseManager


@pytest.fixture
def source() -> CountingEventSource:
    """Match 1 with a strong and a weak participant, in that order."""
    src = CountingEventSource()
    src.add_participant(1, Participant(STRONG_ID, "alpha"))
    src.add_participant(1, Participant(WEAK_ID, "bravo"))
    src.add_event(strong_event())
    src.add_event(weak_event())
    return src


@pytest.fixture
def cache() -> MatchScopedCache:
    return MatchScopedCache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path) -> DatabaseManager:
    return DatabaseManager(tmp_path / "events.db")
