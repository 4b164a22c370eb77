"""
conftest.py - Shared pytest fixtures for lending engine tests

Provides common fixtures used across unit, functional and conformance tests:
- A CoinStore and an EventLog wired into an engine
- An engine with the "admin" platform initialized
- A registered, funded borrower
"""

import pytest

from trustlend import CoinStore, EventLog

from tests.helpers import ADMIN, ALICE, make_engine


@pytest.fixture
def store():
    return CoinStore()


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def engine(store, event_log):
    """Engine at T0 with the admin platform initialized."""
    engine = make_engine(store, event_log)
    engine.initialize(ADMIN)
    return engine


@pytest.fixture
def alice(engine, store):
    """Registered borrower holding 100_000_000 coins."""
    engine.register(ALICE)
    store.mint(ALICE, 100_000_000)
    return ALICE
