"""Pytest configuration and fixtures for DRIP tests."""

import os
from datetime import datetime, timezone

import pytest

from drip.ledger.store import MemoryLedgerStore

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clear DRIP-related environment variables before each test."""
    env_prefixes = ("DRIP_", "REDIS_")
    for key in list(os.environ.keys()):
        if key.startswith(env_prefixes):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def required_env(monkeypatch):
    """Set the environment variables DripConfig requires."""
    monkeypatch.setenv("DRIP_VALIDATOR_NAME", "validator-self")
    monkeypatch.setenv("DRIP_FAUCET_ACCOUNT_NAME", "faucet")


@pytest.fixture
def store():
    """Fresh in-memory ledger."""
    return MemoryLedgerStore()


class FakeClock:
    """Settable clock for deterministic eligibility tests."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    """Clock starting at T0."""
    return FakeClock()


@pytest.fixture
def t0():
    """Start instant of the test clock."""
    return T0
