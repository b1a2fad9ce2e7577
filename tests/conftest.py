"""Global test fixtures for the OceanLedger test suite."""

from __future__ import annotations

import os

import pytest

from oceanledger.core.config import CoreSettings, clear_config_cache
from oceanledger.crypto.mock import MockCapability
from oceanledger.ledger.events import EventBus, EventRecorder
from oceanledger.ledger.service import LocalLedger, build_local_ledger

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all OCEANLEDGER_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("OCEANLEDGER_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_config():
    """Reset the global config before and after each test."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def settings(clean_env) -> CoreSettings:
    return CoreSettings()


# ============================================================================
# Ledger
# ============================================================================


@pytest.fixture
def backend() -> MockCapability:
    return MockCapability()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def events(recorder: EventRecorder) -> EventBus:
    bus = EventBus()
    bus.subscribe(recorder)
    return bus


@pytest.fixture
def local(settings: CoreSettings, events: EventBus) -> LocalLedger:
    """A ledger wired to the mock backend and an in-process oracle."""
    return build_local_ledger(settings=settings, events=events)


@pytest.fixture
def submit(local: LocalLedger):
    """Encrypt plaintext readings and submit them; returns the measurement id."""

    def _submit(
        ph: float = 8.05,
        carbonate: float = 2100.0,
        temperature: float = 12.5,
        region: str = "pacific-nw",
        station_id: str = "station-1",
    ) -> int:
        backend = local.capability
        return local.ledger.submit(
            backend.encrypt(ph),
            backend.encrypt(carbonate),
            backend.encrypt(temperature),
            region=region,
            station_id=station_id,
        )

    return _submit
