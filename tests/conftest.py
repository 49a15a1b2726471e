"""
Shared pytest fixtures and configuration for courier tests.

This module provides:
- In-memory SQLite connections with the courier schema
- Sample alerts and destinations
- Settings isolated from the developer's environment
- Fake clocks for time-dependent components

Builders and fakes that are not fixtures live in ``tests/_support/delivery.py``.
"""

import os
import sqlite3
import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Ensure courier package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from courier.core.schema import create_core_tables
from courier.core.settings import CourierSettings, get_settings
from tests._support.delivery import FakeClock, FakeWallClock, make_alert, make_destination


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite with every courier table."""
    db = sqlite3.connect(":memory:")
    create_core_tables(db)
    yield db
    db.close()


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture()
def settings(monkeypatch) -> CourierSettings:
    """Default settings, ignoring COURIER_* variables and .env files."""
    for key in list(os.environ):
        if key.startswith("COURIER_"):
            monkeypatch.delenv(key)
    return CourierSettings(_env_file=None)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Sample data
# =============================================================================


@pytest.fixture()
def alert():
    return make_alert()


@pytest.fixture()
def webhook_destination():
    return make_destination("out-webhook")


# =============================================================================
# Clocks
# =============================================================================


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def wall_clock() -> FakeWallClock:
    return FakeWallClock()
