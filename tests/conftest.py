"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from timestables.core.preferences import Preferences  # noqa: E402
from timestables.engine import DrillEngine, ExerciseTimer, ManualTimeoutScheduler  # noqa: E402
from timestables.storage import MemoryKeyValueStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (file or SQLite stores)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the user's home directory."""
    return Settings(_env_file=None, data_dir=tmp_path, store_backend="memory")


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def preferences(store, settings):
    return Preferences(store, settings)


@pytest.fixture
def scheduler():
    """Timeout scheduler whose clock only moves through advance()."""
    return ManualTimeoutScheduler()


@pytest.fixture
def make_engine(preferences, scheduler):
    """Build engines sharing the manual scheduler's clock."""
    engines = []

    def factory(store, seed: int = 7) -> DrillEngine:
        engine = DrillEngine(
            store,
            Preferences(store, preferences.settings),
            scheduler=scheduler,
            rng=random.Random(seed),
            timer=ExerciseTimer(clock=lambda: scheduler.now),
        )
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine, store):
    return make_engine(store)
