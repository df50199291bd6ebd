"""
Unit tests for persisted preferences and settings defaults.

Run: pytest tests/unit/test_preferences.py -v
"""

import pytest

from config import Settings
from timestables.core.errors import PersistenceError, ValidationError
from timestables.core.preferences import TABLES_KEY, TIME_LIMIT_KEY, Preferences
from timestables.storage import MemoryKeyValueStore


class UnreadableStore(MemoryKeyValueStore):
    """Store whose reads always fail."""

    def get(self, key):
        raise PersistenceError(f"Failed to read '{key}'")


class TestTimeLimit:
    """Test the per-exercise time limit."""

    def test_default(self, preferences):
        assert preferences.time_limit() == 10

    def test_set_and_read(self, preferences, store):
        preferences.set_time_limit(15)
        assert preferences.time_limit() == 15
        assert store.get(TIME_LIMIT_KEY) == 15

    @pytest.mark.parametrize("bad", [2, 61, 0, -5, True, "10"])
    def test_out_of_range_rejected(self, preferences, bad):
        with pytest.raises(ValidationError):
            preferences.set_time_limit(bad)

    def test_bounds_accepted(self, preferences):
        preferences.set_time_limit(3)
        assert preferences.time_limit() == 3
        preferences.set_time_limit(60)
        assert preferences.time_limit() == 60

    def test_invalid_stored_value_falls_back(self, preferences, store):
        store.put(TIME_LIMIT_KEY, 500)
        assert preferences.time_limit() == 10
        store.put(TIME_LIMIT_KEY, "fast")
        assert preferences.time_limit() == 10

    def test_unreadable_store_falls_back(self, settings):
        assert Preferences(UnreadableStore(), settings).time_limit() == 10


class TestSelectedTables:
    """Test the table selection."""

    def test_default_tables(self, preferences):
        assert preferences.selected_tables() == [3, 4, 5, 6, 7, 8, 9]

    def test_set_normalizes(self, preferences, store):
        assert preferences.set_selected_tables([8, 6, 8]) == [6, 8]
        assert store.get(TABLES_KEY) == [6, 8]
        assert preferences.selected_tables() == [6, 8]

    def test_empty_rejected(self, preferences):
        with pytest.raises(ValidationError):
            preferences.set_selected_tables([])

    def test_invalid_stored_value_falls_back(self, preferences, store):
        store.put(TABLES_KEY, [0, 42])
        assert preferences.selected_tables() == [3, 4, 5, 6, 7, 8, 9]


class TestSettings:
    """Test settings parsing."""

    def test_custom_default_tables(self, tmp_path):
        settings = Settings(_env_file=None, data_dir=tmp_path, default_tables="7, 2,7")
        assert settings.get_default_tables() == [2, 7]

    def test_invalid_default_tables(self, tmp_path):
        with pytest.raises(ValueError):
            Settings(_env_file=None, data_dir=tmp_path, default_tables="3,eleven")

    def test_env_prefix(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TIMESTABLES_DEFAULT_TIME_LIMIT_SECONDS", "20")
        settings = Settings(_env_file=None, data_dir=tmp_path)
        assert settings.default_time_limit_seconds == 20

    def test_database_url_default(self, tmp_path):
        settings = Settings(_env_file=None, data_dir=tmp_path)
        assert settings.get_database_url() == f"sqlite:///{tmp_path / 'drill.db'}"
