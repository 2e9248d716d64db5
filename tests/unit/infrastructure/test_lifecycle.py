"""Tests for component wiring and SQLite path validation."""

from pathlib import Path

import pytest

from librarysync.config import DatabaseSettings, Settings
from librarysync.domain.exceptions import ConfigurationError
from librarysync.infrastructure.lifecycle import _validate_sqlite_path, build_components


def _settings(url: str) -> Settings:
    return Settings(_env_file=None, database=DatabaseSettings(url=url))  # type: ignore[call-arg]


class TestBuildComponents:
    async def test_builds_idle_engine(self, tmp_path: Path) -> None:
        components = build_components(_settings(f"sqlite+aiosqlite:///{tmp_path / 'c.db'}"))
        try:
            assert components.engine.get_state().initial_load_complete is False
            assert not components.gateway.is_authenticated()
            assert components.foreground.visible
        finally:
            await components.database.close()


class TestValidateSqlitePath:
    def test_creates_missing_directory(self, tmp_path: Path) -> None:
        db_dir = tmp_path / "nested" / "data"

        _validate_sqlite_path(_settings(f"sqlite+aiosqlite:///{db_dir / 'cache.db'}"))

        assert db_dir.is_dir()
        assert list(db_dir.iterdir()) == []

    def test_unwritable_location_is_configuration_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")

        with pytest.raises(ConfigurationError):
            _validate_sqlite_path(_settings(f"sqlite+aiosqlite:///{blocker / 'cache.db'}"))

    def test_memory_database_is_skipped(self) -> None:
        _validate_sqlite_path(_settings("sqlite+aiosqlite:///:memory:"))
