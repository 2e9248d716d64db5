"""Tests for Settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from librarysync.config import DatabaseSettings, Settings, SpotifySettings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.sync.poll_interval_seconds == 90.0
        assert settings.sync.page_size == 50
        assert settings.spotify.access_token is None
        assert settings.log_level == "INFO"

    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIBRARYSYNC_SYNC__POLL_INTERVAL_SECONDS", "30")
        monkeypatch.setenv("LIBRARYSYNC_SPOTIFY__ACCESS_TOKEN", "secret")
        monkeypatch.setenv("LIBRARYSYNC_LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.sync.poll_interval_seconds == 30.0
        assert settings.spotify.access_token is not None
        assert settings.spotify.access_token.get_secret_value() == "secret"
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")  # type: ignore[call-arg]

    def test_page_size_capped_at_spotify_maximum(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sync={"page_size": 51})  # type: ignore[call-arg]

    def test_base_url_trailing_slash_stripped(self) -> None:
        assert SpotifySettings(api_base_url="https://example.test/v1/").api_base_url == (
            "https://example.test/v1"
        )

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite+aiosqlite:///./data/cache.db", Path("./data/cache.db")),
            ("sqlite+aiosqlite:///:memory:", None),
            ("postgresql+asyncpg://u:p@host/db", None),
        ],
    )
    def test_sqlite_db_path(self, url: str, expected: Path | None) -> None:
        settings = Settings(_env_file=None, database=DatabaseSettings(url=url))  # type: ignore[call-arg]

        assert settings._get_sqlite_db_path() == expected
