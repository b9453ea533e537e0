"""
Unit tests for configuration loading.
"""

import os
from pathlib import Path

import pytest

from cfa.core.config import AuctionConfig, load_config


class TestDefaults:
    def test_auction_rules(self):
        config = AuctionConfig()
        assert config.team_size == 12
        assert config.max_foreign_players == 4
        assert config.min_player_price == 0.5
        assert config.lot_duration_seconds == 60
        assert config.starting_budget == 200.0
        assert not config.server_timer

    def test_db_path(self, tmp_path):
        config = AuctionConfig(data_dir=tmp_path, db_name="x.db")
        assert config.db_path == tmp_path / "x.db"


class TestLoadConfig:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CFA_TEAM_SIZE", "11")
        monkeypatch.setenv("CFA_SERVER_TIMER", "yes")
        monkeypatch.setenv("CFA_DATA_DIR", "/tmp/cfa-data")
        config = load_config()
        assert config.team_size == 11
        assert config.server_timer is True
        assert config.data_dir == Path("/tmp/cfa-data")

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CFA_LOT_DURATION_SECONDS", raising=False)
        env = tmp_path / ".env"
        env.write_text("CFA_LOT_DURATION_SECONDS=45\n")
        try:
            config = load_config(str(env))
        finally:
            os.environ.pop("CFA_LOT_DURATION_SECONDS", None)
        assert config.lot_duration_seconds == 45

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("CFA_PORT", "9000")
        assert load_config(port=9100).port == 9100

    def test_none_override_ignored(self):
        assert load_config(port=None).port == AuctionConfig().port

    def test_bad_value(self, monkeypatch):
        monkeypatch.setenv("CFA_TEAM_SIZE", "twelve")
        with pytest.raises(ValueError, match="CFA_TEAM_SIZE"):
            load_config()

    def test_bad_boolean(self, monkeypatch):
        monkeypatch.setenv("CFA_SERVER_TIMER", "maybe")
        with pytest.raises(ValueError):
            load_config()

    def test_unknown_override(self):
        with pytest.raises(ValueError, match="Unknown config option"):
            load_config(colour="blue")

    def test_ensure_dirs(self, tmp_path):
        config = AuctionConfig(data_dir=tmp_path / "d", log_dir=tmp_path / "l")
        config.ensure_dirs()
        assert (tmp_path / "d").is_dir()
        assert (tmp_path / "l").is_dir()

    def test_log_to_file_from_environment(self, monkeypatch):
        monkeypatch.setenv("CFA_LOG_TO_FILE", "yes")
        assert load_config().log_to_file is True
