"""
Configuration Tests
===================
"""

import pytest
from pydantic import ValidationError

from venue_capacity.config import Settings, load_config


class TestDefaults:

    def test_section_defaults(self):
        settings = Settings()
        assert settings.connection.base_delay_seconds == 1.0
        assert settings.connection.max_delay_seconds == 30.0
        assert settings.connection.max_retries == 5
        assert settings.connection.stale_after_seconds is None
        assert settings.poller.fallback_interval_seconds == 30.0
        assert settings.capacity.default_expected_max == 25000
        assert settings.flow.window == 10
        assert settings.prediction.window == 5
        assert settings.prediction.steps * settings.prediction.step_minutes == 120
        assert settings.alerts.cooldown_seconds == 2.0


class TestLoadConfig:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "connection:\n"
            "  max_retries: 8\n"
            "alerts:\n"
            "  warning_ratio: 0.85\n"
        )
        settings = load_config(str(path))
        assert settings.connection.max_retries == 8
        assert settings.alerts.warning_ratio == 0.85
        assert settings.alerts.critical_ratio == 1.0

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("capacity:\n  default_expected_max: 1000\n")
        monkeypatch.setenv("VENUE_CAPACITY_DEFAULT_MAX", "5000")
        monkeypatch.setenv("VENUE_CAPACITY_PULL_URL", "http://localhost/{entity_id}")
        monkeypatch.setenv("PORT", "9000")

        settings = load_config(str(path))

        assert settings.capacity.default_expected_max == 5000
        assert settings.poller.pull_url == "http://localhost/{entity_id}"
        assert settings.server.port == 9000

    def test_invalid_value_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("connection:\n  max_retries: -1\n")
        with pytest.raises(ValidationError):
            load_config(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)).store.max_samples == 1000

    def test_unknown_evacuation_preset_rejected(self):
        with pytest.raises(ValidationError, match="arena"):
            Settings.model_validate({"evacuation": {"preset": "arena"}})

    def test_known_evacuation_preset(self):
        settings = Settings.model_validate({"evacuation": {"preset": "stadium"}})
        assert settings.evacuation.preset == "stadium"
