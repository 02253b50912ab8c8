"""
Tests for configuration module.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from water_quality.config.settings import (
    BandThreshold,
    BufferSettings,
    CeilingThreshold,
    NotificationSettings,
    Settings,
    ThresholdSettings,
    _apply_env_overrides,
    _find_config_files,
    _load_toml,
    _merge_dicts,
    get_settings,
    load_settings,
    reload_settings,
)
from water_quality.exceptions import ConfigurationError


class TestBufferSettings:
    """Tests for BufferSettings."""

    def test_default_values(self):
        """Test default buffer settings."""
        settings = BufferSettings()

        assert settings.merge_window_minutes == 5.0
        assert settings.incomplete_after_minutes == 10.0
        assert settings.max_claim_attempts == 3
        assert settings.merge_window == timedelta(minutes=5)
        assert settings.incomplete_after == timedelta(minutes=10)

    def test_incomplete_window_shorter_than_merge_window(self):
        """Test entries cannot be reported incomplete while still pairable."""
        with pytest.raises(ValueError):
            BufferSettings(merge_window_minutes=10, incomplete_after_minutes=5)

    def test_claim_attempts_positive(self):
        """Test at least one claim attempt is required."""
        with pytest.raises(ValueError):
            BufferSettings(max_claim_attempts=0)


class TestThresholdSettings:
    """Tests for threshold settings."""

    def test_default_values(self):
        """Test regulatory defaults."""
        t = ThresholdSettings()

        assert (t.ph.min, t.ph.max) == (6.0, 9.0)
        assert (t.ph.optimal_min, t.ph.optimal_max) == (6.5, 8.5)
        assert t.tds.max == 500.0
        assert t.tds.min_reduction_percent == 15.0
        assert t.turbidity.max == 25.0
        assert t.turbidity.min_reduction_percent == 20.0
        assert (t.temperature.min, t.temperature.max) == (20.0, 35.0)

    def test_band_order_enforced(self):
        """Test optimal band must sit inside the hard bounds."""
        with pytest.raises(ValueError):
            BandThreshold(min=6.0, max=9.0, optimal_min=5.0, optimal_max=8.5)

    def test_ceiling_order_enforced(self):
        """Test optimal_max must be below max."""
        with pytest.raises(ValueError):
            CeilingThreshold(max=100.0, optimal_max=200.0)


class TestNotificationSettings:
    """Tests for NotificationSettings."""

    def test_default_values(self):
        """Test notifications default to the logging gateway."""
        settings = NotificationSettings()

        assert settings.enabled is True
        assert settings.gateway == "log"
        assert settings.webhook_urls == {}

    def test_webhook_requires_urls(self):
        """Test webhook gateway needs at least one channel."""
        with pytest.raises(ValueError):
            NotificationSettings(gateway="webhook")

    def test_webhook_with_urls(self):
        """Test webhook gateway with channels."""
        settings = NotificationSettings(
            gateway="webhook",
            webhook_urls={"email": "http://backend/notify/email"},
        )

        assert settings.webhook_urls["email"] == "http://backend/notify/email"


class TestSettings:
    """Tests for main Settings class."""

    def test_database_path_relative(self):
        """Test relative database path resolution."""
        settings = Settings(base_dir=Path("/data"))

        assert settings.database_path == Path("/data/water_quality.db")

    def test_database_path_absolute(self):
        """Test absolute database path."""
        settings = Settings(database={"path": "/abs/path.db"})

        assert settings.database_path == Path("/abs/path.db")

    def test_nested_config(self):
        """Test nested configuration from a dict."""
        settings = Settings(
            buffer={"merge_window_minutes": 3, "incomplete_after_minutes": 6},
            thresholds={"tds": {"max": 600, "optimal_max": 350, "min_reduction_percent": 10}},
        )

        assert settings.buffer.merge_window == timedelta(minutes=3)
        assert settings.thresholds.tds.max == 600
        assert settings.thresholds.ph.max == 9.0


class TestMergeDicts:
    """Tests for _merge_dicts function."""

    def test_nested_merge(self):
        """Test nested dictionary merge."""
        base = {"buffer": {"merge_window_minutes": 5, "max_claim_attempts": 3}}
        override = {"buffer": {"max_claim_attempts": 5}}

        result = _merge_dicts(base, override)

        assert result == {"buffer": {"merge_window_minutes": 5, "max_claim_attempts": 5}}

    def test_base_unchanged(self):
        """Test that base dict is not modified."""
        base = {"a": 1}

        _merge_dicts(base, {"a": 2})

        assert base == {"a": 1}


class TestFindConfigFiles:
    """Tests for _find_config_files function."""

    def test_no_config_files(self, tmp_path, monkeypatch):
        """Test when no config files exist."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("WQ_CONFIG_PATH", raising=False)

        assert _find_config_files() == []

    def test_default_and_local(self, tmp_path, monkeypatch):
        """Test local.toml comes after default.toml."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("WQ_CONFIG_PATH", raising=False)

        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "default.toml").write_text("")
        (config_dir / "local.toml").write_text("")

        files = _find_config_files()

        assert [f.name for f in files] == ["default.toml", "local.toml"]

    def test_env_config_path(self, tmp_path, monkeypatch):
        """Test WQ_CONFIG_PATH environment variable."""
        monkeypatch.chdir(tmp_path)
        env_file = tmp_path / "site.toml"
        env_file.write_text("")
        monkeypatch.setenv("WQ_CONFIG_PATH", str(env_file))

        assert _find_config_files() == [env_file]


class TestLoadToml:
    """Tests for _load_toml function."""

    def test_load_nested_toml(self, tmp_path):
        """Test loading nested TOML."""
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("[thresholds.ph]\nmax = 8.5\n")

        assert _load_toml(toml_file) == {"thresholds": {"ph": {"max": 8.5}}}

    def test_invalid_toml(self, tmp_path):
        """Test a syntax error becomes ConfigurationError."""
        toml_file = tmp_path / "bad.toml"
        toml_file.write_text("[buffer\n")

        with pytest.raises(ConfigurationError):
            _load_toml(toml_file)


class TestEnvOverrides:
    """Tests for _apply_env_overrides function."""

    def test_ignores_other_prefixes(self):
        """Test only WQ_ variables apply."""
        config = Settings().model_dump(mode="json")

        result = _apply_env_overrides(config, {"HOME": "/root", "OTHER_DATABASE_PATH": "x.db"})

        assert result["database"]["path"] == "water_quality.db"

    def test_underscored_keys(self):
        """Test keys containing underscores resolve by longest match."""
        config = Settings().model_dump(mode="json")

        result = _apply_env_overrides(
            config,
            {
                "WQ_BUFFER_MERGE_WINDOW_MINUTES": "3",
                "WQ_BUFFER_MAX_CLAIM_ATTEMPTS": "7",
                "WQ_THRESHOLDS_TDS_MIN_REDUCTION_PERCENT": "12.5",
            },
        )

        assert result["buffer"]["merge_window_minutes"] == 3.0
        assert result["buffer"]["max_claim_attempts"] == 7
        assert result["thresholds"]["tds"]["min_reduction_percent"] == 12.5

    def test_boolean_override(self):
        """Test boolean coercion."""
        config = Settings().model_dump(mode="json")

        result = _apply_env_overrides(config, {"WQ_NOTIFICATIONS_ENABLED": "false"})

        assert result["notifications"]["enabled"] is False

    def test_bad_number(self):
        """Test an unparseable number raises ConfigurationError."""
        config = Settings().model_dump(mode="json")

        with pytest.raises(ConfigurationError):
            _apply_env_overrides(config, {"WQ_BUFFER_MAX_CLAIM_ATTEMPTS": "many"})

    def test_unknown_key_ignored(self):
        """Test variables naming no setting are ignored."""
        config = Settings().model_dump(mode="json")

        result = _apply_env_overrides(config, {"WQ_NOT_A_SETTING": "1"})

        assert result == Settings().model_dump(mode="json")


class TestLoadSettings:
    """Tests for load_settings and the cache."""

    def test_load_from_file(self, tmp_path, monkeypatch):
        """Test an explicit file overrides defaults."""
        monkeypatch.delenv("WQ_BUFFER_MERGE_WINDOW_MINUTES", raising=False)
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            '[database]\npath = "site.db"\n\n[buffer]\nmerge_window_minutes = 2.0\n'
        )

        settings = load_settings(config_file)

        assert settings.database.path == "site.db"
        assert settings.buffer.merge_window_minutes == 2.0
        assert settings.buffer.incomplete_after_minutes == 10.0

    def test_env_beats_file(self, tmp_path, monkeypatch):
        """Test environment variables override file values."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("[buffer]\nmax_claim_attempts = 4\n")
        monkeypatch.setenv("WQ_BUFFER_MAX_CLAIM_ATTEMPTS", "6")

        assert load_settings(config_file).buffer.max_claim_attempts == 6

    def test_invalid_values(self, tmp_path):
        """Test validation errors become ConfigurationError."""
        config_file = tmp_path / "config.toml"
        config_file.write_text('[notifications]\ngateway = "webhook"\n')

        with pytest.raises(ConfigurationError):
            load_settings(config_file)

    def test_shipped_defaults_load(self):
        """Test config/default.toml matches the built-in defaults."""
        default_toml = Path(__file__).parent.parent / "config" / "default.toml"

        settings = load_settings(default_toml)

        assert settings.thresholds == ThresholdSettings()
        assert settings.buffer == BufferSettings()

    def test_get_settings_cached(self, tmp_path, monkeypatch):
        """Test get_settings returns the cached instance until reload."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("WQ_CONFIG_PATH", raising=False)
        get_settings.cache_clear()

        first = get_settings()

        assert get_settings() is first
        assert reload_settings() is not first
        get_settings.cache_clear()
