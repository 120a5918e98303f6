"""Tests for configuration loading, saving and logging setup."""

import json
import logging
import logging.handlers
import os

import pytest

from stratyx.core.config import (
    LoggingConfig,
    StratyxConfig,
    configure_logging,
    dict_to_config,
    generate_default_config,
    load_config,
    load_env_config,
    merge_configs,
    save_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with no config files or STRATYX_* variables in scope."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / ".config"))
    for name in list(os.environ):
        if name.startswith("STRATYX_"):
            monkeypatch.delenv(name)
    return tmp_path


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestDefaults:
    """Tests for default configuration values."""

    def test_defaults(self, isolated):
        config = load_config()
        assert config.engine.max_event_age_ms == 10000
        assert config.statistics.min_sample_size == 5
        assert config.patterns.min_occurrences == 3
        assert config.sync.queue_capacity == 1000
        assert config.logging.level == "INFO"


class TestEnvironment:
    """Tests for STRATYX_* environment variables."""

    def test_env_mapping_and_conversion(self):
        env = {
            "STRATYX_MIN_SAMPLE_SIZE": "8",
            "STRATYX_MAX_LATENCY_MS": "1500.5",
            "STRATYX_LOG_LEVEL": "DEBUG",
            "UNRELATED": "1",
        }
        assert load_env_config(env) == {
            "statistics": {"min_sample_size": 8},
            "sync": {"max_latency_ms": 1500.5},
            "logging": {"level": "DEBUG"},
        }

    def test_env_overrides_file(self, isolated, monkeypatch):
        (isolated / "stratyx.yaml").write_text("statistics:\n  min_sample_size: 7\n")
        monkeypatch.setenv("STRATYX_MIN_SAMPLE_SIZE", "9")
        assert load_config().statistics.min_sample_size == 9
        assert load_config(include_env=False).statistics.min_sample_size == 7

    def test_overrides_win(self, isolated, monkeypatch):
        monkeypatch.setenv("STRATYX_MAX_EVENT_AGE_MS", "5000")
        config = load_config(overrides={"engine": {"max_event_age_ms": 2500}})
        assert config.engine.max_event_age_ms == 2500


class TestFiles:
    """Tests for file loading and saving."""

    def test_yaml_file(self, isolated):
        path = isolated / "custom.yaml"
        path.write_text("engine:\n  min_data_quality: 0.9\nsync:\n  poll_interval_ms: 1000\n")
        config = load_config(path, include_env=False)
        assert config.engine.min_data_quality == 0.9
        assert config.sync.poll_interval_ms == 1000

    def test_toml_file(self, isolated):
        path = isolated / "stratyx.toml"
        path.write_text("[patterns]\nmin_confidence = 0.8\n")
        assert load_config(path, include_env=False).patterns.min_confidence == 0.8

    def test_missing_file_uses_defaults(self, isolated):
        config = load_config(isolated / "missing.yaml", include_env=False)
        assert config == StratyxConfig()

    def test_unknown_keys_ignored(self, caplog):
        with caplog.at_level("WARNING", logger="stratyx.core.config"):
            config = dict_to_config({"engine": {"bogus": 1, "max_processing_ms": 250}})
        assert config.engine.max_processing_ms == 250
        assert "engine.bogus" in caplog.text

    def test_json_round_trip(self, isolated):
        config = StratyxConfig()
        config.statistics.significance_threshold = 0.01
        path = isolated / "out.json"
        save_config(config, path)
        assert json.loads(path.read_text())["statistics"]["significance_threshold"] == 0.01
        assert load_config(path, include_env=False) == config

    def test_save_unknown_format(self, isolated):
        with pytest.raises(ValueError):
            save_config(StratyxConfig(), isolated / "out.ini")

    def test_generated_template_loads(self, isolated):
        path = isolated / "stratyx.yaml"
        generate_default_config(path)
        assert load_config(path, include_env=False) == StratyxConfig()

    def test_merge_is_recursive(self):
        merged = merge_configs({"engine": {"a": 1, "b": 2}}, {"engine": {"b": 3}, "sync": {"c": 4}})
        assert merged == {"engine": {"a": 1, "b": 3}, "sync": {"c": 4}}


class TestLogging:
    """Tests for configure_logging."""

    def test_level_and_file_handler(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "stratyx.log"
        configure_logging(LoggingConfig(level="debug", file=str(log_file)))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)

        logging.getLogger("stratyx.test").info("hello")
        for handler in root.handlers:
            handler.flush()
        assert "hello" in log_file.read_text()
