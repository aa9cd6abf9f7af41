"""Tests for cckb.core.config module."""

import logging

import pytest

import cckb.core.config as config


class TestEnvHelpers:
    """Tests for environment variable helpers."""

    def test_get_env_returns_value(self, monkeypatch):
        """get_env returns environment variable value."""
        monkeypatch.setenv("CCKB_TEST_VAR", "test_value")

        assert config.get_env("CCKB_TEST_VAR") == "test_value"

    def test_get_env_returns_default(self, monkeypatch):
        """get_env returns default when var not set."""
        monkeypatch.delenv("CCKB_NONEXISTENT", raising=False)

        assert config.get_env("CCKB_NONEXISTENT", "default") == "default"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("42", 42),
            ("not_a_number", 99),
        ],
    )
    def test_get_env_int(self, monkeypatch, value, expected):
        """get_env_int parses integers, falling back on bad input."""
        monkeypatch.setenv("CCKB_INT", value)

        assert config.get_env_int("CCKB_INT", 99) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1.5", 1.5),
            ("3", 3.0),
            ("fast", 0.25),
        ],
    )
    def test_get_env_float(self, monkeypatch, value, expected):
        """get_env_float parses floats, falling back on bad input."""
        monkeypatch.setenv("CCKB_FLOAT", value)

        assert config.get_env_float("CCKB_FLOAT", 0.25) == expected

    def test_get_env_float_unset(self, monkeypatch):
        """get_env_float returns the default when unset."""
        monkeypatch.delenv("CCKB_FLOAT", raising=False)

        assert config.get_env_float("CCKB_FLOAT", 2.0) == 2.0

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("true", True),
            ("1", True),
            ("YES", True),
            ("false", False),
            ("0", False),
            ("no", False),
            ("maybe", True),
        ],
    )
    def test_get_env_bool(self, monkeypatch, value, expected):
        """get_env_bool understands common spellings."""
        monkeypatch.setenv("CCKB_BOOL", value)

        assert config.get_env_bool("CCKB_BOOL", default=True) is expected


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_returns_package_logger(self):
        """setup_logging returns the cckb logger."""
        logger = config.setup_logging()

        assert isinstance(logger, logging.Logger)
        assert logger.name == "cckb"

    def test_explicit_level(self, monkeypatch):
        """An explicit level is passed to basicConfig."""
        calls = []
        monkeypatch.setattr(config.logging, "basicConfig", lambda **kw: calls.append(kw))

        config.setup_logging("debug")

        assert calls[0]["level"] == logging.DEBUG

    def test_unknown_level_defaults_to_warning(self, monkeypatch):
        """Unknown level names fall back to WARNING."""
        calls = []
        monkeypatch.setattr(config.logging, "basicConfig", lambda **kw: calls.append(kw))

        config.setup_logging("chatty")

        assert calls[0]["level"] == logging.WARNING


class TestDefaults:
    """Tests for module-level defaults."""

    def test_timeouts_positive(self):
        """Analyzer timeouts are positive."""
        assert config.ANALYZER_TIMEOUT > 0
        assert config.COMPACTION_TIMEOUT > 0
        assert config.HEARTBEAT_INTERVAL > 0

    def test_kb_dirname(self):
        """The knowledge base folder has a name."""
        assert config.KB_DIRNAME
