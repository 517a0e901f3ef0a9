"""
Unit tests for settings and logging setup.
"""

import logging

import json_log_formatter
import pytest
from pydantic import ValidationError

from realtime.livetable.apply import ReplayCutoff
from realtime.livetable.config import LiveTableSettings
from realtime.livetable.logging_config import setup_logging


class TestLiveTableSettings:
    """Tests for LiveTableSettings."""

    def test_defaults(self, monkeypatch):
        for name in (
            "SCHEMA_NAME",
            "REPLAY_CUTOFF",
            "SNAPSHOT_TIMEOUT",
            "STOP_ON_ERROR",
            "LOG_LEVEL",
            "LOG_FORMAT",
        ):
            monkeypatch.delenv(f"LIVETABLE_{name}", raising=False)

        settings = LiveTableSettings()

        assert settings.schema_name == "public"
        assert settings.replay_cutoff is ReplayCutoff.WATERMARK
        assert settings.snapshot_timeout == 30.0
        assert settings.stop_on_error is False
        assert settings.log_format == "json"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LIVETABLE_REPLAY_CUTOFF", "per_row")
        monkeypatch.setenv("LIVETABLE_SNAPSHOT_TIMEOUT", "2.5")
        monkeypatch.setenv("LIVETABLE_STOP_ON_ERROR", "true")
        monkeypatch.setenv("LIVETABLE_LOG_LEVEL", "debug")
        monkeypatch.setenv("LIVETABLE_CHANNEL_PREFIX", "app:")

        settings = LiveTableSettings()

        assert settings.replay_cutoff is ReplayCutoff.PER_ROW
        assert settings.snapshot_timeout == 2.5
        assert settings.stop_on_error is True
        assert settings.log_level == "DEBUG"
        assert settings.channel_prefix == "app:"

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            LiveTableSettings(replay_cutoff="newest")
        with pytest.raises(ValidationError):
            LiveTableSettings(snapshot_timeout=-1)
        with pytest.raises(ValidationError):
            LiveTableSettings(log_format="xml")


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        setup_logging(LiveTableSettings(log_format="json", log_level="WARNING"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        setup_logging(LiveTableSettings(log_format="text", log_level="DEBUG"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
