"""Tests for config.py - environment configuration."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from revue.config import (
    DEFAULT_DB_PATH,
    DEFAULT_PORT,
    get_db_path,
    get_default_video_span,
    get_host,
    get_max_reply_depth,
    get_port,
    load_env,
    reset_config,
    rollback_on_failure,
)
from revue.errors import ConfigError


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            reset_config()
            assert get_db_path() == DEFAULT_DB_PATH
            assert get_host() == "127.0.0.1"
            assert get_port() == DEFAULT_PORT
            assert rollback_on_failure() is True
            assert get_max_reply_depth() == 64
            assert get_default_video_span() == 5.0


class TestOverrides:
    """Tests for environment overrides."""

    def test_db_path_expands_user(self):
        with patch.dict(os.environ, {"REVUE_DB_PATH": "~/reviews/r.db"}):
            assert get_db_path() == Path("~/reviews/r.db").expanduser()

    @pytest.mark.parametrize("raw,expected", [("false", False), ("0", False), ("Yes", True), ("on", True)])
    def test_rollback_flag(self, raw, expected):
        with patch.dict(os.environ, {"REVUE_ROLLBACK_ON_FAILURE": raw}):
            assert rollback_on_failure() is expected

    def test_values_are_cached_until_reset(self):
        with patch.dict(os.environ, {"REVUE_PORT": "9000"}):
            assert get_port() == 9000
        with patch.dict(os.environ, {"REVUE_PORT": "9001"}):
            assert get_port() == 9000
            reset_config()
            assert get_port() == 9001

    def test_video_span(self):
        with patch.dict(os.environ, {"REVUE_DEFAULT_VIDEO_SPAN": "2.5"}):
            assert get_default_video_span() == 2.5


class TestInvalidValues:
    """Bad values name the offending variable."""

    def test_bad_port(self):
        with patch.dict(os.environ, {"REVUE_PORT": "eighty"}):
            with pytest.raises(ConfigError, match="REVUE_PORT"):
                get_port()

    def test_bad_boolean(self):
        with patch.dict(os.environ, {"REVUE_ROLLBACK_ON_FAILURE": "maybe"}):
            with pytest.raises(ConfigError, match="REVUE_ROLLBACK_ON_FAILURE"):
                rollback_on_failure()

    def test_depth_must_be_positive(self):
        with patch.dict(os.environ, {"REVUE_MAX_REPLY_DEPTH": "0"}):
            with pytest.raises(ConfigError, match="REVUE_MAX_REPLY_DEPTH"):
                get_max_reply_depth()

    def test_span_must_be_positive(self):
        with patch.dict(os.environ, {"REVUE_DEFAULT_VIDEO_SPAN": "-1"}):
            with pytest.raises(ConfigError):
                get_default_video_span()


class TestLoadEnv:
    def test_reads_dotenv(self):
        with patch("dotenv.load_dotenv") as mock_load:
            load_env()
        mock_load.assert_called_once()
