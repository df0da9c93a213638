"""Tests for configuration loading."""

from pathlib import Path

import pytest

from duedesk.config import DUEDESK_HOME, Config, load_config, parse_job_time


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.conf")
        assert config == Config()
        assert config.timezone == "Asia/Kolkata"
        assert config.daily_job_time == "05:00"

    def test_parses_values(self, tmp_path):
        path = tmp_path / "duedesk.conf"
        path.write_text(
            "# duedesk settings\n"
            "TIMEZONE=Asia/Kolkata\n"
            'DATA_DIR="~/desk data" # quoted\n'
            "CALENDAR_START_HOUR=9\n"
            "DIGEST_INTERNAL_EMAILS=ops@firm.com, partner@firm.com\n"
            "DIGEST_TO_ASSIGNEES=no\n"
            "MAIL_SIGNATURE='Sharma & Co'\n"
            "BULK_MAX_IDS=500  # lower cap\n"
            "log_level=debug\n"
        )
        config = load_config(path)

        assert config.data_dir == "~/desk data"
        assert config.calendar_start_hour == 9
        assert config.digest_internal_emails == ["ops@firm.com", "partner@firm.com"]
        assert config.digest_to_assignees is False
        assert config.mail_signature == "Sharma & Co"
        assert config.bulk_max_ids == 500
        assert config.log_level == "DEBUG"

    def test_bad_integer_keeps_default(self, tmp_path):
        path = tmp_path / "duedesk.conf"
        path.write_text("DEFAULT_TRIGGER_DAYS=soon\n")
        assert load_config(path).default_trigger_days == 15

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "duedesk.conf"
        path.write_text("SOMETHING=1\nnot a setting\n")
        assert load_config(path) == Config()


class TestConfigPaths:
    def test_data_path_default(self):
        assert Config().data_path == DUEDESK_HOME / "data"

    def test_data_path_expands_user(self):
        assert Config(data_dir="~/x").data_path == Path.home() / "x"

    def test_token_path(self):
        assert Config().token_path == DUEDESK_HOME / "config" / "token.json"
        assert Config(google_token_file="/tmp/t.json").token_path == Path("/tmp/t.json")

    def test_calendar_window(self):
        window = Config(calendar_start_hour=8, calendar_end_hour=9, timezone="UTC").calendar_window
        assert (window.start_hour, window.end_hour, window.timezone) == (8, 9, "UTC")


class TestParseJobTime:
    def test_valid(self):
        assert parse_job_time("05:00") == (5, 0)
        assert parse_job_time(" 8:15 ") == (8, 15)

    @pytest.mark.parametrize("value", ["25:00", "8", "ab:cd", "08:60"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_job_time(value)
