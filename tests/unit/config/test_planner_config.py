"""Tests for planner configuration loading and validation."""

import logging
from pathlib import Path

import pytest
import yaml

from relaxed_planner.config.planner import (
    CalendarConfig,
    LoggingConfig,
    LogRotationConfig,
    PlannerConfig,
    StorageConfig,
    load_planner_config,
    save_planner_config,
)
from relaxed_planner.config.settings import GoogleSettings, PlannerSettings
from relaxed_planner.constants import LOGGER_NAMESPACE
from relaxed_planner.exceptions import ValidationError
from relaxed_planner.utils.logging_setup import configure_logging, mask_token


class TestPlannerConfig:
    """Dataclass validation and dict round trips."""

    def test_defaults(self) -> None:
        config = PlannerConfig()

        assert config.storage.structured_enabled is True
        assert config.calendar.calendar_id == "primary"
        assert config.calendar.timezone is None
        assert config.logging.level == "INFO"

    def test_from_dict_partial(self) -> None:
        config = PlannerConfig.from_dict(
            {"storage": {"structured_enabled": False}, "calendar": {"timezone": "Europe/Berlin"}}
        )

        assert config.storage == StorageConfig(structured_enabled=False)
        assert config.calendar.timezone == "Europe/Berlin"
        assert config.logging == LoggingConfig()

    def test_round_trip(self) -> None:
        config = PlannerConfig(
            storage=StorageConfig(database_file="/tmp/other.db"),
            calendar=CalendarConfig(calendar_id="work", timeout_seconds=10),
            logging=LoggingConfig(level="debug", rotation=LogRotationConfig(max_size_mb=2)),
        )

        assert PlannerConfig.from_dict(config.to_dict()) == config

    def test_log_level_is_normalized(self) -> None:
        assert LoggingConfig(level="warning").level == "WARNING"

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: LoggingConfig(level="LOUD"),
            lambda: LogRotationConfig(max_size_mb=0),
            lambda: LogRotationConfig(backup_count=11),
            lambda: CalendarConfig(calendar_id="  "),
            lambda: CalendarConfig(timezone="Mars/Olympus_Mons"),
            lambda: CalendarConfig(timeout_seconds=0.1),
        ],
        ids=["level", "max-size", "backups", "calendar-id", "timezone", "timeout"],
    )
    def test_invalid_values_raise(self, factory) -> None:
        with pytest.raises(ValidationError):
            factory()

    def test_rotation_bytes(self) -> None:
        assert LogRotationConfig(max_size_mb=3).get_max_bytes() == 3 * 1024 * 1024


class TestLoadPlannerConfig:
    """Reading config.yaml from the data directory."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_planner_config(tmp_path) == PlannerConfig()

    def test_reads_planner_section(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text(
            yaml.safe_dump({"planner": {"calendar": {"calendar_id": "family"}}})
        )

        assert load_planner_config(tmp_path).calendar.calendar_id == "family"

    @pytest.mark.parametrize(
        "content",
        [
            "planner: {logging: {level: SHOUTING}}",
            "planner: [unclosed",
            "- just\n- a list\n",
        ],
        ids=["invalid-value", "bad-yaml", "wrong-shape"],
    )
    def test_broken_config_falls_back_to_defaults(self, tmp_path: Path, content: str) -> None:
        (tmp_path / "config.yaml").write_text(content)

        assert load_planner_config(tmp_path) == PlannerConfig()

    def test_save_preserves_other_keys(self, tmp_path: Path) -> None:
        (tmp_path / "config.yaml").write_text(yaml.safe_dump({"other_tool": {"x": 1}}))
        config = PlannerConfig(calendar=CalendarConfig(timezone="Asia/Tokyo"))

        save_planner_config(tmp_path, config)

        saved = yaml.safe_load((tmp_path / "config.yaml").read_text())
        assert saved["other_tool"] == {"x": 1}
        assert load_planner_config(tmp_path) == config


class TestSettings:
    """Environment-driven settings."""

    def test_google_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANNER_GOOGLE_CLIENT_ID", "cid")
        monkeypatch.setenv("PLANNER_GOOGLE_CLIENT_SECRET", "shh")

        settings = GoogleSettings()

        assert (settings.client_id, settings.client_secret) == ("cid", "shh")

    def test_planner_settings_from_env(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("PLANNER_DATA_DIR", str(tmp_path))
        monkeypatch.delenv("PLANNER_LOG_LEVEL", raising=False)

        settings = PlannerSettings()

        assert settings.data_dir == tmp_path
        assert settings.log_level is None


class TestLogging:
    """Package logger setup."""

    def test_reconfigure_does_not_duplicate_handlers(self) -> None:
        configure_logging("INFO")
        planner_logger = configure_logging("DEBUG")

        assert planner_logger.name == LOGGER_NAMESPACE
        assert planner_logger.level == logging.DEBUG
        assert len(planner_logger.handlers) == 1
        assert planner_logger.propagate is False

    def test_file_logging_with_rotation(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "planner.log"

        planner_logger = configure_logging(
            "INFO", log_file, LogRotationConfig(max_size_mb=1, backup_count=2)
        )
        logging.getLogger(f"{LOGGER_NAMESPACE}.test").info("hello from the planner")
        for handler in planner_logger.handlers:
            handler.flush()

        assert "hello from the planner" in log_file.read_text()
        configure_logging("INFO")

    def test_mask_token(self) -> None:
        assert mask_token("ya29.abcdefghijkl") == "ya29.a..."
        assert mask_token(None) == "<none>"
