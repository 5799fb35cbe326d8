"""Tests for configuration loading and validation."""

import logging

import pytest

from aegis_guard import RiskLevel
from aegis_guard.config.loader import load_config, load_config_from_dict
from aegis_guard.config.schema import SafeModeConfig
from aegis_guard.exceptions import ConfigFileNotFoundError, ConfigValidationError


class TestLoadConfig:
    """Tests for the YAML loader."""

    def test_defaults(self):
        config = load_config_from_dict({})
        assert config.executor.timeout_seconds == 30.0
        assert config.safe_mode.preview_expiration_seconds == 300.0
        assert config.safe_mode.auto_approve_threshold == RiskLevel.LOW
        assert config.safe_mode.max_pending_previews == 100
        assert config.rollback.max_history_size == 1000
        assert config.rollback.max_history_age_seconds == 86400.0
        assert "delete_level" in config.safe_mode.require_explicit_approval
        assert config.registry.require_inverse_metadata is False

    def test_yaml_is_merged_over_defaults(self, tmp_path):
        path = tmp_path / "aegis_config.yaml"
        path.write_text(
            "executor:\n"
            "  timeout_seconds: 5\n"
            "safe_mode:\n"
            "  auto_approve_level: MEDIUM\n"
        )
        config = load_config(str(path))
        assert config.executor.timeout_seconds == 5
        assert config.executor.enable_rollback is True
        assert config.safe_mode.auto_approve_level == "medium"
        assert config.safe_mode.enabled is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("executor: [unclosed\n")
        with pytest.raises(ConfigValidationError):
            load_config(str(path))

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigValidationError):
            load_config(str(path))

    def test_invalid_values(self):
        with pytest.raises(ConfigValidationError):
            load_config_from_dict({"executor": {"timeout_seconds": 0}})
        with pytest.raises(ConfigValidationError):
            load_config_from_dict({"safe_mode": {"auto_approve_level": "extreme"}})

    def test_validation_error_names_the_section(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config_from_dict(
                {
                    "safe_mode": {"auto_approve_level": "extreme"},
                    "rollback": {"max_history_size": 0},
                }
            )

        details = exc_info.value.details
        assert details["sections"] == ["safe_mode", "rollback"]
        assert any(line.startswith("safe_mode.auto_approve_level:") for line in details["errors"])
        assert "section(s) safe_mode, rollback" in str(exc_info.value)

    def test_unknown_section_is_ignored(self, caplog):
        caplog.set_level(logging.WARNING, logger="aegis_guard.config.loader")
        config = load_config_from_dict({"telemetry": {"enabled": True}})
        assert config.executor.timeout_seconds == 30.0
        assert "telemetry" in caplog.text

    def test_accepts_path_objects(self, tmp_path):
        path = tmp_path / "aegis_config.yaml"
        path.write_text("rollback:\n  max_history_size: 7\n")
        assert load_config(path).rollback.max_history_size == 7


class TestSafeModeConfig:
    def test_none_disables_auto_approval(self):
        assert SafeModeConfig(auto_approve_level="none").auto_approve_threshold is None
