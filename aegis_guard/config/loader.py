"""
Configuration Loader
~~~~~~~~~~~~~~~~~~~~

Reads ``aegis_config.yaml``, layers it over :data:`DEFAULT_CONFIG` and
validates the result. Validation failures name the offending section
and field so a bad deployment config can be fixed without guesswork.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from aegis_guard.config.defaults import DEFAULT_CONFIG
from aegis_guard.config.schema import AegisConfig
from aegis_guard.exceptions import (
    ConfigFileNotFoundError,
    ConfigValidationError,
)

__all__ = ["load_config", "load_config_from_dict"]

logger = logging.getLogger(__name__)


def _merge_section(defaults: dict, overrides: dict) -> dict:
    """Overlay ``overrides`` on ``defaults``; nested mappings are merged key by key."""
    merged = dict(defaults)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_section(current, value)
        else:
            merged[key] = value
    return merged


def _describe_errors(exc: ValidationError) -> tuple[list[str], list[str]]:
    """Return the failing top-level sections and one line per field error."""
    sections: list[str] = []
    lines: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        section = str(error["loc"][0]) if error["loc"] else "<root>"
        if section not in sections:
            sections.append(section)
        lines.append(f"{location}: {error['msg']}")
    return sections, lines


def load_config(path: str | os.PathLike[str]) -> AegisConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist.
        ConfigValidationError: If the file is not valid YAML, is not a
            mapping, or fails schema validation.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigFileNotFoundError(
            f"Configuration file not found: {config_path}", {"path": str(config_path)}
        )

    try:
        user_config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigValidationError(
            f"Invalid YAML in {config_path}: {exc}", {"path": str(config_path)}
        ) from exc

    if not isinstance(user_config, dict):
        raise ConfigValidationError(
            f"Configuration file {config_path} must contain a mapping at the top level",
            {"path": str(config_path)},
        )

    logger.debug(
        "Loaded configuration from %s (sections: %s)",
        config_path,
        ", ".join(sorted(user_config)) or "none",
    )
    return load_config_from_dict(user_config)


def load_config_from_dict(data: dict[str, Any]) -> AegisConfig:
    """
    Validate a configuration mapping layered over the defaults.

    Top-level keys that are not configuration sections are ignored
    with a warning.

    Raises:
        ConfigValidationError: If validation fails. ``details["sections"]``
            lists the sections at fault and ``details["errors"]`` one
            ``section.field: message`` line per problem.
    """
    unknown = sorted(set(data) - set(AegisConfig.model_fields))
    if unknown:
        logger.warning("Ignoring unknown configuration section(s): %s", ", ".join(unknown))

    merged = _merge_section(DEFAULT_CONFIG, data)
    try:
        return AegisConfig(**merged)
    except ValidationError as exc:
        sections, lines = _describe_errors(exc)
        raise ConfigValidationError(
            f"Invalid configuration in section(s) {', '.join(sections)}: "
            + "; ".join(lines),
            {"sections": sections, "errors": lines},
        ) from exc
