"""Configuration loading and validation for aegis-guard."""

from aegis_guard.config.defaults import DEFAULT_CONFIG
from aegis_guard.config.loader import load_config, load_config_from_dict
from aegis_guard.config.schema import AegisConfig

__all__ = [
    "load_config",
    "load_config_from_dict",
    "AegisConfig",
    "DEFAULT_CONFIG",
]
