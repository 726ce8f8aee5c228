"""Configuration module"""

from .settings import (
    KafkaConfig,
    PostgresConfig,
    RelayConfig,
    Settings,
    SSLConfig,
    get_settings,
    load_yaml_config,
)

__all__ = [
    "KafkaConfig",
    "PostgresConfig",
    "RelayConfig",
    "Settings",
    "SSLConfig",
    "get_settings",
    "load_yaml_config",
]
