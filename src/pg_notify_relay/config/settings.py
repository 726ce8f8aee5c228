"""Application settings and configuration"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_FILE_ENV = "RELAY_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config/default.yaml"


def _split_list(value: Any) -> Any:
    """Accept JSON arrays or comma-separated strings wherever a list is expected"""
    if isinstance(value, str):
        if value.lstrip().startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class PostgresConfig(BaseModel):
    """Database connection and trigger routing options"""
    model_config = ConfigDict(populate_by_name=True)

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = "postgres"
    database: str = "postgres"

    trigger_functions: Annotated[List[str], NoDecode] = Field(default_factory=list, alias="triggerFunctions")
    trigger_topics: Annotated[List[str], NoDecode] = Field(default_factory=list, alias="triggerTopics")
    trigger_originators: Annotated[List[str], NoDecode] = Field(default_factory=list, alias="triggerOriginators")

    @field_validator(
        "trigger_functions", "trigger_topics", "trigger_originators", mode="before"
    )
    @classmethod
    def split_lists(cls, value: Any) -> Any:
        return _split_list(value)

    @property
    def connection_params(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password
        }


class SSLConfig(BaseModel):
    """Client certificate and key, as file paths or PEM text"""
    cert: Optional[str] = None
    key: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.cert and self.key)


class KafkaConfig(BaseModel):
    """Broker connection options"""
    model_config = ConfigDict(populate_by_name=True)

    brokers_url: str = "localhost:9092"
    partition: int = Field(0, ge=0)
    client_id: str = "pg-notify-relay"
    ssl: SSLConfig = Field(default_factory=SSLConfig, alias="SSL")


class RelayConfig(BaseModel):
    """Dispatcher tuning"""
    queue_size: int = Field(1000, gt=0)
    poll_interval: float = Field(5.0, gt=0)
    shutdown_timeout: float = Field(10.0, gt=0)


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source reading the YAML config file"""

    def get_field_value(self, field, field_name):
        # Values are returned in bulk from __call__
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        return load_yaml_config(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE))


class Settings(BaseSettings):
    """Application settings loaded from environment and config file"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=True,
        populate_by_name=True,
        extra="ignore"
    )

    postgres: PostgresConfig = Field(default_factory=PostgresConfig, alias="POSTGRES")
    kafka: KafkaConfig = Field(default_factory=KafkaConfig, alias="KAFKA")
    relay: RelayConfig = Field(default_factory=RelayConfig, alias="RELAY")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def load_yaml_config(config_path: str = DEFAULT_CONFIG_FILE) -> Dict[str, Any]:
    """Load YAML configuration file"""
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file, "r") as f:
            return yaml.safe_load(f) or {}
    return {}
