"""
Settings for coinmux components, built on pydantic-settings.

Sources, highest priority first:
1. Constructor keyword arguments (CLI options)
2. Environment variables, ``__`` separating nested fields
   (NETWORK=mainnet, PROVIDER__BASE_URL=..., LOGGING__LEVEL=DEBUG)
3. TOML file: $COINMUX_CONFIG_FILE, else <data dir>/config.toml
4. Field defaults

Every load_settings() call returns a new object; components receive their
settings explicitly and nothing is cached at module level.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from muxcore.errors import ConfigError
from muxcore.models import NetworkType
from muxcore.paths import get_default_data_dir

DEFAULT_PROVIDER_URLS: dict[str, str] = {
    "mainnet": "https://webbtc.com",
    "testnet": "https://test.webbtc.com",
    "signet": "https://test.webbtc.com",
    "regtest": "http://127.0.0.1:3000",
}

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class ProviderSettings(BaseModel):
    base_url: str | None = Field(
        default=None,
        description="Base URL of the chain data provider (defaults per network)",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout in seconds for provider requests",
    )

    def get_base_url(self, network: NetworkType) -> str:
        return (self.base_url or DEFAULT_PROVIDER_URLS[network.value]).rstrip("/")


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description=f"Log level: {', '.join(LOG_LEVELS)}")
    log_to_file: bool = Field(
        default=False,
        description="Also write logs to <data_dir>/logs/coinmux.log",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class CoinmuxSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Data directory (defaults to ~/.coinmux-ng or $COINMUX_DATA_DIR)",
    )
    network: NetworkType = Field(
        default=NetworkType.TESTNET,
        description="Bitcoin network: mainnet, testnet, signet, regtest",
    )
    provider: ProviderSettings = Field(
        default_factory=ProviderSettings, description="Chain Data Provider Settings"
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings, description="Logging Settings"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # No dotenv or secrets directory support
        return init_settings, env_settings, ConfigFileSource(settings_cls)

    def get_data_dir(self) -> Path:
        if self.data_dir is None:
            return get_default_data_dir()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir

    def get_provider_url(self) -> str:
        return self.provider.get_base_url(self.network)


class ConfigFileSource(TomlConfigSettingsSource):
    """TOML source reading the file named by get_config_path()."""

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        path = get_config_path()
        try:
            super().__init__(settings_cls, toml_file=path)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML syntax in config file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

        if path.is_file():
            logger.debug(f"Loaded config from {path}")
        else:
            logger.debug(f"Config file not found at {path}, using defaults")


def get_config_path() -> Path:
    env_path = os.environ.get("COINMUX_CONFIG_FILE")
    if env_path:
        return Path(env_path)
    data_dir = os.environ.get("COINMUX_DATA_DIR")
    return (Path(data_dir) if data_dir else Path.home() / ".coinmux-ng") / "config.toml"


_TEMPLATE_HEADER = [
    "# coinmux-ng Configuration",
    "#",
    "# Every setting is commented out; uncomment a line to override its default.",
    "#",
    "# Priority (highest to lowest):",
    "#   1. CLI arguments",
    "#   2. Environment variables",
    "#   3. This config file",
    "#   4. Built-in defaults",
    "#",
    "# Nested settings map to environment variables with a double underscore,",
    "# e.g. [provider] base_url -> PROVIDER__BASE_URL, [logging] level -> LOGGING__LEVEL",
    "",
]


def _toml_default(info: FieldInfo) -> str:
    default = info.get_default(call_default_factory=False)
    if default is None:
        return ""
    if isinstance(default, bool):
        return str(default).lower()
    if isinstance(default, NetworkType):
        default = default.value
    if isinstance(default, str):
        return f'"{default}"'
    return str(default)


def _commented_field(name: str, info: FieldInfo) -> list[str]:
    lines = [f"# {info.description}"] if info.description else []
    lines.append(f"# {name} = {_toml_default(info)}")
    lines.append("")
    return lines


def generate_config_template() -> str:
    """
    Commented TOML template listing every setting with its default.

    Top-level fields come first; each nested model becomes a table.
    """
    lines = list(_TEMPLATE_HEADER)
    tables: list[tuple[str, type[BaseModel], str]] = []

    for name, info in CoinmuxSettings.model_fields.items():
        model = info.annotation
        if isinstance(model, type) and issubclass(model, BaseModel):
            tables.append((name, model, info.description or name))
        else:
            lines.extend(_commented_field(name, info))

    for name, model, title in tables:
        lines.extend([f"# {'=' * 60}", f"# {title}", f"# {'=' * 60}", f"[{name}]", ""])
        for field_name, field_info in model.model_fields.items():
            lines.extend(_commented_field(field_name, field_info))

    return "\n".join(lines)


def ensure_config_file(data_dir: Path | None = None) -> Path:
    """Write the template to <data_dir>/config.toml unless a file is already there."""
    config_path = (data_dir or get_default_data_dir()) / "config.toml"
    if config_path.exists():
        return config_path

    logger.info(f"Creating config file template at {config_path}")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(generate_config_template())
    return config_path


def load_settings(**overrides: Any) -> CoinmuxSettings:
    """Load settings from every source; ``overrides`` take precedence."""
    return CoinmuxSettings(**overrides)


__all__ = [
    "CoinmuxSettings",
    "ConfigFileSource",
    "DEFAULT_PROVIDER_URLS",
    "LoggingSettings",
    "ProviderSettings",
    "ensure_config_file",
    "generate_config_template",
    "get_config_path",
    "load_settings",
]
