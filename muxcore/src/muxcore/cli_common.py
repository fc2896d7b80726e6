"""
Common CLI components for coinmux.

Setup helpers shared by the command line entry points: logging
configuration and settings resolution with command line overrides.

Usage:
    from muxcore.cli_common import setup_cli

    settings = setup_cli(log_level, network=network, provider_url=provider_url)
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger

from muxcore.models import NetworkType
from muxcore.paths import get_log_path
from muxcore.settings import CoinmuxSettings, load_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """
    Configure loguru logging with consistent format.

    Args:
        level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file to also write logs to (rotated at 10 MB)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=level.upper(),
        colorize=True,
    )
    if log_file is not None:
        logger.add(
            log_file,
            format=LOG_FORMAT,
            level=level.upper(),
            colorize=False,
            rotation="10 MB",
            retention=2,
        )


def setup_cli(
    log_level: str | None = None,
    *,
    network: NetworkType | str | None = None,
    provider_url: str | None = None,
) -> CoinmuxSettings:
    """
    Common CLI setup: load settings with CLI overrides, configure logging.

    Log level priority: CLI argument > settings (env/config) > default "INFO"
    """
    overrides: dict[str, Any] = {}
    if network is not None:
        overrides["network"] = NetworkType(network)
    settings = load_settings(**overrides)
    if provider_url is not None:
        settings.provider.base_url = provider_url

    effective_log_level = log_level if log_level is not None else settings.logging.level
    log_file = get_log_path(settings.get_data_dir()) if settings.logging.log_to_file else None
    setup_logging(effective_log_level, log_file)

    logger.debug(f"Network: {settings.network.value}")
    logger.debug(f"Provider: {settings.get_provider_url()}")
    return settings

