"""
Shared path utilities for coinmux data directories.
"""

from __future__ import annotations

import os
from pathlib import Path


def get_default_data_dir() -> Path:
    """
    Get the default coinmux data directory.

    Returns ~/.coinmux-ng or $COINMUX_DATA_DIR if set.
    Creates the directory if it doesn't exist.
    """
    env_path = os.getenv("COINMUX_DATA_DIR")
    data_dir = Path(env_path) if env_path else Path.home() / ".coinmux-ng"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_log_path(data_dir: Path | None = None) -> Path:
    """
    Get the path of the log file.

    Args:
        data_dir: Optional data directory (defaults to get_default_data_dir())

    Returns:
        Path to logs/coinmux.log
    """
    if data_dir is None:
        data_dir = get_default_data_dir()

    logs_dir = data_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    return logs_dir / "coinmux.log"
