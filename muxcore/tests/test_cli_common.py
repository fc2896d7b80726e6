"""
Tests for the CLI common module.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from loguru import logger

from muxcore.cli_common import setup_cli, setup_logging
from muxcore.models import NetworkType
from muxcore.paths import get_default_data_dir, get_log_path


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / ".coinmux-ng"
    monkeypatch.setenv("COINMUX_DATA_DIR", str(data_dir))
    for name in (
        "NETWORK",
        "PROVIDER__BASE_URL",
        "LOGGING__LEVEL",
        "LOGGING__LOG_TO_FILE",
        "COINMUX_CONFIG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    return data_dir


class TestSetupLogging:
    def test_setup_logging_replaces_handlers(self) -> None:
        setup_logging("DEBUG")
        assert len(logger._core.handlers) == 1  # type: ignore[attr-defined]

    def test_setup_logging_with_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "test.log"
        setup_logging("INFO", log_file)
        assert len(logger._core.handlers) == 2  # type: ignore[attr-defined]

        logger.info("written to file")
        logger.complete()
        assert "written to file" in log_file.read_text()
        setup_logging("INFO")


class TestSetupCli:
    def test_defaults(self) -> None:
        settings = setup_cli()
        assert settings.network == NetworkType.TESTNET

    def test_network_override(self) -> None:
        settings = setup_cli("WARNING", network="mainnet")
        assert settings.network == NetworkType.MAINNET
        assert settings.get_provider_url() == "https://webbtc.com"

    def test_provider_url_override(self) -> None:
        settings = setup_cli(provider_url="http://localhost:3000")
        assert settings.get_provider_url() == "http://localhost:3000"

    def test_invalid_network(self) -> None:
        with pytest.raises(ValueError):
            setup_cli(network="moonnet")

    def test_log_to_file(self, isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOGGING__LOG_TO_FILE", "true")
        setup_cli("INFO")
        logger.info("file sink enabled")
        logger.complete()
        assert "file sink enabled" in (isolated_env / "logs" / "coinmux.log").read_text()
        setup_logging("INFO")


class TestPaths:
    def test_default_data_dir_from_env(self, isolated_env: Path) -> None:
        assert get_default_data_dir() == isolated_env
        assert isolated_env.is_dir()

    def test_log_path(self, tmp_path: Path) -> None:
        path = get_log_path(tmp_path)
        assert path == tmp_path / "logs" / "coinmux.log"
        assert path.parent.is_dir()
