"""
Root pytest configuration for all coinmux-ng tests.

Provides the --fail-on-skip option and restores the default loguru handler
after tests that reconfigure logging.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator

import pytest
from loguru import logger
from pytest import StashKey

_fail_on_skip_key: StashKey[bool] = StashKey[bool]()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--fail-on-skip",
        action="store_true",
        default=False,
        help="Treat skipped tests as failures (for CI to catch missing setup)",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.stash[_fail_on_skip_key] = config.getoption("--fail-on-skip", default=False)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Iterator[None]:
    """Report skipped tests as failures when --fail-on-skip is set."""
    outcome = yield
    report: pytest.TestReport = outcome.get_result()
    if not report.skipped or not item.config.stash.get(_fail_on_skip_key, False):
        return

    reason = report.longrepr
    if isinstance(reason, tuple) and len(reason) >= 3:
        reason = reason[2]
    report.outcome = "failed"
    report.longrepr = f"Test was skipped but --fail-on-skip is enabled: {reason}"


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    # setup_logging() replaces every handler, some with streams a test closes
    yield
    logger.remove()
    logger.add(sys.stderr)
