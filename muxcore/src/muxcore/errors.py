"""
Error taxonomy shared by all coinmux components.

Every operation either returns a value or raises a subclass of
``CoinmuxError``. Module-specific kinds (script, crypto, transaction and
message errors) derive from the classes below.
"""

from __future__ import annotations


class CoinmuxError(Exception):
    """Base class for every domain error."""

    pass


class ProviderError(CoinmuxError):
    """Chain data provider unreachable or returned malformed data."""

    pass


class FetchFailed(ProviderError):
    """A referenced transaction could not be retrieved."""

    pass


class InternalError(CoinmuxError):
    """Unexpected failure, wrapping the original message for diagnostics."""

    pass


class ConfigError(CoinmuxError):
    """The configuration file cannot be read or parsed."""

    pass
