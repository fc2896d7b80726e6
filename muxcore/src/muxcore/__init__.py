"""
muxcore - Core library for coinmux components

Provides shared Bitcoin primitives, crypto, message verification and settings.
"""

__version__ = "0.1.0"

from muxcore.errors import (
    CoinmuxError,
    ConfigError,
    FetchFailed,
    InternalError,
    ProviderError,
)
from muxcore.message_verification import (
    DecryptionFailed,
    MessageVerification,
    SecretKeyNotFound,
)
from muxcore.models import (
    CoinJoin,
    CoinJoinInput,
    NetworkType,
    ParticipantInput,
    TxOutputSpec,
    UnspentOutput,
    UnspentRef,
)

__all__ = [
    "CoinJoin",
    "CoinJoinInput",
    "CoinmuxError",
    "ConfigError",
    "DecryptionFailed",
    "FetchFailed",
    "InternalError",
    "MessageVerification",
    "NetworkType",
    "ParticipantInput",
    "ProviderError",
    "SecretKeyNotFound",
    "TxOutputSpec",
    "UnspentOutput",
    "UnspentRef",
]
