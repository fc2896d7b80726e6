"""
coinmux wallet library: CoinJoin transaction assembly, signing and
verification over a pluggable chain data gateway.
"""

from muxwallet.backends.base import ChainDataGateway
from muxwallet.network import BitcoinNetwork

__all__ = ["BitcoinNetwork", "ChainDataGateway"]
