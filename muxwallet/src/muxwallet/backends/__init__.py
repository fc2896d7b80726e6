"""
Chain data gateway implementations.
"""

from muxwallet.backends.base import ChainDataGateway, RelayResult
from muxwallet.backends.webbtc import WebBtcGateway

__all__ = ["ChainDataGateway", "RelayResult", "WebBtcGateway"]
