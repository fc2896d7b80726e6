"""
webbtc.com chain data gateway.

Endpoints used:
- GET  /address/<address>.json  address history
- GET  /tx/<hash>.bin           raw transaction bytes
- POST /relay_tx                relay, form field ``tx`` = hex transaction
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger
from muxcore.errors import ProviderError

from muxwallet.backends.base import ChainDataGateway, RelayResult


class WebBtcGateway(ChainDataGateway):
    """
    Chain data gateway using the webbtc API.
    Works with the public instance or a self-hosted one.
    """

    def __init__(
        self,
        base_url: str = "https://test.webbtc.com",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch_history(self, address: str) -> dict[str, Any]:
        path = f"/address/{address}.json"
        data = self._parse_json(await self._get(path), path)
        logger.debug(f"Fetched history for {address}")
        return data

    async def fetch_raw_transaction(self, transaction_hash: str) -> bytes:
        path = f"/tx/{transaction_hash}.bin"
        raw = await self._get(path)
        logger.debug(f"Fetched transaction {transaction_hash} ({len(raw)} bytes)")
        return raw

    async def relay(self, raw_transaction: bytes) -> RelayResult:
        path = "/relay_tx"
        try:
            response = await self.client.post(
                f"{self.base_url}{path}", data={"tx": raw_transaction.hex()}
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to relay transaction: {e}")
            raise ProviderError(f"Unable to post to {path}: {e}") from e

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProviderError(f"Unable to post to {path}: invalid JSON response") from e

        if not isinstance(data, dict):
            raise ProviderError(f"Unable to post to {path}: invalid JSON response")
        if data.get("error"):
            logger.warning(f"Relay rejected: {data['error']} ({data.get('detail')})")
            return RelayResult(error=str(data["error"]), detail=_optional_str(data.get("detail")))
        if not data.get("hash"):
            raise ProviderError(f"Unable to post to {path}: response has no hash")

        logger.info(f"Relayed transaction: {data['hash']}")
        return RelayResult(hash=str(data["hash"]))

    async def close(self) -> None:
        await self.client.aclose()

    async def _get(self, path: str) -> bytes:
        try:
            response = await self.client.get(
                f"{self.base_url}{path}",
                headers={"Accept-Encoding": "gzip,deflate"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Request to {path} failed: {e}")
            raise ProviderError(f"Request to {path} failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(f"Unexpected status code {response.status_code} for {path}")
        return response.content

    @staticmethod
    def _parse_json(content: bytes, path: str) -> dict[str, Any]:
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProviderError(f"Unable to parse JSON from {path}") from e

        if not isinstance(data, dict):
            raise ProviderError(f"Unable to parse JSON from {path}")
        if data.get("error"):
            raise ProviderError(f"Invalid request: {data['error']}")
        return data


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
