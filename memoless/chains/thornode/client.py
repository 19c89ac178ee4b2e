"""THORNode REST client — JSON over HTTPS, typed results."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, Callable, TypeVar
from urllib.parse import quote

import aiohttp
import certifi

from ...config import NetworkConfig
from ...errors import ErrorKind, ResponseFormatError, Result
from ...models import (
    InboundAddress,
    LastBlock,
    MemoCheck,
    MemoReference,
    ObservedTxStatus,
    PoolInfo,
)
from . import parser

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NodeHTTPError(RuntimeError):
    """Non-200 response from the node."""

    def __init__(self, status: int, url: str) -> None:
        super().__init__(f"HTTP {status} from {url}")
        self.status = status
        self.url = url


class ThornodeClient:
    """Async THORNode client.

    Each ``get_*`` method returns a :class:`Result`; transport, HTTP and
    parse failures become ``NETWORK_TRANSIENT`` errors instead of raising.
    """

    def __init__(self, config: NetworkConfig) -> None:
        self.network = config.name
        self.base_url = config.base_url
        self.timeout = config.timeout

    async def get_json(self, path: str) -> Any:
        """GET ``path`` relative to the node base URL and decode JSON."""
        url = f"{self.base_url}{path}"
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    raise NodeHTTPError(response.status, url)
                return await response.json(content_type=None)

    async def _fetch(
        self, path: str, parse: Callable[[Any], T], what: str
    ) -> Result[T]:
        try:
            data = await self.get_json(path)
            return Result.success(parse(data))
        except NodeHTTPError as e:
            logger.warning("Error fetching %s: %s", what, e)
            return Result.failure(
                ErrorKind.NETWORK_TRANSIENT,
                f"Failed to fetch {what}: {e}",
                path=path,
                status=e.status,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ResponseFormatError, ValueError) as e:
            logger.warning("Error fetching %s: %s", what, e)
            return Result.failure(
                ErrorKind.NETWORK_TRANSIENT, f"Failed to fetch {what}: {e}", path=path
            )

    async def get_pools(self) -> Result[tuple[PoolInfo, ...]]:
        return await self._fetch("/thorchain/pools", parser.parse_pools, "pools")

    async def get_inbound_addresses(self) -> Result[tuple[InboundAddress, ...]]:
        return await self._fetch(
            "/thorchain/inbound_addresses",
            parser.parse_inbound_addresses,
            "inbound addresses",
        )

    async def get_memo_reference(self, tx_hash: str) -> Result[MemoReference]:
        return await self._fetch(
            f"/thorchain/memo/{quote(tx_hash, safe='')}",
            parser.parse_memo_reference,
            f"memo reference for {tx_hash}",
        )

    async def check_memo(self, asset: str, raw_amount: str) -> Result[MemoCheck]:
        return await self._fetch(
            f"/thorchain/memo/check/{quote(asset, safe='.-~')}/{raw_amount}",
            parser.parse_memo_check,
            f"memo check for {asset}/{raw_amount}",
        )

    async def get_last_block(self) -> Result[LastBlock]:
        return await self._fetch(
            "/thorchain/lastblock/THORCHAIN", parser.parse_last_block, "last block"
        )

    async def get_tx_status(self, tx_hash: str) -> Result[ObservedTxStatus]:
        return await self._fetch(
            f"/thorchain/tx/status/{quote(tx_hash, safe='')}",
            parser.parse_tx_status,
            f"tx status for {tx_hash}",
        )
