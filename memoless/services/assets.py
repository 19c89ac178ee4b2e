"""Asset eligibility and inbound-address lookup."""
from __future__ import annotations

import logging
from typing import Iterable

from ..errors import ErrorKind, Result
from ..interfaces.thornode import ThornodeApi
from ..models import AssetId, InboundAddress, PoolInfo

logger = logging.getLogger(__name__)

HOME_CHAIN = "THOR"


def is_token(asset: str) -> bool:
    """True for contract tokens like ``ETH.USDC-0XA0B8...``."""
    try:
        return AssetId.parse(asset).is_token
    except ValueError:
        return False


def registrable_pools(pools: Iterable[PoolInfo]) -> tuple[PoolInfo, ...]:
    """Pools a memo can be registered for, deepest first.

    Keeps ``Available`` pools, drops the home chain's own assets and tokens.
    """
    eligible = [
        pool
        for pool in pools
        if pool.status == "Available"
        and not pool.asset.upper().startswith(f"{HOME_CHAIN}.")
        and not is_token(pool.asset)
    ]
    eligible.sort(key=lambda p: p.balance_rune, reverse=True)
    return tuple(eligible)


def find_inbound_address(
    addresses: Iterable[InboundAddress], chain: str
) -> InboundAddress | None:
    chain = chain.upper()
    for address in addresses:
        if address.chain == chain:
            return address
    return None


class AssetCatalog:
    """Pool-backed asset metadata (decimals, display price)."""

    def __init__(self, api: ThornodeApi) -> None:
        self._api = api

    async def registrable_assets(self) -> Result[tuple[PoolInfo, ...]]:
        result = await self._api.get_pools()
        if not result.ok:
            return result
        assets = registrable_pools(result.value)
        logger.info("Found %d assets eligible for memo registration", len(assets))
        return Result.success(assets)

    async def find(self, asset: AssetId | str) -> Result[PoolInfo]:
        """Look up a registrable pool by asset name (case-insensitive)."""
        wanted = str(asset).upper()
        result = await self.registrable_assets()
        if not result.ok:
            return Result(error=result.error)
        for pool in result.value:
            if pool.asset.upper() == wanted:
                return Result.success(pool)
        return Result.failure(
            ErrorKind.INPUT, f"Asset {wanted} is not eligible for memo registration"
        )
