"""THORNode API protocol — the node endpoints the engine reads."""
from typing import Protocol

from ..errors import Result
from ..models import (
    InboundAddress,
    LastBlock,
    MemoCheck,
    MemoReference,
    ObservedTxStatus,
    PoolInfo,
)


class ThornodeApi(Protocol):
    """Abstract interface for THORNode REST lookups."""

    async def get_pools(self) -> Result[tuple[PoolInfo, ...]]: ...

    async def get_inbound_addresses(self) -> Result[tuple[InboundAddress, ...]]: ...

    async def get_memo_reference(self, tx_hash: str) -> Result[MemoReference]: ...

    async def check_memo(self, asset: str, raw_amount: str) -> Result[MemoCheck]: ...

    async def get_last_block(self) -> Result[LastBlock]: ...

    async def get_tx_status(self, tx_hash: str) -> Result[ObservedTxStatus]: ...
