"""Balance refresher protocol, invoked once a deposit is finalized."""
from typing import Protocol


class BalanceRefresher(Protocol):
    """Abstract interface for refreshing wallet balances."""

    async def refresh_balances(self) -> None: ...
