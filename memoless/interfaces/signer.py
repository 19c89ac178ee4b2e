"""Signs and broadcasts deposit-type messages."""
from typing import Protocol

from ..models import BroadcastResult


class Signer(Protocol):
    """Abstract interface for the wallet's signing/broadcast collaborator.

    Implementations raise on transport failure; a non-zero ``code`` in the
    result means the node rejected the message.
    """

    async def broadcast_deposit(
        self, asset: str, amount: str, memo: str
    ) -> BroadcastResult: ...
