"""Protocol interfaces for the memoless engine's collaborators."""
from .balances import BalanceRefresher
from .signer import Signer
from .thornode import ThornodeApi

__all__ = ["BalanceRefresher", "Signer", "ThornodeApi"]
