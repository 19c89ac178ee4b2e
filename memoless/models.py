"""Frozen data models."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Absent-vs-null marker
# ---------------------------------------------------------------------------


class _MissingType:
    """Marks a response field that was absent, as opposed to ``null``."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _MissingType()


def is_set(value: Any) -> bool:
    """True when a response field was present and not ``null``."""
    return value is not MISSING and value is not None


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

_ASSET_SEPARATORS = (".", "~", "/")


@dataclass(frozen=True)
class AssetId:
    """Chain + symbol, with an optional contract part for tokens.

    Examples:
        "BTC.BTC"            → AssetId("BTC", "BTC")
        "ETH.USDC-0XA0B86991" → AssetId("ETH", "USDC", "0XA0B86991")
    """

    chain: str
    symbol: str
    contract: str | None = None
    separator: str = "."

    @classmethod
    def parse(cls, value: str) -> "AssetId":
        text = value.strip().upper()
        for sep in _ASSET_SEPARATORS:
            if sep in text:
                chain, _, rest = text.partition(sep)
                break
        else:
            raise ValueError(f"Invalid asset '{value}': expected CHAIN.SYMBOL")

        if not chain or not rest:
            raise ValueError(f"Invalid asset '{value}': expected CHAIN.SYMBOL")

        symbol, _, contract = rest.partition("-")
        if not symbol:
            raise ValueError(f"Invalid asset '{value}': empty symbol")
        return cls(chain=chain, symbol=symbol, contract=contract or None, separator=sep)

    @property
    def is_token(self) -> bool:
        return self.contract is not None

    def __str__(self) -> str:
        base = f"{self.chain}{self.separator}{self.symbol}"
        return f"{base}-{self.contract}" if self.contract else base


class InputMode(str, Enum):
    ASSET = "asset"
    USD = "usd"


# ---------------------------------------------------------------------------
# Engine entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceRegistration:
    """A registered memo and the reference ID the network assigned to it.

    ``expiry_height`` and ``max_use`` are ``None`` until the node reports
    them. Only ever refreshed from server state, never incremented locally.
    """

    asset: AssetId
    raw_memo: str
    registration_tx_hash: str
    reference_id: str
    registered_at_height: int
    expiry_height: int | None = None
    usage_count: int = 0
    max_use: int | None = None

    def is_expired(self, current_height: int | None = None) -> bool:
        if self.max_use is not None and self.usage_count >= self.max_use:
            return True
        if current_height is not None and self.expiry_height is not None:
            return current_height > self.expiry_height
        return False


@dataclass(frozen=True)
class AmountEncoding:
    """Result of encoding a reference ID into a deposit amount."""

    raw_user_input: str
    input_mode: InputMode
    asset_decimals: int
    reference_id: str
    final_amount: str = ""
    base_amount: str = ""
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class DepositInstruction:
    asset: AssetId
    inbound_address: str
    dust_threshold: str
    final_amount: str
    qr_payload: str


class StageName(str, Enum):
    INBOUND_OBSERVED = "Inbound Observed"
    PROCESSING = "Processing"
    OUTBOUND_SENT = "Outbound Sent"
    FINALIZED = "Finalized"


STAGE_ORDER: tuple[StageName, ...] = (
    StageName.INBOUND_OBSERVED,
    StageName.PROCESSING,
    StageName.OUTBOUND_SENT,
    StageName.FINALIZED,
)


@dataclass(frozen=True)
class Stage:
    name: StageName
    completed: bool = False
    detail: str = ""


class TrackStatus(str, Enum):
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timedOut"
    ERROR = "error"


@dataclass(frozen=True)
class TrackedDeposit:
    """Snapshot of a deposit moving through the observation pipeline."""

    hash: str
    stages: tuple[Stage, ...]
    status: TrackStatus = TrackStatus.POLLING
    attempts: int = 0
    last_polled_at: datetime | None = None

    @property
    def current_stage(self) -> StageName | None:
        """Highest completed stage, or ``None`` before anything is observed."""
        current = None
        for stage in self.stages:
            if stage.completed:
                current = stage.name
        return current

    @property
    def finalized(self) -> bool:
        return self.current_stage is StageName.FINALIZED


# ---------------------------------------------------------------------------
# Node response variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolInfo:
    asset: str
    status: str
    decimals: int = 8
    asset_price_usd: float = 0.0
    balance_rune: int = 0


@dataclass(frozen=True)
class InboundAddress:
    chain: str
    address: str
    dust_threshold: str = "0"
    halted: bool = False
    router: str | None = None


@dataclass(frozen=True)
class MemoReference:
    asset: str
    memo: str
    reference: str
    height: int
    registration_hash: str = ""
    registered_by: str = ""
    expires_at: Any = MISSING
    usage_count: Any = MISSING
    max_use: Any = MISSING


@dataclass(frozen=True)
class MemoCheck:
    reference: str
    memo: str
    available: bool = False
    can_register: bool = False
    expires_at: int | None = None
    usage_count: int = 0
    max_use: int | None = None


@dataclass(frozen=True)
class LastBlock:
    chain: str
    thorchain: int


@dataclass(frozen=True)
class OutTx:
    chain: str
    tx_id: str = ""
    to_address: str = ""


@dataclass(frozen=True)
class ObservedTxStatus:
    """Observed-transaction status. Fields keep the absent/null distinction."""

    observed: bool
    status: Any = MISSING
    height: Any = MISSING
    finalise_height: Any = MISSING
    out_txs: Any = MISSING


@dataclass(frozen=True)
class BroadcastResult:
    tx_hash: str
    code: int = 0
    raw_log: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0 and bool(self.tx_hash)
