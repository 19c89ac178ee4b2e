"""Pure parsing functions for THORNode JSON responses — no I/O.

Every parser raises :class:`ResponseFormatError` on a payload whose shape
is wrong. Optional fields keep the absent/null distinction via ``MISSING``.
"""
from __future__ import annotations

from typing import Any

from ...errors import ResponseFormatError
from ...models import (
    MISSING,
    InboundAddress,
    LastBlock,
    MemoCheck,
    MemoReference,
    ObservedTxStatus,
    OutTx,
    PoolInfo,
)


def _expect_dict(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ResponseFormatError(f"Expected object for {what}, got {type(data).__name__}")
    return data


def _expect_list(data: Any, what: str) -> list[Any]:
    if not isinstance(data, list):
        raise ResponseFormatError(f"Expected array for {what}, got {type(data).__name__}")
    return data


def _to_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ResponseFormatError(f"Field '{key}' is not an integer: {value!r}") from e


def optional_int(data: dict[str, Any], key: str) -> Any:
    """``MISSING`` if absent, ``None`` if null, otherwise ``int``."""
    if key not in data:
        return MISSING
    value = data[key]
    if value is None:
        return None
    return _to_int(value, key)


def _int_or(data: dict[str, Any], key: str, default: int | None) -> int | None:
    value = optional_int(data, key)
    if value is MISSING or value is None:
        return default
    return value


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


# ---------------------------------------------------------------------------
# /thorchain/pools
# ---------------------------------------------------------------------------


def parse_pool(entry: dict[str, Any]) -> PoolInfo:
    entry = _expect_dict(entry, "pool")
    asset = entry.get("asset")
    if not asset:
        raise ResponseFormatError("Pool entry without asset")

    decimals = _int_or(entry, "decimals", None)
    if not decimals:
        decimals = _int_or(entry, "decimal", None) or 8

    # asset_tor_price is USD scaled by 1e8; display only.
    tor_price = _int_or(entry, "asset_tor_price", None)
    if tor_price is not None:
        price = tor_price / 1e8
    else:
        price = float(entry.get("asset_price_usd") or 0.0)

    return PoolInfo(
        asset=str(asset),
        status=str(entry.get("status", "")),
        decimals=decimals,
        asset_price_usd=price,
        balance_rune=_int_or(entry, "balance_rune", 0) or 0,
    )


def parse_pools(data: Any) -> tuple[PoolInfo, ...]:
    return tuple(parse_pool(entry) for entry in _expect_list(data, "pools"))


# ---------------------------------------------------------------------------
# /thorchain/inbound_addresses
# ---------------------------------------------------------------------------


def parse_inbound_address(entry: dict[str, Any]) -> InboundAddress:
    entry = _expect_dict(entry, "inbound address")
    chain = entry.get("chain")
    if not chain:
        raise ResponseFormatError("Inbound address entry without chain")

    dust = entry.get("dust_threshold")
    dust_raw = "0" if dust in (None, "") else str(_to_int(dust, "dust_threshold"))

    return InboundAddress(
        chain=str(chain).upper(),
        address=str(entry.get("address", "")),
        dust_threshold=dust_raw,
        halted=_bool(entry.get("halted", False)),
        router=entry.get("router") or None,
    )


def parse_inbound_addresses(data: Any) -> tuple[InboundAddress, ...]:
    return tuple(
        parse_inbound_address(entry)
        for entry in _expect_list(data, "inbound addresses")
    )


# ---------------------------------------------------------------------------
# /thorchain/memo/{hash} and /thorchain/memo/check/{asset}/{amount}
# ---------------------------------------------------------------------------


def parse_memo_reference(data: Any) -> MemoReference:
    """Parse a registration lookup. An empty ``reference`` means not yet indexed."""
    data = _expect_dict(data, "memo reference")
    return MemoReference(
        asset=str(data.get("asset", "")),
        memo=str(data.get("memo", "")),
        reference=str(data.get("reference") or ""),
        height=_int_or(data, "height", 0) or 0,
        registration_hash=str(data.get("registration_hash", "")),
        registered_by=str(data.get("registered_by", "")),
        expires_at=optional_int(data, "expires_at"),
        usage_count=optional_int(data, "usage_count"),
        max_use=optional_int(data, "max_use"),
    )


def parse_memo_check(data: Any) -> MemoCheck:
    data = _expect_dict(data, "memo check")
    return MemoCheck(
        reference=str(data.get("reference") or ""),
        memo=str(data.get("memo") or ""),
        available=_bool(data.get("available", False)),
        can_register=_bool(data.get("can_register", False)),
        expires_at=_int_or(data, "expires_at", None),
        usage_count=_int_or(data, "usage_count", 0) or 0,
        max_use=_int_or(data, "max_use", None),
    )


# ---------------------------------------------------------------------------
# /thorchain/lastblock/THORCHAIN
# ---------------------------------------------------------------------------


def parse_last_block(data: Any, chain: str = "THORCHAIN") -> LastBlock:
    """Pick the THORChain height out of the lastblock array (or a bare object)."""
    entries = [data] if isinstance(data, dict) else _expect_list(data, "lastblock")
    if not entries:
        raise ResponseFormatError("Empty lastblock response")

    chosen = entries[0]
    for entry in entries:
        if isinstance(entry, dict) and str(entry.get("chain", "")).upper() == chain:
            chosen = entry
            break

    chosen = _expect_dict(chosen, "lastblock entry")
    height = _int_or(chosen, "thorchain", None)
    if height is None:
        raise ResponseFormatError("lastblock entry without thorchain height")
    return LastBlock(chain=str(chosen.get("chain", chain)), thorchain=height)


# ---------------------------------------------------------------------------
# /thorchain/tx/status/{hash}
# ---------------------------------------------------------------------------


def parse_out_tx(entry: Any) -> OutTx:
    entry = _expect_dict(entry, "out tx")
    return OutTx(
        chain=str(entry.get("chain", "")),
        tx_id=str(entry.get("id") or entry.get("hash") or ""),
        to_address=str(entry.get("to_address", "")),
    )


def parse_tx_status(data: Any) -> ObservedTxStatus:
    """Parse an observed-transaction status payload.

    The observation lives under ``observed_tx``; when that key is absent or
    null the inbound has not been observed yet.
    """
    data = _expect_dict(data, "tx status")
    observed = data.get("observed_tx")
    if observed is None:
        return ObservedTxStatus(observed=False)
    observed = _expect_dict(observed, "observed_tx")

    out_txs: Any = MISSING
    if "out_txs" in observed:
        raw_out = observed["out_txs"]
        out_txs = None if raw_out is None else tuple(
            parse_out_tx(entry) for entry in _expect_list(raw_out, "out_txs")
        )

    return ObservedTxStatus(
        observed=True,
        status=observed.get("status", MISSING),
        height=optional_int(observed, "height"),
        finalise_height=optional_int(observed, "finalise_height"),
        out_txs=out_txs,
    )
