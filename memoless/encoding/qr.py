"""Wallet-URI QR payloads for deposit instructions."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# UTXO-style and other chains that take an ``amount=`` query parameter.
AMOUNT_SCHEMES: dict[str, str] = {
    "BTC": "bitcoin",
    "LTC": "litecoin",
    "BCH": "bitcoincash",
    "DOGE": "dogecoin",
    "GAIA": "cosmos",
    "TRON": "tron",
    "AVAX": "avalanche",
    "XRP": "xrp",
}

# EVM chains share the ``ethereum:`` scheme. ``None`` marks the L1.
EVM_CHAIN_IDS: dict[str, int | None] = {
    "ETH": None,
    "BSC": 56,
    "BASE": 8453,
}


def build_qr_payload(chain: str, address: str, amount: str) -> str:
    """Build the QR string for ``chain``.

    Examples:
        ("BTC", "bc1q...", "0.01000003")  → "bitcoin:bc1q...?amount=0.01000003"
        ("ETH", "0xabc", "1.00000003")    → "ethereum:0xabc?value=1.00000003"
        ("BSC", "0xabc", "1.00000003")    → "ethereum:0xabc@56?value=1.00000003"

    Unknown chains fall back to the bare amount.
    """
    chain = chain.upper()
    if chain in EVM_CHAIN_IDS:
        chain_id = EVM_CHAIN_IDS[chain]
        target = address if chain_id is None else f"{address}@{chain_id}"
        return f"ethereum:{target}?value={amount}"

    scheme = AMOUNT_SCHEMES.get(chain)
    if scheme:
        return f"{scheme}:{address}?amount={amount}"

    logger.warning("Unknown chain %s for QR payload, using bare amount", chain)
    return amount
