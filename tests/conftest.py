"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest

from memoless.config import AppConfig, EncodingConfig, NetworkConfig, PollingConfig
from memoless.errors import ErrorKind, Result
from memoless.models import (
    BroadcastResult,
    InboundAddress,
    LastBlock,
    MemoCheck,
    MemoReference,
    ObservedTxStatus,
    PoolInfo,
)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fast_polling() -> PollingConfig:
    return PollingConfig(
        settle_delay=0.0,
        reference_initial_delay=0.0,
        reference_max_delay=0.0,
        reference_max_tries=3,
        reference_max_time=30.0,
        tracker_interval=0.0,
        tracker_max_attempts=5,
    )


@pytest.fixture()
def sample_app_config(fast_polling: PollingConfig) -> AppConfig:
    return AppConfig(
        network=NetworkConfig(name="stagenet", thornode_url="https://node.example.com"),
        polling=fast_polling,
        encoding=EncodingConfig(dust_decimals=8, average_block_time=6.0),
    )


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


def _next(queue: list[Any]) -> Any:
    """Pop responses in order; the last one repeats."""
    return queue.pop(0) if len(queue) > 1 else queue[0]


class FakeThornodeApi:
    """In-memory stand-in for :class:`ThornodeClient`."""

    def __init__(self) -> None:
        self.pools: Result = Result.success(())
        self.inbound: Result = Result.success(())
        self.memo_references: list[Result] = [
            Result.failure(ErrorKind.NETWORK_TRANSIENT, "not indexed")
        ]
        self.memo_check: Result = Result.success(MemoCheck(reference="", memo=""))
        self.last_block: Result = Result.success(LastBlock("THORCHAIN", 1000))
        self.tx_statuses: list[Result] = [Result.success(ObservedTxStatus(observed=False))]
        self.calls: list[tuple[str, ...]] = []

    async def get_pools(self) -> Result:
        self.calls.append(("pools",))
        return self.pools

    async def get_inbound_addresses(self) -> Result:
        self.calls.append(("inbound",))
        return self.inbound

    async def get_memo_reference(self, tx_hash: str) -> Result:
        self.calls.append(("memo", tx_hash))
        return _next(self.memo_references)

    async def check_memo(self, asset: str, raw_amount: str) -> Result:
        self.calls.append(("check", asset, raw_amount))
        return self.memo_check

    async def get_last_block(self) -> Result:
        self.calls.append(("lastblock",))
        return self.last_block

    async def get_tx_status(self, tx_hash: str) -> Result:
        self.calls.append(("status", tx_hash))
        return _next(self.tx_statuses)


class FakeSigner:
    def __init__(self, result: BroadcastResult | None = None, error: Exception | None = None) -> None:
        self.result = result or BroadcastResult(tx_hash="REGHASH")
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def broadcast_deposit(self, asset: str, amount: str, memo: str) -> BroadcastResult:
        self.calls.append((asset, amount, memo))
        if self.error:
            raise self.error
        return self.result


class FakeRefresher:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    async def refresh_balances(self) -> None:
        self.calls += 1
        if self.error:
            raise self.error


@pytest.fixture()
def fake_api() -> FakeThornodeApi:
    return FakeThornodeApi()


@pytest.fixture()
def fake_signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture()
def fake_refresher() -> FakeRefresher:
    return FakeRefresher()


# ---------------------------------------------------------------------------
# Sample node data
# ---------------------------------------------------------------------------


@pytest.fixture()
def btc_pool() -> PoolInfo:
    return PoolInfo(
        asset="BTC.BTC",
        status="Available",
        decimals=8,
        asset_price_usd=100000.0,
        balance_rune=5_000_000_000_000,
    )


@pytest.fixture()
def btc_inbound() -> InboundAddress:
    return InboundAddress(chain="BTC", address="bc1qinbound", dust_threshold="1000")


@pytest.fixture()
def btc_reference() -> MemoReference:
    return MemoReference(
        asset="BTC.BTC",
        memo="=:ETH.ETH:0xabc",
        reference="00003",
        height=990,
        registration_hash="REGHASH",
        expires_at=2000,
    )


@pytest.fixture()
def registered_api(
    fake_api: FakeThornodeApi,
    btc_pool: PoolInfo,
    btc_inbound: InboundAddress,
    btc_reference: MemoReference,
) -> FakeThornodeApi:
    """Node state for a BTC memo that indexes on the second lookup."""
    fake_api.pools = Result.success((btc_pool,))
    fake_api.inbound = Result.success((btc_inbound,))
    fake_api.memo_references = [
        Result.success(
            MemoReference(asset="BTC.BTC", memo="=:ETH.ETH:0xabc", reference="", height=0)
        ),
        Result.success(btc_reference),
    ]
    fake_api.memo_check = Result.success(
        MemoCheck(
            reference="00003",
            memo="=:ETH.ETH:0xabc",
            available=False,
            expires_at=2000,
            usage_count=0,
        )
    )
    return fake_api


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    network:
      name: stagenet
      thornode_url: ""
      timeout: 10
    polling:
      settle_delay: 0
      reference_max_tries: 4
      tracker_interval: 1.5
      tracker_max_attempts: 50
    encoding:
      dust_decimals: 8
      average_block_time: 6.0
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
