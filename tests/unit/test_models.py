"""Unit tests for data models."""
from __future__ import annotations

import pytest

from memoless.models import (
    MISSING,
    AssetId,
    BroadcastResult,
    ReferenceRegistration,
    Stage,
    StageName,
    TrackedDeposit,
    is_set,
)


class TestMissing:
    def test_is_falsy(self) -> None:
        assert not MISSING

    def test_is_set(self) -> None:
        assert is_set(0)
        assert not is_set(None)
        assert not is_set(MISSING)


class TestAssetId:
    def test_parse_native(self) -> None:
        asset = AssetId.parse("btc.btc")
        assert asset == AssetId("BTC", "BTC")
        assert not asset.is_token
        assert str(asset) == "BTC.BTC"

    def test_parse_token(self) -> None:
        asset = AssetId.parse("ETH.USDC-0xA0B86991")
        assert asset.contract == "0XA0B86991"
        assert asset.is_token
        assert str(asset) == "ETH.USDC-0XA0B86991"

    def test_keeps_separator(self) -> None:
        assert str(AssetId.parse("BTC~BTC")) == "BTC~BTC"

    @pytest.mark.parametrize("value", ["BTC", ".BTC", "BTC.", "BTC.-X"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError):
            AssetId.parse(value)


def _registration(**overrides) -> ReferenceRegistration:
    fields = dict(
        asset=AssetId("BTC", "BTC"),
        raw_memo="=:ETH.ETH:0xabc",
        registration_tx_hash="REGHASH",
        reference_id="00003",
        registered_at_height=990,
        expiry_height=2000,
    )
    fields.update(overrides)
    return ReferenceRegistration(**fields)


class TestReferenceRegistration:
    def test_not_expired_before_height(self) -> None:
        assert not _registration().is_expired(2000)

    def test_expired_after_height(self) -> None:
        assert _registration().is_expired(2001)

    def test_usage_exhausted(self) -> None:
        assert _registration(usage_count=3, max_use=3).is_expired()

    def test_unknown_expiry(self) -> None:
        assert not _registration(expiry_height=None).is_expired(10**9)

    def test_immutable(self) -> None:
        reg = _registration()
        with pytest.raises(AttributeError):
            reg.usage_count = 5  # type: ignore[misc]


class TestTrackedDeposit:
    def test_current_stage_is_highest_completed(self) -> None:
        tracked = TrackedDeposit(
            hash="H",
            stages=(
                Stage(StageName.INBOUND_OBSERVED, completed=True),
                Stage(StageName.PROCESSING, completed=True),
                Stage(StageName.OUTBOUND_SENT),
                Stage(StageName.FINALIZED),
            ),
        )
        assert tracked.current_stage is StageName.PROCESSING
        assert not tracked.finalized

    def test_no_stage(self) -> None:
        tracked = TrackedDeposit(hash="H", stages=(Stage(StageName.INBOUND_OBSERVED),))
        assert tracked.current_stage is None


class TestBroadcastResult:
    def test_ok(self) -> None:
        assert BroadcastResult(tx_hash="ABC").ok

    def test_rejected(self) -> None:
        assert not BroadcastResult(tx_hash="ABC", code=5, raw_log="insufficient funds").ok
        assert not BroadcastResult(tx_hash="").ok
