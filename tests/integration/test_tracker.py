"""Integration tests for deposit tracking against a fake node."""
from __future__ import annotations

import pytest

from memoless.errors import ErrorKind, Result
from memoless.models import MISSING, ObservedTxStatus, OutTx, StageName, TrackStatus
from memoless.services.tracker import DepositTracker, initial_stages, merge_stages


def _status(**fields) -> Result:
    return Result.success(ObservedTxStatus(observed=True, **fields))


class TestMergeStages:
    def test_height_only_is_processing(self) -> None:
        stages = merge_stages(initial_stages(), ObservedTxStatus(observed=True, height=100))
        assert [s.completed for s in stages] == [True, True, False, False]

    def test_out_txs_mark_outbound_sent(self) -> None:
        stages = merge_stages(
            initial_stages(),
            ObservedTxStatus(observed=True, height=100, out_txs=(OutTx("ETH", "0xout"),)),
        )
        assert stages[2].completed
        assert stages[2].detail == "ETH:0xout"

    def test_empty_out_txs_do_not_count(self) -> None:
        stages = merge_stages(initial_stages(), ObservedTxStatus(observed=True, out_txs=()))
        assert not stages[2].completed

    def test_never_regresses(self) -> None:
        stages = merge_stages(initial_stages(), ObservedTxStatus(observed=True, height=100))
        stages = merge_stages(stages, ObservedTxStatus(observed=False))
        assert stages[1].completed
        assert stages[1].detail == "Block height: 100"


class TestDepositTracker:
    @pytest.mark.asyncio
    async def test_stage_progression_survives_errors_and_nulls(
        self, fake_api, fast_polling
    ) -> None:
        fake_api.tx_statuses = [
            _status(height=100),
            Result.failure(ErrorKind.NETWORK_TRANSIENT, "HTTP 500"),
            _status(height=100, finalise_height=None),
            _status(finalise_height=105),
        ]
        tracker = DepositTracker(fake_api, "H", fast_polling)

        seen = [snapshot async for snapshot in tracker.track()]

        assert [s.current_stage for s in seen] == [
            StageName.PROCESSING,
            StageName.PROCESSING,
            StageName.PROCESSING,
            StageName.FINALIZED,
        ]
        assert seen[-1].status is TrackStatus.COMPLETED
        assert seen[-1].attempts == 4
        assert len([c for c in fake_api.calls if c[0] == "status"]) == 4

    @pytest.mark.asyncio
    async def test_times_out(self, fake_api, fast_polling) -> None:
        fake_api.tx_statuses = [_status(height=100)]
        tracker = DepositTracker(fake_api, "H", fast_polling)

        final = await tracker.run()

        assert final.status is TrackStatus.TIMED_OUT
        assert final.attempts == fast_polling.tracker_max_attempts
        assert final.current_stage is StageName.PROCESSING

    @pytest.mark.asyncio
    async def test_refreshes_balances_once_finalized(
        self, fake_api, fast_polling, fake_refresher
    ) -> None:
        fake_api.tx_statuses = [_status(finalise_height=105)]
        tracker = DepositTracker(fake_api, "H", fast_polling, refresher=fake_refresher)

        final = await tracker.run()

        assert final.status is TrackStatus.COMPLETED
        assert fake_refresher.calls == 1

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_fail_tracking(
        self, fake_api, fast_polling, fake_refresher
    ) -> None:
        fake_refresher.error = RuntimeError("wallet offline")
        fake_api.tx_statuses = [_status(finalise_height=105)]
        tracker = DepositTracker(fake_api, "H", fast_polling, refresher=fake_refresher)

        final = await tracker.run()

        assert final.status is TrackStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_stops_stream(self, fake_api, fast_polling) -> None:
        fake_api.tx_statuses = [_status(height=100)]
        tracker = DepositTracker(fake_api, "H", fast_polling)

        seen = []
        async for snapshot in tracker.track():
            seen.append(snapshot)
            tracker.cancel()

        assert len(seen) == 1
        assert tracker.cancelled
        assert tracker.snapshot.status is TrackStatus.POLLING

    @pytest.mark.asyncio
    async def test_cannot_track_twice(self, fake_api, fast_polling) -> None:
        fake_api.tx_statuses = [_status(finalise_height=1)]
        tracker = DepositTracker(fake_api, "H", fast_polling)
        await tracker.run()

        with pytest.raises(RuntimeError, match="already being tracked"):
            await tracker.run()

    @pytest.mark.asyncio
    async def test_unexpected_error_marks_snapshot(self, fake_api, fast_polling) -> None:
        async def broken(tx_hash: str):
            raise KeyError("boom")

        fake_api.get_tx_status = broken
        tracker = DepositTracker(fake_api, "H", fast_polling)

        with pytest.raises(KeyError):
            await tracker.run()
        assert tracker.snapshot.status is TrackStatus.ERROR

    @pytest.mark.asyncio
    async def test_not_observed_keeps_waiting(self, fake_api, fast_polling) -> None:
        fake_api.tx_statuses = [
            Result.success(ObservedTxStatus(observed=False)),
            _status(height=100, out_txs=MISSING),
            _status(height=100, finalise_height=101),
        ]
        tracker = DepositTracker(fake_api, "H", fast_polling)

        seen = [s async for s in tracker.track()]

        assert seen[0].current_stage is None
        assert seen[-1].finalized
