"""Polls observation status for a deposit and reports pipeline stages."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator

from ..config import PollingConfig
from ..interfaces.balances import BalanceRefresher
from ..interfaces.thornode import ThornodeApi
from ..models import (
    STAGE_ORDER,
    ObservedTxStatus,
    Stage,
    StageName,
    TrackedDeposit,
    TrackStatus,
    is_set,
)
from .retry import RetryPolicy, poll_until

logger = logging.getLogger(__name__)

_DONE = object()


def initial_stages() -> tuple[Stage, ...]:
    return tuple(Stage(name=name) for name in STAGE_ORDER)


def observed_stages(status: ObservedTxStatus) -> dict[StageName, str]:
    """Stages this single response shows as reached, mapped to a detail line."""
    if not status.observed:
        return {}

    reached: dict[StageName, str] = {
        StageName.INBOUND_OBSERVED: (
            f"Status: {status.status}" if is_set(status.status) else ""
        ),
    }
    if is_set(status.height):
        reached[StageName.PROCESSING] = f"Block height: {status.height}"
    if is_set(status.out_txs) and status.out_txs:
        reached[StageName.OUTBOUND_SENT] = ", ".join(
            f"{out.chain}:{out.tx_id}" for out in status.out_txs
        )
    if is_set(status.finalise_height):
        reached.setdefault(StageName.PROCESSING, "")
        reached[StageName.FINALIZED] = f"Finalized at height: {status.finalise_height}"
    return reached


def merge_stages(
    previous: tuple[Stage, ...], status: ObservedTxStatus
) -> tuple[Stage, ...]:
    """Merge a response into the stage list. Completion never goes backwards."""
    reached = observed_stages(status)
    merged: list[Stage] = []
    for stage in previous:
        detail = reached.get(stage.name, "")
        merged.append(
            Stage(
                name=stage.name,
                completed=stage.completed or stage.name in reached,
                detail=detail or stage.detail,
            )
        )
    return tuple(merged)


class DepositTracker:
    """Polls ``/thorchain/tx/status/{hash}`` for one deposit.

    Polls are sequential at a fixed interval. Failed polls are logged and
    skipped; running out of attempts before *Finalized* ends with
    ``timedOut``. Discarding the tracker (or calling :meth:`cancel`) stops
    polling.
    """

    def __init__(
        self,
        api: ThornodeApi,
        tx_hash: str,
        polling: PollingConfig | None = None,
        refresher: BalanceRefresher | None = None,
    ) -> None:
        polling = polling or PollingConfig()
        self.hash = tx_hash
        self._api = api
        self._refresher = refresher
        self._policy = RetryPolicy.fixed_interval(
            polling.tracker_interval, polling.tracker_max_attempts
        )
        self._snapshot = TrackedDeposit(hash=tx_hash, stages=initial_stages())
        self._cancel = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._started = False

    @property
    def snapshot(self) -> TrackedDeposit:
        return self._snapshot

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop polling; no further snapshots are produced."""
        self._cancel.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def poll_once(self) -> TrackedDeposit:
        """Run one poll and fold it into the current snapshot."""
        result = await self._api.get_tx_status(self.hash)
        stages = self._snapshot.stages
        if result.ok:
            stages = merge_stages(stages, result.value)
        else:
            logger.warning("Tx status poll for %s failed: %s", self.hash, result.error)

        snapshot = TrackedDeposit(
            hash=self.hash,
            stages=stages,
            status=TrackStatus.POLLING,
            attempts=self._snapshot.attempts + 1,
            last_polled_at=datetime.now(timezone.utc),
        )
        if snapshot.finalized:
            snapshot = replace(snapshot, status=TrackStatus.COMPLETED)
        self._snapshot = snapshot
        return snapshot

    async def _run(self, queue: asyncio.Queue) -> None:
        async def _poll() -> TrackedDeposit:
            snapshot = await self.poll_once()
            queue.put_nowait(snapshot)
            return snapshot

        try:
            final = await poll_until(
                _poll,
                lambda s: s.finalized,
                self._policy,
                cancel=self._cancel,
                label=f"deposit {self.hash}",
            )
            if final.finalized:
                logger.info("Deposit %s finalized after %d polls", self.hash, final.attempts)
                await self._refresh_balances()
            elif not self.cancelled:
                self._snapshot = replace(final, status=TrackStatus.TIMED_OUT)
                logger.warning(
                    "Deposit %s not finalized after %d polls", self.hash, final.attempts
                )
                queue.put_nowait(self._snapshot)
        except Exception:
            self._snapshot = replace(self._snapshot, status=TrackStatus.ERROR)
            raise

    async def _refresh_balances(self) -> None:
        if self._refresher is None:
            return
        try:
            await self._refresher.refresh_balances()
        except Exception as e:
            logger.error("Balance refresh after deposit %s failed: %s", self.hash, e)

    async def track(self) -> AsyncIterator[TrackedDeposit]:
        """Yield a snapshot per poll until completion, timeout or cancellation."""
        if self._started:
            raise RuntimeError(f"Deposit {self.hash} is already being tracked")
        self._started = True

        queue: asyncio.Queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(queue))
        self._task.add_done_callback(lambda _: queue.put_nowait(_DONE))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
            if not self.cancelled:
                await self._task
        finally:
            if not self._task.done():
                self._task.cancel()

    async def run(self) -> TrackedDeposit:
        """Track to the end and return the last snapshot."""
        async for _ in self.track():
            pass
        return self._snapshot
