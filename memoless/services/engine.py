"""Engine facade wiring the node client, encoder, workflow and tracker."""
from __future__ import annotations

import logging
from typing import AsyncIterator

from ..chains.thornode import ThornodeClient
from ..config import AppConfig
from ..encoding import reference
from ..errors import InvalidTransition, Result
from ..interfaces.balances import BalanceRefresher
from ..interfaces.signer import Signer
from ..interfaces.thornode import ThornodeApi
from ..models import (
    AmountEncoding,
    AssetId,
    DepositInstruction,
    InputMode,
    PoolInfo,
    TrackedDeposit,
    TrackStatus,
)
from .assets import AssetCatalog
from .tracker import DepositTracker
from .workflow import MemoRegistrationWorkflow, WorkflowSnapshot, WorkflowState

logger = logging.getLogger(__name__)


class MemolessEngine:
    """Entry point for hosts: one active workflow and one active tracker."""

    def __init__(
        self,
        config: AppConfig,
        signer: Signer | None = None,
        api: ThornodeApi | None = None,
        refresher: BalanceRefresher | None = None,
    ) -> None:
        self._config = config
        self._signer = signer
        self._api: ThornodeApi = api or ThornodeClient(config.network)
        self._refresher = refresher
        self._catalog = AssetCatalog(self._api)
        self._workflow: MemoRegistrationWorkflow | None = None
        self._tracker: DepositTracker | None = None

    @property
    def api(self) -> ThornodeApi:
        return self._api

    @property
    def workflow(self) -> MemoRegistrationWorkflow | None:
        return self._workflow

    # ------------------------------------------------------------------
    # Pure encoding
    # ------------------------------------------------------------------

    @staticmethod
    def encode(
        user_input: str,
        input_mode: InputMode | str,
        reference_id: str,
        asset_decimals: int,
        asset_price_usd: float | None = None,
    ) -> AmountEncoding:
        return reference.encode(
            user_input, input_mode, reference_id, asset_decimals, asset_price_usd
        )

    @staticmethod
    def validate(amount: str, reference_id: str, asset_decimals: int) -> bool:
        return reference.validate(amount, reference_id, asset_decimals)

    # ------------------------------------------------------------------
    # Registration workflow
    # ------------------------------------------------------------------

    async def list_assets(self) -> Result[tuple[PoolInfo, ...]]:
        return await self._catalog.registrable_assets()

    async def start_registration(
        self, asset: AssetId | str, memo: str
    ) -> WorkflowSnapshot:
        """Register ``memo`` for ``asset`` and wait for its reference ID.

        Pool decimals and price come from the node; an ineligible asset
        fails before anything is broadcast.
        """
        if self._signer is None:
            raise RuntimeError("A signer is required to register memos")
        if self._workflow is not None and not self._workflow.snapshot.is_terminal:
            logger.info("Abandoning workflow in state %s", self._workflow.state.value)
            self._workflow.cancel()

        asset_id = asset if isinstance(asset, AssetId) else AssetId.parse(asset)
        self._workflow = MemoRegistrationWorkflow(self._api, self._signer, self._config)

        pool = await self._catalog.find(asset_id)
        if not pool.ok:
            return self._workflow.abort(pool.error)

        snapshot = await self._workflow.register(
            asset_id,
            memo,
            asset_decimals=pool.value.decimals,
            asset_price_usd=pool.value.asset_price_usd or None,
        )
        if snapshot.state is not WorkflowState.AWAITING_REFERENCE:
            return snapshot
        return await self._workflow.await_reference()

    def current_workflow_state(self) -> WorkflowSnapshot | None:
        return self._workflow.snapshot if self._workflow else None

    def _active_workflow(self) -> MemoRegistrationWorkflow:
        if self._workflow is None:
            raise InvalidTransition("No registration in progress")
        return self._workflow

    async def configure_amount(
        self,
        user_input: str,
        input_mode: InputMode | str = InputMode.ASSET,
        asset_price_usd: float | None = None,
    ) -> WorkflowSnapshot:
        return await self._active_workflow().configure_amount(
            user_input, input_mode, asset_price_usd
        )

    def build_deposit_instruction(self) -> DepositInstruction:
        return self._active_workflow().build_deposit_instruction()

    # ------------------------------------------------------------------
    # Deposit tracking
    # ------------------------------------------------------------------

    async def track_deposit(self, tx_hash: str) -> AsyncIterator[TrackedDeposit]:
        """Yield tracker snapshots for ``tx_hash``.

        When a workflow is waiting on its deposit, the hash is recorded on it
        and the final snapshot closes the workflow. Otherwise the hash is
        tracked on its own. Starting a new track cancels the previous one.
        """
        self.cancel_tracking()

        workflow = self._workflow
        if workflow is not None and workflow.state is WorkflowState.DEPOSIT_PENDING:
            tracker = workflow.submit_deposit(tx_hash, self._refresher)
        else:
            workflow = None
            tracker = DepositTracker(
                self._api, tx_hash.strip(), self._config.polling, self._refresher
            )
        self._tracker = tracker

        async for snapshot in tracker.track():
            yield snapshot

        final = tracker.snapshot
        if (
            workflow is not None
            and workflow.state is WorkflowState.DEPOSIT_OBSERVED
            and not tracker.cancelled
            and final.status is not TrackStatus.POLLING
        ):
            workflow.complete(final)

    def cancel_tracking(self) -> None:
        if self._tracker is not None:
            self._tracker.cancel()
            self._tracker = None
