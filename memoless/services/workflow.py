"""Memo registration workflow — register, obtain reference, configure amount.

Each step replaces the workflow's :class:`WorkflowSnapshot` with a new frozen
instance. Expected failures land in ``snapshot.error`` and, where fatal, in
the ``Failed``/``Expired`` states; only calling a step from the wrong state
raises.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from ..config import AppConfig
from ..encoding.decimal_codec import shift_from_integer, shift_to_integer
from ..encoding.qr import build_qr_payload
from ..encoding.reference import validate, validate_for_deposit
from ..errors import EngineError, ErrorKind, InvalidTransition, Result, check_transfer_amount
from ..interfaces.balances import BalanceRefresher
from ..interfaces.signer import Signer
from ..interfaces.thornode import ThornodeApi
from ..models import (
    AmountEncoding,
    AssetId,
    DepositInstruction,
    InboundAddress,
    InputMode,
    MemoCheck,
    MemoReference,
    ReferenceRegistration,
    TrackedDeposit,
    TrackStatus,
    is_set,
)
from .assets import find_inbound_address
from .retry import RetryPolicy, poll_until
from .tracker import DepositTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkflowState(str, Enum):
    DRAFT = "Draft"
    REGISTERING = "Registering"
    AWAITING_REFERENCE = "AwaitingReference"
    REFERENCE_OBTAINED = "ReferenceObtained"
    AMOUNT_CONFIGURING = "AmountConfiguring"
    AMOUNT_VALIDATED = "AmountValidated"
    DEPOSIT_PENDING = "DepositPending"
    DEPOSIT_OBSERVED = "DepositObserved"
    COMPLETED = "Completed"
    EXPIRED = "Expired"
    FAILED = "Failed"


TERMINAL_STATES = frozenset(
    {WorkflowState.COMPLETED, WorkflowState.EXPIRED, WorkflowState.FAILED}
)


@dataclass(frozen=True)
class ExpiryEstimate:
    current_height: int
    expiry_height: int
    blocks_remaining: int
    time_remaining: str


@dataclass(frozen=True)
class WorkflowSnapshot:
    state: WorkflowState = WorkflowState.DRAFT
    asset: AssetId | None = None
    memo: str = ""
    asset_decimals: int = 8
    asset_price_usd: float | None = None
    registration_tx_hash: str = ""
    registration: ReferenceRegistration | None = None
    inbound: InboundAddress | None = None
    expiry: ExpiryEstimate | None = None
    encoding: AmountEncoding | None = None
    memo_check: MemoCheck | None = None
    instruction: DepositInstruction | None = None
    deposit_hash: str = ""
    tracked: TrackedDeposit | None = None
    error: EngineError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


def build_registration_memo(asset: AssetId, memo: str) -> str:
    return f"REFERENCE:{asset}:{memo}"


def format_time_remaining(blocks_remaining: int, average_block_time: float) -> str:
    """Human estimate: ``"3h"``, ``"12m"``, ``"<1m"`` or ``"Expired"``."""
    if blocks_remaining <= 0:
        return "Expired"
    total_minutes = int(blocks_remaining * average_block_time // 60)
    hours = total_minutes // 60
    if hours >= 1:
        return f"{hours}h"
    if total_minutes >= 1:
        return f"{total_minutes}m"
    return "<1m"


def estimate_expiry(
    current_height: int | None,
    expiry_height: int | None,
    average_block_time: float,
) -> ExpiryEstimate | None:
    if current_height is None or expiry_height is None:
        return None
    blocks_remaining = expiry_height - current_height
    return ExpiryEstimate(
        current_height=current_height,
        expiry_height=expiry_height,
        blocks_remaining=blocks_remaining,
        time_remaining=format_time_remaining(blocks_remaining, average_block_time),
    )


def _registration_from_reference(
    asset: AssetId, memo: str, tx_hash: str, reference: MemoReference
) -> ReferenceRegistration:
    return ReferenceRegistration(
        asset=asset,
        raw_memo=memo,
        registration_tx_hash=tx_hash,
        reference_id=reference.reference,
        registered_at_height=reference.height,
        expiry_height=reference.expires_at if is_set(reference.expires_at) else None,
        usage_count=reference.usage_count if is_set(reference.usage_count) else 0,
        max_use=reference.max_use if is_set(reference.max_use) else None,
    )


def _refresh_from_check(
    registration: ReferenceRegistration, memo_check: MemoCheck
) -> ReferenceRegistration:
    """Take usage and expiry from the node; unknown fields keep their old value."""
    return replace(
        registration,
        expiry_height=(
            memo_check.expires_at
            if memo_check.expires_at is not None
            else registration.expiry_height
        ),
        usage_count=memo_check.usage_count,
        max_use=(
            memo_check.max_use if memo_check.max_use is not None else registration.max_use
        ),
    )


class MemoRegistrationWorkflow:
    """One registration attempt for an (asset, memo) pair.

    Steps, in order: :meth:`register`, :meth:`await_reference`,
    :meth:`configure_amount` (repeatable), :meth:`build_deposit_instruction`,
    :meth:`submit_deposit`, :meth:`complete`.
    """

    def __init__(
        self,
        api: ThornodeApi,
        signer: Signer,
        config: AppConfig | None = None,
    ) -> None:
        self._api = api
        self._signer = signer
        self._config = config or AppConfig()
        self._snapshot = WorkflowSnapshot()
        self._cancel = asyncio.Event()

    @property
    def snapshot(self) -> WorkflowSnapshot:
        return self._snapshot

    @property
    def state(self) -> WorkflowState:
        return self._snapshot.state

    # ------------------------------------------------------------------
    # Transition helpers
    # ------------------------------------------------------------------

    def _transition(self, state: WorkflowState, **changes: Any) -> WorkflowSnapshot:
        previous = self._snapshot.state
        self._snapshot = replace(self._snapshot, state=state, **changes)
        if previous is not state:
            logger.info("Memo workflow %s -> %s", previous.value, state.value)
        return self._snapshot

    def _require(self, *states: WorkflowState) -> None:
        if self._snapshot.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(
                f"Cannot run this step in state {self._snapshot.state.value} "
                f"(expected {allowed})"
            )

    def _fail(self, kind: ErrorKind, message: str, **details: Any) -> WorkflowSnapshot:
        logger.error("Memo workflow failed: %s", message)
        return self._transition(
            WorkflowState.FAILED,
            error=EngineError(kind=kind, message=message, details=details),
        )

    def _expire(self, message: str, **changes: Any) -> WorkflowSnapshot:
        logger.warning("Memo reference expired: %s", message)
        return self._transition(
            WorkflowState.EXPIRED,
            error=EngineError(kind=ErrorKind.EXPIRED, message=message),
            **changes,
        )

    def _retry_policy(self) -> RetryPolicy:
        polling = self._config.polling
        return RetryPolicy.exponential_backoff(
            initial_delay=polling.reference_initial_delay,
            max_delay=polling.reference_max_delay,
            max_tries=polling.reference_max_tries,
            max_time=polling.reference_max_time,
        )

    async def _until_cancelled(self, work: Awaitable[T]) -> T | None:
        """Await ``work`` unless :meth:`cancel` fires first, in which case ``None``."""
        task = asyncio.ensure_future(work)
        stop = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({task, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, stop):
                if not pending.done():
                    pending.cancel()
        await asyncio.gather(task, stop, return_exceptions=True)
        if self._cancel.is_set():
            return None
        return task.result()

    async def _fetch_with_retry(
        self, call: Callable[[], Awaitable[Result[T]]], label: str
    ) -> Result[T]:
        result = await self._until_cancelled(
            poll_until(
                call, lambda r: r.ok, self._retry_policy(), cancel=self._cancel, label=label
            )
        )
        if result is None:
            return Result.failure(ErrorKind.CANCELLED, f"Cancelled while fetching {label}")
        return result

    def _cancelled(self, **details: Any) -> WorkflowSnapshot:
        if self._snapshot.is_terminal:
            return self._snapshot
        return self._fail(ErrorKind.CANCELLED, "Registration was cancelled", **details)

    def cancel(self) -> None:
        """Stop any in-flight polling, including a pending backoff sleep."""
        self._cancel.set()

    def abort(self, error: EngineError) -> WorkflowSnapshot:
        """Move a live workflow to ``Failed`` with ``error``."""
        if self._snapshot.is_terminal:
            raise InvalidTransition(
                f"Workflow already finished in state {self._snapshot.state.value}"
            )
        self.cancel()
        return self._fail(error.kind, error.message, **error.details)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def register(
        self,
        asset: AssetId | str,
        memo: str,
        asset_decimals: int = 8,
        asset_price_usd: float | None = None,
    ) -> WorkflowSnapshot:
        """Broadcast the zero-amount ``REFERENCE:{asset}:{memo}`` deposit."""
        self._require(WorkflowState.DRAFT)
        asset_id = asset if isinstance(asset, AssetId) else AssetId.parse(asset)
        memo = memo.strip()
        if not memo:
            raise ValueError("Memo must not be empty")

        self._transition(
            WorkflowState.REGISTERING,
            asset=asset_id,
            memo=memo,
            asset_decimals=asset_decimals,
            asset_price_usd=asset_price_usd,
            error=None,
        )

        registration_memo = build_registration_memo(asset_id, memo)
        amount = "0"
        check_transfer_amount(amount, deposit=True)
        try:
            result = await self._signer.broadcast_deposit(
                self._config.network.native_asset, amount, registration_memo
            )
        except Exception as e:
            return self._fail(
                ErrorKind.BROADCAST_FAILURE, f"Failed to register memo: {e}"
            )

        if not result.ok:
            return self._fail(
                ErrorKind.BROADCAST_FAILURE,
                f"Registration failed: {result.raw_log or 'no transaction hash'}",
                code=result.code,
            )

        logger.info("Registration broadcast: %s", result.tx_hash)
        return self._transition(
            WorkflowState.AWAITING_REFERENCE, registration_tx_hash=result.tx_hash
        )

    async def await_reference(self) -> WorkflowSnapshot:
        """Poll for the reference ID, then load inbound address and expiry."""
        self._require(WorkflowState.AWAITING_REFERENCE)
        snap = self._snapshot
        tx_hash = snap.registration_tx_hash

        settle_delay = self._config.polling.settle_delay
        if settle_delay > 0:
            await self._until_cancelled(asyncio.sleep(settle_delay))

        async def _lookup() -> MemoReference | None:
            result = await self._api.get_memo_reference(tx_hash)
            if result.ok and result.value.reference:
                return result.value
            return None

        reference = None
        if not self._cancel.is_set():
            reference = await self._until_cancelled(
                poll_until(
                    _lookup,
                    lambda r: r is not None,
                    self._retry_policy(),
                    cancel=self._cancel,
                    label=f"memo reference {tx_hash}",
                )
            )
        if self._cancel.is_set():
            return self._cancelled(registration_tx_hash=tx_hash)
        if reference is None:
            return self._fail(
                ErrorKind.TIMEOUT,
                "Timed out waiting for the reference ID",
                registration_tx_hash=tx_hash,
            )

        registration = _registration_from_reference(snap.asset, snap.memo, tx_hash, reference)
        logger.info("Reference ID %s obtained for %s", registration.reference_id, snap.asset)

        inbound_result = await self._fetch_with_retry(
            self._api.get_inbound_addresses, "inbound addresses"
        )
        if self._cancel.is_set():
            return self._cancelled(registration=registration)
        if not inbound_result.ok:
            return self._fail(
                ErrorKind.TIMEOUT, inbound_result.error.message, registration=registration
            )

        inbound = find_inbound_address(inbound_result.value, snap.asset.chain)
        if inbound is None:
            return self._fail(
                ErrorKind.INPUT,
                f"No inbound address found for chain: {snap.asset.chain}",
                registration=registration,
            )
        if inbound.halted:
            return self._fail(
                ErrorKind.INPUT,
                f"Chain {snap.asset.chain} is halted",
                registration=registration,
            )

        current_height = await self._current_height()
        expiry = estimate_expiry(
            current_height,
            registration.expiry_height,
            self._config.encoding.average_block_time,
        )

        changes = {"registration": registration, "inbound": inbound, "expiry": expiry}
        if registration.is_expired(current_height):
            return self._expire("Reference is no longer usable", **changes)
        return self._transition(WorkflowState.REFERENCE_OBTAINED, error=None, **changes)

    async def _current_height(self) -> int | None:
        result = await self._fetch_with_retry(self._api.get_last_block, "last block")
        if not result.ok:
            logger.warning("Current block height unavailable: %s", result.error)
            return None
        return result.value.thorchain

    async def configure_amount(
        self,
        user_input: str,
        input_mode: InputMode | str = InputMode.ASSET,
        asset_price_usd: float | None = None,
    ) -> WorkflowSnapshot:
        """Encode ``user_input`` and cross-check it with the node's memo-check."""
        self._require(
            WorkflowState.REFERENCE_OBTAINED,
            WorkflowState.AMOUNT_CONFIGURING,
            WorkflowState.AMOUNT_VALIDATED,
        )
        snap = self._snapshot
        registration = snap.registration
        price = asset_price_usd if asset_price_usd is not None else snap.asset_price_usd

        encoding = validate_for_deposit(
            user_input,
            input_mode,
            registration.reference_id,
            snap.asset_decimals,
            snap.inbound.dust_threshold,
            self._config.encoding.dust_decimals,
            price,
        )
        configuring = {
            "encoding": encoding,
            "memo_check": None,
            "instruction": None,
            "asset_price_usd": price,
        }
        if not encoding.is_valid:
            return self._transition(
                WorkflowState.AMOUNT_CONFIGURING,
                error=EngineError(ErrorKind.INPUT, "; ".join(encoding.errors)),
                **configuring,
            )

        if not validate(encoding.final_amount, registration.reference_id, snap.asset_decimals):
            return self._transition(
                WorkflowState.AMOUNT_CONFIGURING,
                error=EngineError(
                    ErrorKind.ENCODING_MISMATCH,
                    f"Encoded amount {encoding.final_amount} does not carry "
                    f"reference {registration.reference_id}",
                ),
                **configuring,
            )

        raw_amount = shift_to_integer(encoding.final_amount, snap.asset_decimals)
        check_result = await self._fetch_with_retry(
            lambda: self._api.check_memo(str(snap.asset), raw_amount), "memo check"
        )
        if not check_result.ok:
            return self._transition(
                WorkflowState.AMOUNT_CONFIGURING, error=check_result.error, **configuring
            )

        memo_check = check_result.value
        registration = _refresh_from_check(registration, memo_check)
        configuring.update(memo_check=memo_check, registration=registration)

        current_height = snap.expiry.current_height if snap.expiry else None
        if registration.is_expired(current_height):
            return self._expire("Reference is no longer usable", **configuring)

        mismatches: list[str] = []
        if memo_check.reference != registration.reference_id:
            mismatches.append(
                f"Reference mismatch: expected {registration.reference_id}, "
                f"got {memo_check.reference}"
            )
        if memo_check.memo != snap.memo:
            mismatches.append(f"Memo mismatch: expected {snap.memo}, got {memo_check.memo}")

        if mismatches:
            logger.error(
                "Memo check disagrees with local encoding for %s/%s: %s",
                snap.asset,
                raw_amount,
                "; ".join(mismatches),
            )
            return self._transition(
                WorkflowState.AMOUNT_CONFIGURING,
                error=EngineError(
                    ErrorKind.ENCODING_MISMATCH,
                    "; ".join(mismatches),
                    details={
                        "final_amount": encoding.final_amount,
                        "raw_amount": raw_amount,
                        "local_reference": registration.reference_id,
                        "remote_reference": memo_check.reference,
                        "local_memo": snap.memo,
                        "remote_memo": memo_check.memo,
                    },
                ),
                **configuring,
            )

        return self._transition(WorkflowState.AMOUNT_VALIDATED, error=None, **configuring)

    def build_deposit_instruction(self) -> DepositInstruction:
        """Freeze the validated amount and inbound address into an instruction."""
        self._require(WorkflowState.AMOUNT_VALIDATED)
        snap = self._snapshot
        final_amount = snap.encoding.final_amount
        instruction = DepositInstruction(
            asset=snap.asset,
            inbound_address=snap.inbound.address,
            dust_threshold=shift_from_integer(
                snap.inbound.dust_threshold, self._config.encoding.dust_decimals
            ),
            final_amount=final_amount,
            qr_payload=build_qr_payload(snap.asset.chain, snap.inbound.address, final_amount),
        )
        self._transition(WorkflowState.DEPOSIT_PENDING, instruction=instruction)
        return instruction

    def submit_deposit(
        self, tx_hash: str, refresher: BalanceRefresher | None = None
    ) -> DepositTracker:
        """Record the user's deposit hash and hand it to a tracker."""
        self._require(WorkflowState.DEPOSIT_PENDING)
        tx_hash = tx_hash.strip()
        if not tx_hash:
            raise ValueError("Deposit transaction hash must not be empty")
        self._transition(WorkflowState.DEPOSIT_OBSERVED, deposit_hash=tx_hash)
        return DepositTracker(self._api, tx_hash, self._config.polling, refresher)

    def complete(self, tracked: TrackedDeposit) -> WorkflowSnapshot:
        """Close the workflow from the tracker's terminal snapshot."""
        self._require(WorkflowState.DEPOSIT_OBSERVED)
        if tracked.status is TrackStatus.COMPLETED:
            return self._transition(WorkflowState.COMPLETED, tracked=tracked, error=None)
        if tracked.status is TrackStatus.POLLING:
            raise ValueError(f"Deposit {tracked.hash} is still being tracked")
        return self._transition(
            WorkflowState.FAILED,
            tracked=tracked,
            error=EngineError(
                ErrorKind.TIMEOUT,
                f"Deposit {tracked.hash} was not finalized ({tracked.status.value}); "
                "check the transaction manually",
            ),
        )

    async def refresh_expiry(self) -> WorkflowSnapshot:
        """Re-read chain height and usage; move to ``Expired`` if the reference lapsed.

        After :meth:`submit_deposit` the data is still refreshed but the
        workflow is left for :meth:`complete` to close.
        """
        snap = self._snapshot
        if snap.is_terminal or snap.registration is None:
            raise InvalidTransition(
                f"No live registration to refresh in state {snap.state.value}"
            )

        registration = snap.registration
        changes: dict[str, Any] = {}
        if snap.encoding is not None and snap.encoding.is_valid:
            raw_amount = shift_to_integer(snap.encoding.final_amount, snap.asset_decimals)
            check = await self._api.check_memo(str(snap.asset), raw_amount)
            if check.ok:
                registration = _refresh_from_check(registration, check.value)
                changes.update(memo_check=check.value, registration=registration)
            else:
                logger.warning("Memo check refresh failed: %s", check.error)

        current_height = await self._current_height()
        changes["expiry"] = (
            estimate_expiry(
                current_height,
                registration.expiry_height,
                self._config.encoding.average_block_time,
            )
            or snap.expiry
        )
        state = self._snapshot.state
        if state in TERMINAL_STATES:
            return self._snapshot
        # The deposit itself consumes the reference once submitted.
        if state is not WorkflowState.DEPOSIT_OBSERVED and registration.is_expired(
            current_height
        ):
            return self._expire("Reference is no longer usable", **changes)
        return self._transition(state, **changes)
