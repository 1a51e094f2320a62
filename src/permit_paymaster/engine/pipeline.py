"""
Sponsored Transfer Pipeline

Runs one gas-sponsored attempt end to end:

    connecting -> resolving_account -> signing_permit -> encoding_payload
    -> estimating_fees -> submitting -> awaiting_confirmation
    -> confirmed | failed

Each stage emits one lifecycle event and advances the attempt's state
machine. Any failure aborts the attempt; the failing stage and reason are
recorded in the outcome.

Concurrency: attempts share nothing but the ``SessionContext``. Two
attempts for the same owner at once would read the same EntryPoint and
permit nonces and one of them would be rejected, so callers must keep at
most one attempt per owner in flight.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from ..adapters.evm.abis import get_erc20_abi
from ..adapters.evm.chain import ChainReader
from ..adapters.evm.constants import amount_to_value
from ..adapters.evm.permits import sign_permit
from ..adapters.evm.schemas import SignedPermit
from ..adapters.evm.signers import Signer, SignerCapability
from ..adapters.evm.smart_account import SmartAccount, resolve_smart_account
from ..clients.bundler_client import BundlerClient, PimlicoFeeEstimator
from ..clients.paymaster import PermitPaymasterProvider
from ..config import PaymasterSettings, PermitSignerChoice
from ..schemas.operations import Call, OperationReceipt
from .assembler import FeeEstimator, UserOperationAssembler
from .events import ConfirmedEvent, EventBus, FailedEvent, LifecycleEvent, LifecycleLog, Stage
from .exceptions import (
    IdentityUnavailable,
    InvalidTransition,
    OperationReverted,
    OperationTimeout,
    PaymasterError,
    SubmissionRejected,
)
from .tracker import OperationTracker

logger = logging.getLogger(__name__)


# ==================== Attempt State Machine ====================

class AttemptState(str, Enum):
    IDLE = "idle"
    ACCOUNT_RESOLVED = "account_resolved"
    PERMIT_SIGNED = "permit_signed"
    PAYLOAD_ENCODED = "payload_encoded"
    OPERATION_ASSEMBLED = "operation_assembled"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"
    FAILED = "failed"


_TRANSITIONS: Dict[AttemptState, FrozenSet[AttemptState]] = {
    AttemptState.IDLE: frozenset({AttemptState.ACCOUNT_RESOLVED, AttemptState.FAILED}),
    AttemptState.ACCOUNT_RESOLVED: frozenset({AttemptState.PERMIT_SIGNED, AttemptState.FAILED}),
    AttemptState.PERMIT_SIGNED: frozenset({AttemptState.PAYLOAD_ENCODED, AttemptState.FAILED}),
    AttemptState.PAYLOAD_ENCODED: frozenset({
        AttemptState.OPERATION_ASSEMBLED, AttemptState.REJECTED, AttemptState.FAILED,
    }),
    AttemptState.OPERATION_ASSEMBLED: frozenset({
        AttemptState.SUBMITTED, AttemptState.REJECTED, AttemptState.FAILED,
    }),
    AttemptState.SUBMITTED: frozenset({
        AttemptState.CONFIRMED, AttemptState.REVERTED, AttemptState.TIMED_OUT, AttemptState.FAILED,
    }),
}

TERMINAL_STATES = frozenset({
    AttemptState.CONFIRMED,
    AttemptState.REVERTED,
    AttemptState.TIMED_OUT,
    AttemptState.REJECTED,
    AttemptState.FAILED,
})


class AttemptStateMachine:
    """Strictly sequential attempt state; illegal moves raise ``InvalidTransition``."""

    def __init__(self) -> None:
        self.state = AttemptState.IDLE
        self.history: List[AttemptState] = [AttemptState.IDLE]

    def advance(self, new_state: AttemptState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise InvalidTransition(f"Cannot move attempt from {self.state.value} to {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


# ==================== Session Context ====================

@dataclass(frozen=True)
class SessionContext:
    """
    Read-only collaborators shared by the attempts of one session.

    ``account_capabilities`` describes what the smart account can validate
    when it signs the permit itself (``permit_signer="account"``). It omits
    ``TYPED_DATA`` unless the caller knows the account implements ERC-1271.
    """
    settings: PaymasterSettings
    chain: ChainReader
    bundler: BundlerClient
    owner: Optional[Signer] = None
    fee_estimator: Optional[FeeEstimator] = None
    bus: EventBus = field(default_factory=EventBus)
    account_capabilities: FrozenSet[SignerCapability] = frozenset({SignerCapability.RAW_HASH})

    @classmethod
    def from_settings(cls, settings: PaymasterSettings, owner: Optional[Signer], **kwargs) -> "SessionContext":
        bundler = BundlerClient(settings.bundler_url, settings.entry_point, timeout=settings.request_timeout)
        return cls(
            settings=settings,
            chain=ChainReader.from_url(settings.rpc_url, timeout=settings.request_timeout),
            bundler=bundler,
            owner=owner,
            fee_estimator=PimlicoFeeEstimator(bundler, settings.fee_tier),
            **kwargs,
        )

    async def aclose(self) -> None:
        await self.bundler.close()
        await self.chain.close()


# ==================== Outcome ====================

class AttemptOutcome(BaseModel):
    """Result of one attempt as reported by ``SponsoredTransferPipeline.run``."""
    success: bool
    state: AttemptState
    account_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    user_operation_hash: Optional[str] = None
    failed_stage: Optional[str] = None
    reason: Optional[str] = None
    receipt: Optional[OperationReceipt] = None
    events: Tuple[LifecycleEvent, ...] = ()

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def stages(self) -> List[str]:
        return [event.stage.value for event in self.events]


class _Attempt:
    """Mutable bookkeeping for one in-progress attempt."""

    def __init__(self) -> None:
        self.log = LifecycleLog()
        self.machine = AttemptStateMachine()
        self.stage: Stage = Stage.CONNECTING
        self.account: Optional[SmartAccount] = None
        self.permit: Optional[SignedPermit] = None
        self.user_operation_hash: Optional[str] = None
        self.receipt: Optional[OperationReceipt] = None
        self.error: Optional[Exception] = None


# ==================== Pipeline ====================

class SponsoredTransferPipeline:
    """
    Drives sponsored attempts against one ``SessionContext``.

    ``run`` never raises for attempt failures and returns an
    ``AttemptOutcome``; ``execute`` raises the failure instead.

    Usage:
        ```python
        pipeline = SponsoredTransferPipeline(context)
        outcome = await pipeline.run_transfer(recipient, "0.1")
        print(outcome.stages())
        ```
    """

    def __init__(self, context: SessionContext) -> None:
        self.context = context

    @property
    def settings(self) -> PaymasterSettings:
        return self.context.settings

    def transfer_call(self, recipient: str, amount: Union[str, int, Decimal], decimals: int = 6) -> Call:
        """Token ``transfer(recipient, amount)`` call, ``amount`` in human units."""
        value = amount_to_value(amount=amount, decimals=decimals)
        return Call.from_abi(self.settings.token_address, get_erc20_abi(), "transfer", [recipient, value])

    async def run_transfer(self, recipient: str, amount: Union[str, int, Decimal], decimals: int = 6) -> AttemptOutcome:
        return await self.run([self.transfer_call(recipient, amount, decimals)])

    async def run(self, calls: Sequence[Call]) -> AttemptOutcome:
        attempt = _Attempt()
        try:
            await self._drive(attempt, calls)
        except (PaymasterError, ValueError):
            # Already recorded on the attempt by _fail.
            pass
        return self._outcome(attempt)

    async def execute(self, calls: Sequence[Call]) -> OperationReceipt:
        """
        Raises:
            PaymasterError: The failure that aborted the attempt, tagged with its stage.
            ValueError: Locally invalid input (amounts, addresses, payload fields).
        """
        attempt = _Attempt()
        await self._drive(attempt, calls)
        return attempt.receipt

    # ---- stages ----

    async def _emit(self, attempt: _Attempt, event: LifecycleEvent) -> None:
        attempt.log.append(event)
        logger.info("Attempt stage: %s %s", event.stage.value, event.message)
        await self.context.bus.dispatch(event)

    async def _enter(self, attempt: _Attempt, stage: Stage, message: str = "", **data) -> None:
        attempt.stage = stage
        await self._emit(attempt, LifecycleEvent(stage=stage, message=message, data=data))

    async def _drive(self, attempt: _Attempt, calls: Sequence[Call]) -> None:
        try:
            await self._run_stages(attempt, calls)
        except (PaymasterError, ValueError) as e:
            await self._fail(attempt, e)
            raise

    async def _run_stages(self, attempt: _Attempt, calls: Sequence[Call]) -> None:
        ctx = self.context
        settings = self.settings

        await self._enter(attempt, Stage.CONNECTING, chain_id=settings.chain_id)
        owner = ctx.owner
        if owner is None:
            raise IdentityUnavailable("No owner identity supplied")
        await ctx.chain.ensure_chain_id(settings.chain_id)

        await self._enter(attempt, Stage.RESOLVING_ACCOUNT, owner=owner.address)
        account = await resolve_smart_account(
            owner,
            ctx.chain,
            factory=settings.account.factory,
            implementation_address=settings.account.implementation,
            proxy_creation_code=settings.account.proxy_creation_code,
            implementation=settings.account.variant,
            deploy_args=settings.account.deploy_args,
            deploy_salt=settings.account.deploy_salt,
        )
        attempt.account = account
        attempt.machine.advance(AttemptState.ACCOUNT_RESOLVED)

        await self._enter(
            attempt, Stage.SIGNING_PERMIT,
            account=account.address, deployed=account.deployed, signer=settings.permit_signer.value,
        )
        if settings.permit_signer is PermitSignerChoice.ACCOUNT:
            permit_signer = account.as_signer(ctx.account_capabilities)
        else:
            permit_signer = owner
        attempt.permit = await sign_permit(
            ctx.chain,
            permit_signer,
            token=settings.token_address,
            spender=settings.paymaster_address,
            value=settings.permit_amount,
            chain_id=settings.chain_id,
        )
        attempt.machine.advance(AttemptState.PERMIT_SIGNED)

        await self._enter(attempt, Stage.ENCODING_PAYLOAD, mode=settings.paymaster_mode)
        provider = PermitPaymasterProvider.from_permit(
            attempt.permit,
            mode=settings.paymaster_mode,
            verification_gas_limit=settings.paymaster_verification_gas_limit,
            post_op_gas_limit=settings.paymaster_post_op_gas_limit,
            allow_variable_signature=settings.permit_signer is PermitSignerChoice.ACCOUNT,
        )
        attempt.machine.advance(AttemptState.PAYLOAD_ENCODED)

        await self._enter(attempt, Stage.ESTIMATING_FEES, tier=settings.fee_tier)
        fee_estimator = ctx.fee_estimator or PimlicoFeeEstimator(ctx.bundler, settings.fee_tier)
        assembler = UserOperationAssembler(
            account, ctx.chain, ctx.bundler, provider, fee_estimator, entry_point=settings.entry_point,
        )
        user_operation = await assembler.prepare_user_operation(calls)
        attempt.machine.advance(AttemptState.OPERATION_ASSEMBLED)

        await self._enter(attempt, Stage.SUBMITTING, nonce=user_operation.nonce)
        attempt.user_operation_hash = await assembler.submit(user_operation)
        attempt.machine.advance(AttemptState.SUBMITTED)

        await self._enter(attempt, Stage.AWAITING_CONFIRMATION, user_operation_hash=attempt.user_operation_hash)
        tracker = OperationTracker(ctx.bundler, timeout=settings.receipt_timeout, poll_interval=settings.poll_interval)
        attempt.receipt = await tracker.wait_for_receipt(attempt.user_operation_hash)
        attempt.machine.advance(AttemptState.CONFIRMED)

        await self._emit(attempt, ConfirmedEvent(
            message=f"included in {attempt.receipt.transaction_hash}",
            receipt=attempt.receipt,
        ))

    async def _fail(self, attempt: _Attempt, error: Exception) -> None:
        failed_stage = attempt.stage.value
        if isinstance(error, PaymasterError):
            error.stage = failed_stage
        attempt.error = error

        if isinstance(error, OperationTimeout):
            terminal = AttemptState.TIMED_OUT
        elif isinstance(error, OperationReverted):
            terminal = AttemptState.REVERTED
            attempt.receipt = error.receipt
        elif isinstance(error, SubmissionRejected) and attempt.machine.state in (
            AttemptState.PAYLOAD_ENCODED, AttemptState.OPERATION_ASSEMBLED,
        ):
            terminal = AttemptState.REJECTED
        else:
            terminal = AttemptState.FAILED
        attempt.machine.advance(terminal)

        logger.warning("Attempt failed in %s: %s: %s", failed_stage, type(error).__name__, error)
        await self._emit(attempt, FailedEvent(
            message=str(error),
            failed_stage=failed_stage,
            reason=str(error),
            error_type=type(error).__name__,
        ))

    def _outcome(self, attempt: _Attempt) -> AttemptOutcome:
        error = attempt.error
        receipt = attempt.receipt
        return AttemptOutcome(
            success=attempt.machine.state is AttemptState.CONFIRMED,
            state=attempt.machine.state,
            account_address=attempt.account.address if attempt.account else None,
            transaction_hash=receipt.transaction_hash if receipt else None,
            user_operation_hash=attempt.user_operation_hash,
            failed_stage=attempt.stage.value if error else None,
            reason=str(error) if error else None,
            receipt=receipt,
            events=attempt.log.events,
        )
