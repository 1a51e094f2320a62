"""
End-to-end attempt tests against a mocked chain and bundler.
"""
import pytest

from permit_paymaster.adapters.evm.paymaster_data import decode_paymaster_data
from permit_paymaster.adapters.evm.signers import RawKeySigner, SignerCapability
from permit_paymaster.adapters.evm.smart_account import ImplementationVariant
from permit_paymaster.config import PermitSignerChoice
from permit_paymaster.engine.events import LifecycleEvent
from permit_paymaster.engine.exceptions import InvalidTransition, SubmissionRejected
from permit_paymaster.engine.pipeline import (
    AttemptState,
    AttemptStateMachine,
    SessionContext,
    SponsoredTransferPipeline,
)

from mocks import (
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_RECIPIENT,
    MOCK_TX_HASH,
    MOCK_USDC,
    MOCK_USER_OP_HASH,
    MockBundler,
    create_account_settings,
    create_mock_chain,
    create_settings,
    receipt_result,
)

ALL_STAGES = [
    "connecting",
    "resolving_account",
    "signing_permit",
    "encoding_payload",
    "estimating_fees",
    "submitting",
    "awaiting_confirmation",
    "confirmed",
]


def _pipeline(bundler: MockBundler, *, owner="default", chain=None, **context):
    settings = context.pop("settings", None) or create_settings()
    if owner == "default":
        owner = RawKeySigner.from_key(MOCK_OWNER_PRIVATE_KEY)
    ctx = SessionContext(
        settings=settings,
        chain=chain or create_mock_chain(),
        bundler=bundler.client(),
        owner=owner,
        **context,
    )
    return SponsoredTransferPipeline(ctx)


@pytest.mark.asyncio
async def test_successful_attempt_emits_every_stage_in_order():
    bundler = MockBundler()
    bundler.receipts = [None, receipt_result()]
    pipeline = _pipeline(bundler)

    seen = []

    async def observe(event):
        seen.append(event.stage.value)

    pipeline.context.bus.subscribe(LifecycleEvent, observe)

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.success is True
    assert outcome.state is AttemptState.CONFIRMED
    assert outcome.stages() == ALL_STAGES
    assert seen == ALL_STAGES
    assert outcome.transaction_hash == MOCK_TX_HASH
    assert outcome.user_operation_hash == MOCK_USER_OP_HASH
    assert outcome.failed_stage is None
    assert outcome.account_address is not None

    (sent,) = bundler.params_of("eth_sendUserOperation")
    payload = decode_paymaster_data(sent[0]["paymasterData"])
    assert payload.mode == 0
    assert payload.token == MOCK_USDC
    assert payload.amount == 10_000_000


@pytest.mark.asyncio
async def test_owner_signs_permit_by_default():
    bundler = MockBundler()
    pipeline = _pipeline(bundler)

    attempt_events = (await pipeline.run_transfer(MOCK_RECIPIENT, 1)).events

    signing = next(e for e in attempt_events if e.stage.value == "signing_permit")
    assert signing.data["signer"] == "owner"


@pytest.mark.asyncio
async def test_estimation_rejection_is_reported_as_rejected():
    bundler = MockBundler()
    bundler.responses["eth_estimateUserOperationGas"] = {
        "error": {"code": -32500, "message": "AA33 reverted: invalid paymaster data"}
    }
    pipeline = _pipeline(bundler)

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.success is False
    assert outcome.state is AttemptState.REJECTED
    assert outcome.failed_stage == "estimating_fees"
    assert "AA33" in outcome.reason
    assert outcome.stages()[-1] == "failed"
    assert "eth_sendUserOperation" not in bundler.methods()


@pytest.mark.asyncio
async def test_submission_rejection_is_reported_at_submitting():
    bundler = MockBundler()
    bundler.responses["eth_sendUserOperation"] = {"error": {"code": -32602, "message": "AA25 invalid account nonce"}}
    pipeline = _pipeline(bundler)

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.state is AttemptState.REJECTED
    assert outcome.failed_stage == "submitting"
    assert outcome.user_operation_hash is None


@pytest.mark.asyncio
async def test_receipt_timeout_keeps_operation_hash():
    bundler = MockBundler()
    bundler.receipts = [None]
    pipeline = _pipeline(bundler, settings=create_settings(receipt_timeout=0.05))

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.success is False
    assert outcome.state is AttemptState.TIMED_OUT
    assert outcome.failed_stage == "awaiting_confirmation"
    assert outcome.user_operation_hash == MOCK_USER_OP_HASH
    assert outcome.transaction_hash is None


@pytest.mark.asyncio
async def test_reverted_operation():
    bundler = MockBundler()
    bundler.receipts = [receipt_result(success=False, reason="transfer failed")]
    pipeline = _pipeline(bundler)

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.state is AttemptState.REVERTED
    assert outcome.transaction_hash == MOCK_TX_HASH
    assert outcome.receipt.reason == "transfer failed"


@pytest.mark.asyncio
async def test_missing_owner_fails_while_connecting():
    bundler = MockBundler()
    chain = create_mock_chain()
    pipeline = _pipeline(bundler, owner=None, chain=chain)

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.state is AttemptState.FAILED
    assert outcome.failed_stage == "connecting"
    assert outcome.stages() == ["connecting", "failed"]
    assert outcome.events[-1].error_type == "IdentityUnavailable"
    chain.ensure_chain_id.assert_not_awaited()
    assert bundler.requests == []


@pytest.mark.asyncio
async def test_account_signer_without_typed_data_fails_at_signing():
    bundler = MockBundler()
    chain = create_mock_chain()
    pipeline = _pipeline(
        bundler,
        chain=chain,
        settings=create_settings(permit_signer=PermitSignerChoice.ACCOUNT),
    )

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.state is AttemptState.FAILED
    assert outcome.failed_stage == "signing_permit"
    assert outcome.events[-1].error_type == "SigningUnsupported"
    chain.token_nonce.assert_not_awaited()
    assert bundler.requests == []


@pytest.mark.asyncio
async def test_account_signer_with_typed_data_signs_for_the_account():
    bundler = MockBundler()
    pipeline = _pipeline(
        bundler,
        settings=create_settings(permit_signer=PermitSignerChoice.ACCOUNT),
        account_capabilities=frozenset({SignerCapability.TYPED_DATA, SignerCapability.RAW_HASH}),
    )

    outcome = await pipeline.run_transfer(MOCK_RECIPIENT, "0.1")

    assert outcome.success is True
    assert outcome.account_address != MOCK_OWNER_ADDRESS


@pytest.mark.asyncio
async def test_execute_raises_with_stage():
    bundler = MockBundler()
    bundler.responses["eth_estimateUserOperationGas"] = {"error": {"code": -32500, "message": "AA33"}}
    pipeline = _pipeline(bundler)

    with pytest.raises(SubmissionRejected) as exc_info:
        await pipeline.execute([pipeline.transfer_call(MOCK_RECIPIENT, "0.1")])
    assert exc_info.value.stage == "estimating_fees"


@pytest.mark.asyncio
async def test_invalid_amount_fails_before_anything_is_sent():
    bundler = MockBundler()
    pipeline = _pipeline(bundler)

    with pytest.raises(ValueError):
        pipeline.transfer_call(MOCK_RECIPIENT, "-1")


def test_state_machine_rejects_skipping_states():
    machine = AttemptStateMachine()
    machine.advance(AttemptState.ACCOUNT_RESOLVED)

    with pytest.raises(InvalidTransition):
        machine.advance(AttemptState.SUBMITTED)
    assert machine.state is AttemptState.ACCOUNT_RESOLVED


def test_state_machine_terminal_states_are_final():
    machine = AttemptStateMachine()
    machine.advance(AttemptState.FAILED)

    assert machine.is_terminal
    with pytest.raises(InvalidTransition):
        machine.advance(AttemptState.ACCOUNT_RESOLVED)
    assert machine.history == [AttemptState.IDLE, AttemptState.FAILED]


@pytest.mark.asyncio
async def test_account_settings_select_the_derived_account():
    default = await _pipeline(MockBundler()).run_transfer(MOCK_RECIPIENT, "0.1")

    salted_settings = create_settings(account=create_account_settings().model_copy(update={"deploy_salt": 7}))
    salted = await _pipeline(MockBundler(), settings=salted_settings).run_transfer(MOCK_RECIPIENT, "0.1")

    multisig_settings = create_settings(
        account=create_account_settings().model_copy(update={"variant": ImplementationVariant.MULTISIG}),
    )
    multisig = await _pipeline(MockBundler(), settings=multisig_settings).run_transfer(MOCK_RECIPIENT, "0.1")

    assert default.success and salted.success and multisig.success
    assert len({default.account_address, salted.account_address, multisig.account_address}) == 3


@pytest.mark.asyncio
async def test_session_close_releases_chain_and_bundler():
    chain = create_mock_chain()
    ctx = SessionContext(settings=create_settings(), chain=chain, bundler=MockBundler().client())

    await ctx.aclose()

    chain.close.assert_awaited_once()
