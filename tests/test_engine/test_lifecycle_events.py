"""
Tests for lifecycle events, the lifecycle log and the event bus.
"""
import pytest

from permit_paymaster.engine.events import (
    ConfirmedEvent,
    EventBus,
    FailedEvent,
    LifecycleEvent,
    LifecycleLog,
    Stage,
)
from permit_paymaster.schemas.operations import OperationReceipt

from mocks import MOCK_TX_HASH, MOCK_USER_OP_HASH


def _receipt() -> OperationReceipt:
    return OperationReceipt(user_operation_hash=MOCK_USER_OP_HASH, success=True, transaction_hash=MOCK_TX_HASH)


def test_terminal_events_carry_their_stage():
    assert ConfirmedEvent(receipt=_receipt()).stage is Stage.CONFIRMED
    failed = FailedEvent(failed_stage="submitting", reason="AA25", error_type="SubmissionRejected")
    assert failed.stage is Stage.FAILED
    assert repr(failed) == "FailedEvent(stage=submitting, error=SubmissionRejected)"


def test_log_preserves_order_and_is_read_only():
    log = LifecycleLog()
    log.append(LifecycleEvent(stage=Stage.CONNECTING))
    log.append(LifecycleEvent(stage=Stage.RESOLVING_ACCOUNT))

    events = log.events
    assert log.stages() == ["connecting", "resolving_account"]
    assert len(log) == 2
    assert isinstance(events, tuple)
    assert repr(log) == "LifecycleLog(connecting -> resolving_account)"


def test_subscribe_rejects_sync_handler():
    bus = EventBus()
    with pytest.raises(TypeError):
        bus.subscribe(LifecycleEvent, lambda event: None)


@pytest.mark.asyncio
async def test_dispatch_reaches_base_and_exact_subscribers():
    bus = EventBus()
    everything, confirmed_only, failed_only = [], [], []

    async def on_any(event):
        everything.append(event)

    async def on_confirmed(event):
        confirmed_only.append(event)

    async def on_failed(event):
        failed_only.append(event)

    bus.subscribe(LifecycleEvent, on_any)
    bus.subscribe(ConfirmedEvent, on_confirmed)
    bus.subscribe(FailedEvent, on_failed)

    await bus.dispatch(LifecycleEvent(stage=Stage.SUBMITTING))
    await bus.dispatch(ConfirmedEvent(receipt=_receipt()))

    assert [e.stage for e in everything] == [Stage.SUBMITTING, Stage.CONFIRMED]
    assert len(confirmed_only) == 1
    assert failed_only == []


@pytest.mark.asyncio
async def test_handler_errors_propagate():
    bus = EventBus()

    async def broken(event):
        raise RuntimeError("observer failed")

    bus.subscribe(LifecycleEvent, broken)
    with pytest.raises(RuntimeError):
        await bus.dispatch(LifecycleEvent(stage=Stage.CONNECTING))
