"""
Tests for receipt polling.
"""
import asyncio

import httpx
import pytest

from permit_paymaster.engine.exceptions import OperationReverted, OperationTimeout
from permit_paymaster.engine.tracker import OperationTracker

from mocks import MOCK_TX_HASH, MOCK_USER_OP_HASH, MockBundler, create_bundler_client, receipt_result


@pytest.mark.asyncio
async def test_waits_until_receipt_arrives():
    bundler = MockBundler()
    bundler.receipts = [None, None, receipt_result()]
    tracker = OperationTracker(bundler.client(), timeout=1.0, poll_interval=0.01)

    receipt = await tracker.wait_for_receipt(MOCK_USER_OP_HASH)

    assert receipt.transaction_hash == MOCK_TX_HASH
    assert bundler.methods().count("eth_getUserOperationReceipt") == 3


@pytest.mark.asyncio
async def test_timeout_keeps_operation_hash():
    bundler = MockBundler()
    bundler.receipts = [None]
    tracker = OperationTracker(bundler.client(), timeout=0.05, poll_interval=0.01)

    with pytest.raises(OperationTimeout) as exc_info:
        await tracker.wait_for_receipt(MOCK_USER_OP_HASH)

    assert exc_info.value.user_operation_hash == MOCK_USER_OP_HASH
    assert exc_info.value.waited >= 0.05
    assert exc_info.value.stage == "awaiting_confirmation"

    # The hash stays usable for a later lookup.
    bundler.receipts = [receipt_result()]
    assert (await tracker.get_receipt(MOCK_USER_OP_HASH)).success is True


@pytest.mark.asyncio
async def test_reverted_operation_raises_with_reason():
    bundler = MockBundler()
    bundler.receipts = [receipt_result(success=False, reason="ERC20: transfer amount exceeds balance")]
    tracker = OperationTracker(bundler.client(), timeout=1.0, poll_interval=0.01)

    with pytest.raises(OperationReverted) as exc_info:
        await tracker.wait_for_receipt(MOCK_USER_OP_HASH)

    assert exc_info.value.reason == "ERC20: transfer amount exceeds balance"
    assert exc_info.value.receipt.transaction_hash == MOCK_TX_HASH


def test_rejects_non_positive_intervals():
    with pytest.raises(ValueError):
        OperationTracker(MockBundler().client(), timeout=0)


@pytest.mark.asyncio
async def test_stalled_bundler_still_times_out_on_schedule():
    async def stalled(request):
        await asyncio.sleep(3600)

    tracker = OperationTracker(create_bundler_client(stalled), timeout=0.1, poll_interval=0.01)

    with pytest.raises(OperationTimeout) as exc_info:
        await asyncio.wait_for(tracker.wait_for_receipt(MOCK_USER_OP_HASH), timeout=2)
    assert exc_info.value.user_operation_hash == MOCK_USER_OP_HASH


@pytest.mark.asyncio
async def test_transport_error_while_polling_keeps_waiting():
    bundler = MockBundler()
    calls = []

    def flaky(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return bundler.handler(request)

    tracker = OperationTracker(create_bundler_client(flaky), timeout=1.0, poll_interval=0.01)

    receipt = await tracker.wait_for_receipt(MOCK_USER_OP_HASH)

    assert receipt.transaction_hash == MOCK_TX_HASH
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_unreachable_bundler_ends_in_timeout_with_hash():
    def down(request):
        raise httpx.ConnectError("refused", request=request)

    tracker = OperationTracker(create_bundler_client(down), timeout=0.05, poll_interval=0.01)

    with pytest.raises(OperationTimeout) as exc_info:
        await tracker.wait_for_receipt(MOCK_USER_OP_HASH)
    assert exc_info.value.user_operation_hash == MOCK_USER_OP_HASH
