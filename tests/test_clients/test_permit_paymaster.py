"""
Tests for the permit paymaster provider.
"""
import pytest

from permit_paymaster.adapters.evm.paymaster_data import decode_paymaster_data
from permit_paymaster.adapters.evm.permits import sign_permit
from permit_paymaster.adapters.evm.signers import RawKeySigner
from permit_paymaster.clients.paymaster import PermitPaymasterProvider
from permit_paymaster.schemas.operations import UserOperation

from mocks import (
    MOCK_CHAIN_ID,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_PAYMASTER,
    MOCK_USDC,
    create_mock_chain,
)


@pytest.mark.asyncio
async def test_provider_serves_encoded_permit():
    permit = await sign_permit(
        create_mock_chain(),
        RawKeySigner.from_key(MOCK_OWNER_PRIVATE_KEY),
        token=MOCK_USDC,
        spender=MOCK_PAYMASTER,
        value=10_000_000,
        chain_id=MOCK_CHAIN_ID,
    )
    provider = PermitPaymasterProvider.from_permit(permit)

    data = await provider.get_paymaster_data(UserOperation(sender=MOCK_OWNER_ADDRESS, nonce=0))

    assert data.paymaster == MOCK_PAYMASTER
    assert data.is_final is True
    assert data.paymaster_verification_gas_limit == 200_000
    assert data.paymaster_post_op_gas_limit == 15_000

    payload = decode_paymaster_data(data.paymaster_data)
    assert payload.mode == 0
    assert payload.token == MOCK_USDC
    assert payload.amount == 10_000_000
    assert payload.signature == permit.signature
