"""
Tests for the token paymaster data codec.
"""
import pytest

from permit_paymaster.adapters.evm.constants import MAX_UINT256
from permit_paymaster.adapters.evm.paymaster_data import (
    PAYMASTER_DATA_PREFIX_LENGTH,
    decode_paymaster_data,
    encode_paymaster_data,
)

from mocks import MOCK_USDC

SIGNATURE = bytes(range(65))


def test_payload_layout():
    data = encode_paymaster_data(0, MOCK_USDC, 10_000_000, SIGNATURE)

    assert len(data) == 1 + 20 + 32 + 65
    assert data[0] == 0
    assert data[1:21] == bytes.fromhex(MOCK_USDC[2:])
    assert int.from_bytes(data[21:53], "big") == 10_000_000
    assert data[53:] == SIGNATURE


def test_decode_recovers_fields():
    data = encode_paymaster_data(7, MOCK_USDC.lower(), MAX_UINT256, "0x" + SIGNATURE.hex())
    payload = decode_paymaster_data(data)

    assert payload.mode == 7
    assert payload.token == MOCK_USDC
    assert payload.amount == MAX_UINT256
    assert payload.signature_bytes == SIGNATURE


def test_variable_length_signature_requires_opt_in():
    wrapped = b"\x01" * 200
    with pytest.raises(ValueError):
        encode_paymaster_data(0, MOCK_USDC, 1, wrapped)

    data = encode_paymaster_data(0, MOCK_USDC, 1, wrapped, allow_variable_signature=True)
    assert len(data) == PAYMASTER_DATA_PREFIX_LENGTH + 200


@pytest.mark.parametrize(
    "mode, token, amount, signature",
    [
        (256, MOCK_USDC, 1, SIGNATURE),
        (-1, MOCK_USDC, 1, SIGNATURE),
        (0, "0x1234", 1, SIGNATURE),
        (0, MOCK_USDC, MAX_UINT256 + 1, SIGNATURE),
        (0, MOCK_USDC, -5, SIGNATURE),
        (0, MOCK_USDC, 1, b""),
        (0, MOCK_USDC, 1, SIGNATURE[:64]),
    ],
)
def test_invalid_fields_are_rejected(mode, token, amount, signature):
    with pytest.raises(ValueError):
        encode_paymaster_data(mode, token, amount, signature)


@pytest.mark.parametrize("length", [0, 20, PAYMASTER_DATA_PREFIX_LENGTH])
def test_decode_rejects_data_without_signature(length):
    with pytest.raises(ValueError):
        decode_paymaster_data(b"\x00" * length)


def test_decode_accepts_one_signature_byte():
    payload = decode_paymaster_data(b"\x00" * PAYMASTER_DATA_PREFIX_LENGTH + b"\x01")
    assert payload.signature == "0x01"
