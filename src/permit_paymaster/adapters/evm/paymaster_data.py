"""
Token paymaster ``paymasterData`` codec.

Layout (``abi.encodePacked``, no length prefix)::

    uint8 mode ‖ address token ‖ uint256 amount ‖ bytes signature
       1 byte     20 bytes        32 bytes          rest

The paymaster contract reads the fixed 53-byte prefix and treats everything
after it as the permit signature.
"""

from typing import Union

from web3 import Web3

from ...schemas.bases import bytes_to_hex, to_hex_bytes
from .constants import MAX_UINT256
from .schemas import PaymasterPayload

PAYMASTER_DATA_PREFIX_LENGTH = 1 + 20 + 32
ECDSA_SIGNATURE_LENGTH = 65


def encode_paymaster_data(
    mode: int,
    token: str,
    amount: int,
    signature: Union[bytes, str],
    *,
    allow_variable_signature: bool = False,
) -> bytes:
    """
    Pack the paymaster payload.

    Args:
        mode: Paymaster mode byte (0 = permit).
        token: Token the paymaster charges in.
        amount: Permit amount in smallest units.
        signature: Permit signature.
        allow_variable_signature: Accept signatures other than 65-byte ECDSA
                                  (ERC-1271 / ERC-6492 contract signatures).

    Returns:
        ``1 + 20 + 32 + len(signature)`` bytes.

    Raises:
        ValueError: On any out-of-range field or malformed signature.
    """
    if not isinstance(mode, int) or not 0 <= mode <= 255:
        raise ValueError(f"Paymaster mode must fit in uint8, got {mode!r}")
    if not isinstance(token, str) or not Web3.is_address(token):
        raise ValueError(f"Token is not a 20-byte address: {token!r}")
    if not isinstance(amount, int) or not 0 <= amount <= MAX_UINT256:
        raise ValueError(f"Amount must fit in uint256, got {amount!r}")

    sig = to_hex_bytes(signature)
    if not sig:
        raise ValueError("Permit signature is empty")
    if len(sig) != ECDSA_SIGNATURE_LENGTH and not allow_variable_signature:
        raise ValueError(f"Expected a {ECDSA_SIGNATURE_LENGTH}-byte signature, got {len(sig)} bytes")

    return (
        mode.to_bytes(1, "big")
        + to_hex_bytes(token)
        + amount.to_bytes(32, "big")
        + sig
    )


def decode_paymaster_data(data: Union[bytes, str]) -> PaymasterPayload:
    """
    Split ``paymasterData`` back into its fields.

    Raises:
        ValueError: If ``data`` is shorter than the fixed prefix or carries
                    no signature.
    """
    raw = to_hex_bytes(data)
    if len(raw) <= PAYMASTER_DATA_PREFIX_LENGTH:
        raise ValueError(
            f"Paymaster data must be longer than {PAYMASTER_DATA_PREFIX_LENGTH} bytes, got {len(raw)}"
        )
    return PaymasterPayload(
        mode=raw[0],
        token=Web3.to_checksum_address(bytes_to_hex(raw[1:21])),
        amount=int.from_bytes(raw[21:53], "big"),
        signature=bytes_to_hex(raw[53:]),
    )
