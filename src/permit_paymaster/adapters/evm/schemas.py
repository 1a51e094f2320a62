"""
EVM Adapter Schema Models

Pydantic models for the permit and paymaster payload the adapter produces.

Classes:
    - SignedPermit: EIP-2612 ``permit()`` authorization with its signature
    - PaymasterPayload: Decoded token-paymaster ``paymasterData``
"""

from typing import Any

from pydantic import ConfigDict, Field, field_validator
from web3 import Web3

from ...schemas.bases import CanonicalModel, bytes_to_hex, to_hex_bytes
from .constants import MAX_UINT256


class SignedPermit(CanonicalModel):
    """
    EVM Token Approval Permit (EIP-2612) with signature attached.

    Fresh per attempt: the nonce is read from the token at signing time, so a
    permit must never be reused once its operation was submitted.

    Attributes:
        owner: Address the token allowance is granted from (EOA or smart account).
        spender: Address authorized to spend; the paymaster.
        token: ERC-20 token contract address (EIP-712 ``verifyingContract``).
        value: Approved amount in the token's smallest unit.
        nonce: Token ``nonces(owner)`` at signing time.
        deadline: Unix timestamp after which the permit is invalid.
        chain_id: EVM network ID bound into the EIP-712 domain.
        domain_name: Token EIP-712 ``name``.
        domain_version: Token EIP-712 ``version``.
        signature: 0x-prefixed signature bytes (65-byte ECDSA, or a wrapped
                   contract signature).
    """

    model_config = ConfigDict(frozen=True)

    owner: str
    spender: str
    token: str
    value: int = Field(..., ge=0, le=MAX_UINT256)
    nonce: int = Field(..., ge=0)
    deadline: int = Field(..., ge=0, le=MAX_UINT256)
    chain_id: int = Field(..., ge=1)
    domain_name: str
    domain_version: str
    signature: str

    @field_validator("owner", "spender", "token")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"not an EVM address: {value!r}")
        return Web3.to_checksum_address(value)

    @field_validator("signature", mode="before")
    @classmethod
    def _normalise_signature(cls, value: Any) -> str:
        return bytes_to_hex(to_hex_bytes(value))

    @property
    def signature_bytes(self) -> bytes:
        return to_hex_bytes(self.signature)


class PaymasterPayload(CanonicalModel):
    """
    Token paymaster ``paymasterData`` split back into its fields.

    Layout (packed, no length prefix)::

        uint8 mode ‖ address token ‖ uint256 amount ‖ bytes signature
    """

    model_config = ConfigDict(frozen=True)

    mode: int = Field(..., ge=0, le=255)
    token: str
    amount: int = Field(..., ge=0, le=MAX_UINT256)
    signature: str

    @property
    def signature_bytes(self) -> bytes:
        return to_hex_bytes(self.signature)
