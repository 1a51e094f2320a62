"""
EIP-712 structures for EIP-2612 token permits.

The same dataclasses feed both the signing path (``permits.sign_permit``)
and the verification path (``verifies.verify_permit_signature``) so the
digest computed on either side is identical.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Used to prevent signature replay across domains.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


# -----------------------------
# Permit Message (EIP-2612)
# -----------------------------

@dataclass
class PermitMessage:
    """
    Permit message as defined in EIP-2612.
    Represents token allowance authorization.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


# -----------------------------
# EIP-712 Typed Data Wrapper
# -----------------------------

@dataclass
class PermitTypedData:
    """
    EIP-2612 typed data container.

    ``to_dict()`` yields the { types, primaryType, domain, message } layout
    accepted by ``eth_account`` (``full_message=``) and ``eth_signTypedData_v4``.
    """
    domain: EIP712Domain
    message: PermitMessage

    primary_type: str = "Permit"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Permit": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the typed data into a dict compatible with EIP-712 signing.
        """
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }

    def signable(self) -> SignableMessage:
        """EIP-191 version 0x01 signable message for this typed data."""
        return encode_typed_data(full_message=self.to_dict())

    def digest(self) -> bytes:
        """32-byte EIP-712 digest, the hash an ERC-1271 wallet is asked to validate."""
        signable = self.signable()
        return keccak(b"\x19" + signable.version + signable.header + signable.body)
