"""
Signer Capabilities

Two signer variants sit behind one interface (``address``,
``capabilities``, ``sign_typed_data``, ``sign_hash``):

RawKeySigner
    A locally held owner key (``eth_account`` ``LocalAccount``). Signs
    EIP-712 typed data and raw 32-byte hashes.

DelegatedAccountSigner
    Signs on behalf of a smart account by forwarding to a delegate signer.
    Typed-data signing is only allowed when the caller declares that the
    account validates the delegate's signature through ERC-1271; otherwise it
    raises ``SigningUnsupported`` instead of producing a signature a token's
    permit verifier would reject.

Callers pick the variant explicitly; there is no fallback from one to the
other.
"""

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Protocol, runtime_checkable

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ...engine.exceptions import IdentityUnavailable, SigningUnsupported
from ...schemas.bases import to_hex_bytes
from .constants import ERC6492_MAGIC_SUFFIX

logger = logging.getLogger(__name__)


class SignerCapability(str, Enum):
    TYPED_DATA = "typed_data"
    RAW_HASH = "raw_hash"
    ERC6492 = "erc6492"


@runtime_checkable
class Signer(Protocol):
    """Signing capability consumed by the permit signer and smart account."""

    @property
    def address(self) -> str: ...

    @property
    def capabilities(self) -> FrozenSet[SignerCapability]: ...

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes: ...

    async def sign_hash(self, message_hash: bytes) -> bytes: ...


def _require(signer: "Signer", capability: SignerCapability) -> None:
    if capability not in signer.capabilities:
        raise SigningUnsupported(
            f"Signer {signer.address} does not support {capability.value} signatures",
            signer=signer.address,
            required=capability.value,
        )


class RawKeySigner:
    """
    Owner key held in process.

    Example::

        signer = RawKeySigner.from_key("0x...")
        sig = await signer.sign_typed_data(permit_typed_data.to_dict())
    """

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @classmethod
    def from_key(cls, private_key: Optional[str]) -> "RawKeySigner":
        """
        Raises:
            IdentityUnavailable: If no key was supplied or it is not a valid key.
        """
        if not private_key:
            raise IdentityUnavailable("No owner private key supplied")
        try:
            return cls(Account.from_key(private_key))
        except (ValueError, TypeError) as e:
            raise IdentityUnavailable("Owner private key is malformed") from e

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def capabilities(self) -> FrozenSet[SignerCapability]:
        return frozenset({SignerCapability.TYPED_DATA, SignerCapability.RAW_HASH})

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signed = self._account.sign_message(encode_typed_data(full_message=typed_data))
        return bytes(signed.signature)

    async def sign_hash(self, message_hash: bytes) -> bytes:
        # No EIP-191 prefix: the EntryPoint hash is validated as-is by the account.
        signed = self._account.unsafe_sign_hash(message_hash)
        return bytes(signed.signature)

    def __repr__(self) -> str:
        return f"RawKeySigner(address={self.address})"


class DelegatedAccountSigner:
    """
    Signs as a smart account through a delegate signer.

    Args:
        account: Smart account address the signatures are attributed to.
        delegate: Signer whose signatures the account accepts (usually the owner key).
        capabilities: Capabilities the account is known to support. Include
                      ``TYPED_DATA`` only when the account implements ERC-1271
                      for the delegate's EIP-712 signatures, and ``ERC6492``
                      to wrap signatures while the account is undeployed.
        factory: CREATE2 factory, used for the ERC-6492 envelope.
        factory_data: Deploy calldata, used for the ERC-6492 envelope.
        deployed: Whether the account code already exists on chain.
    """

    def __init__(
        self,
        account: str,
        delegate: Signer,
        capabilities: Iterable[SignerCapability] = (SignerCapability.RAW_HASH,),
        *,
        factory: Optional[str] = None,
        factory_data: bytes | str = b"",
        deployed: bool = True,
    ) -> None:
        if not Web3.is_address(account):
            raise ValueError(f"not an EVM address: {account!r}")
        self._account = Web3.to_checksum_address(account)
        self._delegate = delegate
        self._capabilities = frozenset(SignerCapability(c) for c in capabilities)
        self._factory = factory
        self._factory_data = to_hex_bytes(factory_data)
        self._deployed = deployed

    @property
    def address(self) -> str:
        return self._account

    @property
    def delegate(self) -> Signer:
        return self._delegate

    @property
    def capabilities(self) -> FrozenSet[SignerCapability]:
        return self._capabilities

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        _require(self, SignerCapability.TYPED_DATA)
        signature = await self._delegate.sign_typed_data(typed_data)
        return self._wrap(signature)

    async def sign_hash(self, message_hash: bytes) -> bytes:
        _require(self, SignerCapability.RAW_HASH)
        return await self._delegate.sign_hash(message_hash)

    def _wrap(self, signature: bytes) -> bytes:
        if self._deployed or SignerCapability.ERC6492 not in self._capabilities:
            return signature
        if not self._factory:
            raise SigningUnsupported(
                "ERC-6492 wrapping requires the account factory",
                signer=self._account,
                required=SignerCapability.ERC6492.value,
            )
        logger.debug("Wrapping signature for undeployed account %s in ERC-6492 envelope", self._account)
        return wrap_erc6492_signature(self._factory, self._factory_data, signature)

    def __repr__(self) -> str:
        caps = ",".join(sorted(c.value for c in self._capabilities))
        return f"DelegatedAccountSigner(account={self._account}, capabilities={caps})"


def wrap_erc6492_signature(factory: str, factory_data: bytes, signature: bytes) -> bytes:
    """``abi.encode(factory, factoryData, signature) ‖ 0x6492…6492``"""
    body = encode(
        ["address", "bytes", "bytes"],
        [Web3.to_checksum_address(factory), bytes(factory_data), bytes(signature)],
    )
    return body + ERC6492_MAGIC_SUFFIX


def is_erc6492_signature(signature: bytes) -> bool:
    return bytes(signature).endswith(ERC6492_MAGIC_SUFFIX)
