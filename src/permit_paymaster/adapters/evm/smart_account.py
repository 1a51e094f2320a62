"""
Counterfactual Smart Account Derivation

Derives the smart account an owner key controls, without deploying it.

The account is an ERC-1967 proxy deployed through a CREATE2 factory
(``deploy(bytes bytecode, bytes32 salt)``)::

    initializer = implementation.initialize(deploy_args...)
    bytecode    = proxyCreationCode ‖ abi.encode(implementation, initializer)
    address     = keccak(0xff ‖ factory ‖ salt ‖ keccak(bytecode))[12:]

The address is a pure function of those inputs, so resolving the same
owner twice yields the same account. ``eth_getCode`` only decides whether
``factory`` / ``factoryData`` must ride along with the first user operation.

Account call data follows ERC-7579 ``execute(bytes32 mode, bytes calldata)``.
"""

import logging
from enum import Enum
from typing import Any, Optional, Sequence, Tuple, Union

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import function_signature_to_4byte_selector, keccak
from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from ...engine.exceptions import AccountResolutionFailed, ChainQueryFailed
from ...schemas.bases import bytes_to_hex, to_hex_bytes
from ...schemas.operations import Call
from .chain import ChainReader
from .constants import STUB_ECDSA_SIGNATURE
from .signers import DelegatedAccountSigner, Signer, SignerCapability

logger = logging.getLogger(__name__)

EXECUTE_SIGNATURE = "execute(bytes32,bytes)"
DEPLOY_SIGNATURE = "deploy(bytes,bytes32)"

#: ERC-7579 execution modes (call type byte, exec type 0x00 = revert on failure).
SINGLE_CALL_MODE = bytes(32)
BATCH_CALL_MODE = b"\x01" + bytes(31)


class ImplementationVariant(str, Enum):
    """Account implementation behind the proxy, selecting its initializer."""
    HYBRID = "hybrid"
    MULTISIG = "multisig"


_INITIALIZERS = {
    ImplementationVariant.HYBRID: ("initialize", ["address", "string[]", "uint256[]", "uint256[]"]),
    ImplementationVariant.MULTISIG: ("initialize", ["address[]", "uint256"]),
}


def _selector_call(signature: str, types: Sequence[str], args: Sequence[Any]) -> bytes:
    return function_signature_to_4byte_selector(signature) + encode(list(types), list(args))


def default_deploy_args(implementation: ImplementationVariant, owner: str) -> Tuple[Any, ...]:
    """Single-owner deployment arguments: no passkeys, or a 1-of-1 multisig."""
    if implementation is ImplementationVariant.HYBRID:
        return (owner, [], [], [])
    return ([owner], 1)


def encode_initializer(implementation: ImplementationVariant, deploy_args: Sequence[Any]) -> bytes:
    implementation = ImplementationVariant(implementation)
    name, types = _INITIALIZERS[implementation]
    if len(deploy_args) != len(types):
        raise ValueError(
            f"{implementation.value} initializer takes {len(types)} arguments, got {len(deploy_args)}"
        )
    return _selector_call(f"{name}({','.join(types)})", types, deploy_args)


def normalise_salt(salt: Union[str, int, bytes, None]) -> bytes:
    """Left-pad ``"0x"``, ``"0x0"``, an int or up to 32 bytes to a bytes32 salt."""
    if salt is None:
        raw = b""
    elif isinstance(salt, int):
        if salt < 0:
            raise ValueError("Salt must be non-negative")
        raw = salt.to_bytes(32, "big")
    else:
        raw = to_hex_bytes(salt)
    if len(raw) > 32:
        raise ValueError(f"Salt longer than 32 bytes: {len(raw)}")
    return raw.rjust(32, b"\x00")


def build_proxy_bytecode(
    proxy_creation_code: Union[bytes, str],
    implementation_address: str,
    initializer: bytes,
) -> bytes:
    constructor_args = encode(
        ["address", "bytes"],
        [Web3.to_checksum_address(implementation_address), initializer],
    )
    return to_hex_bytes(proxy_creation_code) + constructor_args


def compute_counterfactual_address(factory: str, salt: bytes, bytecode: bytes) -> str:
    """CREATE2 address for ``bytecode`` deployed by ``factory`` with ``salt``."""
    digest = keccak(b"\xff" + to_hex_bytes(factory) + normalise_salt(salt) + keccak(bytecode))
    return Web3.to_checksum_address(bytes_to_hex(digest[12:]))


def encode_factory_data(bytecode: bytes, salt: bytes) -> bytes:
    return _selector_call(DEPLOY_SIGNATURE, ["bytes", "bytes32"], [bytecode, normalise_salt(salt)])


def encode_execute(calls: Sequence[Call]) -> bytes:
    """
    ERC-7579 ``execute`` call data.

    One call uses single mode with ``encodePacked(target, value, data)``;
    several calls use batch mode with ``abi.encode((address,uint256,bytes)[])``.
    """
    if not calls:
        raise ValueError("At least one call is required")
    if len(calls) == 1:
        call = calls[0]
        execution = encode_packed(["address", "uint256", "bytes"], [call.to, call.value, call.data_bytes])
        mode = SINGLE_CALL_MODE
    else:
        execution = encode(
            ["(address,uint256,bytes)[]"],
            [[(c.to, c.value, c.data_bytes) for c in calls]],
        )
        mode = BATCH_CALL_MODE
    return _selector_call(EXECUTE_SIGNATURE, ["bytes32", "bytes"], [mode, execution])


class SmartAccount(BaseModel):
    """
    Resolved counterfactual smart account.

    Attributes:
        address: CREATE2 address of the account
        owner: Owner EOA address
        implementation: Implementation variant
        implementation_address: Implementation contract behind the proxy
        deploy_args: Initializer arguments
        salt: bytes32 deploy salt (hex)
        factory: CREATE2 factory address
        factory_data: ``deploy(bytes,bytes32)`` calldata (hex)
        deployed: Whether code exists at ``address``
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    address: str
    owner: str
    implementation: ImplementationVariant
    implementation_address: str
    deploy_args: Tuple[Any, ...]
    salt: str
    factory: str
    factory_data: str
    deployed: bool
    delegate: Any = Field(exclude=True, repr=False)

    @property
    def init_factory(self) -> Optional[str]:
        """Factory to attach to a user operation, ``None`` once deployed."""
        return None if self.deployed else self.factory

    @property
    def init_factory_data(self) -> str:
        return "0x" if self.deployed else self.factory_data

    def encode_calls(self, calls: Sequence[Call]) -> bytes:
        return encode_execute(calls)

    def stub_signature(self) -> str:
        """Dummy signature accepted by the account's validation for gas estimation."""
        return STUB_ECDSA_SIGNATURE

    async def sign_user_operation_hash(self, user_operation_hash: bytes) -> bytes:
        """Sign the EntryPoint user operation hash with the owner delegate."""
        return await self.delegate.sign_hash(user_operation_hash)

    def as_signer(self, capabilities=(SignerCapability.RAW_HASH,)) -> DelegatedAccountSigner:
        """Signer that signs as this account through the owner delegate."""
        return DelegatedAccountSigner(
            self.address,
            self.delegate,
            capabilities,
            factory=self.factory,
            factory_data=self.factory_data,
            deployed=self.deployed,
        )


async def resolve_smart_account(
    owner: Signer,
    chain: ChainReader,
    *,
    factory: Optional[str],
    implementation_address: Optional[str],
    proxy_creation_code: Optional[Union[bytes, str]],
    implementation: ImplementationVariant = ImplementationVariant.HYBRID,
    deploy_args: Optional[Sequence[Any]] = None,
    deploy_salt: Union[str, int, bytes] = "0x",
) -> SmartAccount:
    """
    Derive the counterfactual account for ``owner`` and check whether it is deployed.

    Raises:
        AccountResolutionFailed: If the deployment parameters are missing or
                                 invalid, or the code lookup fails.
    """
    if not (factory and implementation_address and proxy_creation_code):
        raise AccountResolutionFailed(
            "Account factory, implementation and proxy creation code must all be configured"
        )

    implementation = ImplementationVariant(implementation)
    args = tuple(deploy_args) if deploy_args is not None else default_deploy_args(implementation, owner.address)
    try:
        salt = normalise_salt(deploy_salt)
        initializer = encode_initializer(implementation, args)
        bytecode = build_proxy_bytecode(proxy_creation_code, implementation_address, initializer)
        address = compute_counterfactual_address(factory, salt, bytecode)
    except (ValueError, TypeError) as e:
        raise AccountResolutionFailed(f"Invalid account deployment parameters: {e}") from e

    try:
        code = await chain.get_code(address)
    except ChainQueryFailed as e:
        raise AccountResolutionFailed(f"Could not read code at {address}: {e}") from e

    deployed = len(code) > 0
    logger.info("Resolved smart account %s (owner=%s, deployed=%s)", address, owner.address, deployed)

    return SmartAccount(
        address=address,
        owner=owner.address,
        implementation=implementation,
        implementation_address=Web3.to_checksum_address(implementation_address),
        deploy_args=args,
        salt=bytes_to_hex(salt),
        factory=Web3.to_checksum_address(factory),
        factory_data=bytes_to_hex(encode_factory_data(bytecode, salt)),
        deployed=deployed,
        delegate=owner,
    )
