"""
EIP-2612 Permit Signing

``sign_permit`` reads the token's EIP-712 domain fields and the owner's
permit nonce, builds the ``Permit`` typed data and signs it through a
``Signer``. The result is a ``SignedPermit`` ready for the paymaster data
encoder.
"""

import asyncio
import logging
from typing import Optional

from web3 import Web3

from ...engine.exceptions import SigningUnsupported
from .chain import ChainReader
from .constants import MAX_UINT256
from .schemas import SignedPermit
from .signers import Signer, SignerCapability
from .standards import EIP712Domain, PermitMessage, PermitTypedData

logger = logging.getLogger(__name__)


def build_permit_typed_data(
    *,
    token: str,
    chain_id: int,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
    domain_name: str,
    domain_version: str,
) -> PermitTypedData:
    """
    Wrap permit fields in an EIP-712 envelope without signing.

    Shared by the signing and verification paths so both hash the same data.
    """
    domain = EIP712Domain(
        name=domain_name,
        version=domain_version,
        chainId=chain_id,
        verifyingContract=Web3.to_checksum_address(token),
    )
    message = PermitMessage(
        owner=Web3.to_checksum_address(owner),
        spender=Web3.to_checksum_address(spender),
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    return PermitTypedData(domain=domain, message=message)


async def sign_permit(
    chain: ChainReader,
    signer: Signer,
    *,
    token: str,
    spender: str,
    value: int,
    chain_id: int,
    deadline: Optional[int] = None,
) -> SignedPermit:
    """
    Sign an EIP-2612 permit allowing ``spender`` to pull ``value`` tokens
    from ``signer.address``.

    The token's ``name()``, ``version()`` and ``nonces(owner)`` are read
    concurrently; the nonce is therefore the one current at signing time.

    Args:
        chain: Chain reader for the token queries.
        signer: Signer whose address becomes the permit ``owner``.
        token: EIP-2612 token (EIP-712 ``verifyingContract``).
        spender: Address allowed to spend; the paymaster.
        value: Allowance in the token's smallest unit.
        chain_id: Chain id bound into the domain.
        deadline: Expiry timestamp. Defaults to max uint256 (never expires).

    Returns:
        ``SignedPermit`` with the signature attached.

    Raises:
        ValueError: If ``value`` or ``deadline`` does not fit in uint256.
        SigningUnsupported: If ``signer`` cannot sign typed data. Raised
                            before any chain query or signature.
        ChainQueryFailed: If a token query fails.
    """
    if not 0 <= value <= MAX_UINT256:
        raise ValueError(f"Permit value out of uint256 range: {value}")
    deadline = MAX_UINT256 if deadline is None else deadline
    if not 0 <= deadline <= MAX_UINT256:
        raise ValueError(f"Permit deadline out of uint256 range: {deadline}")
    if SignerCapability.TYPED_DATA not in signer.capabilities:
        raise SigningUnsupported(
            f"Signer {signer.address} cannot sign EIP-712 permits",
            signer=signer.address,
            required=SignerCapability.TYPED_DATA.value,
        )

    owner = signer.address
    name, version, nonce = await asyncio.gather(
        chain.token_name(token),
        chain.token_version(token),
        chain.token_nonce(token, owner),
    )
    logger.info("Signing permit owner=%s spender=%s value=%s nonce=%s", owner, spender, value, nonce)

    typed_data = build_permit_typed_data(
        token=token,
        chain_id=chain_id,
        owner=owner,
        spender=spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
        domain_name=name,
        domain_version=version,
    )
    signature = await signer.sign_typed_data(typed_data.to_dict())

    return SignedPermit(
        owner=owner,
        spender=spender,
        token=token,
        value=value,
        nonce=nonce,
        deadline=deadline,
        chain_id=chain_id,
        domain_name=name,
        domain_version=version,
        signature=signature,
    )
