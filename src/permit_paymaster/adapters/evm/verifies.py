"""
EVM Signature Verification Helpers

Off-chain verification of EIP-2612 permit signatures.

All cryptographic operations are performed in-process using ``eth_account``.
When a Web3 provider is supplied, a signature that does not recover to the
expected owner is checked once more against the owner contract through
ERC-1271 ``isValidSignature`` so smart-contract accounts are also supported.

verify_permit_signature
    Verify a signature over a ``PermitTypedData`` envelope.

verify_signed_permit
    Rebuild the typed data from a ``SignedPermit`` and verify it.
"""

import logging
from typing import Optional, Union

from eth_account import Account
from web3 import AsyncWeb3

from ...schemas.bases import to_hex_bytes
from .abis import get_erc1271_abi
from .constants import ERC1271_MAGIC_VALUE
from .permits import build_permit_typed_data
from .schemas import SignedPermit
from .standards import PermitTypedData

logger = logging.getLogger(__name__)


async def _verify_erc1271(w3: AsyncWeb3, *, owner: str, digest: bytes, signature: bytes) -> bool:
    try:
        contract = w3.eth.contract(address=w3.to_checksum_address(owner), abi=get_erc1271_abi())
        result = await contract.functions.isValidSignature(digest, signature).call()
    except Exception as e:
        logger.debug("ERC-1271 check against %s failed: %s", owner, e)
        return False
    return bytes(result) == ERC1271_MAGIC_VALUE


async def verify_permit_signature(
    typed_data: PermitTypedData,
    signature: Union[bytes, str],
    owner: str,
    w3: Optional[AsyncWeb3] = None,
) -> bool:
    """
    Verify ``signature`` over ``typed_data`` against ``owner``.

    Tries EOA ECDSA recovery first. If the recovered address does not match
    *and* ``w3`` is supplied, falls back to an ERC-1271 call on ``owner``.

    Args:
        typed_data: Permit envelope the signature is claimed to cover.
        signature: Signature bytes (or 0x-prefixed hex).
        owner: Expected signer (EOA or contract).
        w3: Optional ``AsyncWeb3`` used for the ERC-1271 fallback.

    Returns:
        ``True`` if the signature is valid for ``owner``, ``False`` otherwise.
    """
    sig = to_hex_bytes(signature)
    signable = typed_data.signable()

    if len(sig) == 65:
        try:
            recovered = Account.recover_message(signable, signature=sig)
        except Exception as e:
            logger.debug("ECDSA recovery failed: %s", e)
        else:
            if recovered.lower() == owner.lower():
                return True

    if w3 is None:
        return False
    return await _verify_erc1271(w3, owner=owner, digest=typed_data.digest(), signature=sig)


async def verify_signed_permit(permit: SignedPermit, w3: Optional[AsyncWeb3] = None) -> bool:
    """Verify a ``SignedPermit`` produced by ``sign_permit``."""
    typed_data = build_permit_typed_data(
        token=permit.token,
        chain_id=permit.chain_id,
        owner=permit.owner,
        spender=permit.spender,
        value=permit.value,
        nonce=permit.nonce,
        deadline=permit.deadline,
        domain_name=permit.domain_name,
        domain_version=permit.domain_version,
    )
    return await verify_permit_signature(typed_data, permit.signature_bytes, permit.owner, w3)
