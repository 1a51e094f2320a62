from .chain import ChainReader
from .paymaster_data import decode_paymaster_data, encode_paymaster_data
from .permits import build_permit_typed_data, sign_permit
from .schemas import PaymasterPayload, SignedPermit
from .signers import (
    DelegatedAccountSigner,
    RawKeySigner,
    Signer,
    SignerCapability,
    wrap_erc6492_signature,
)
from .smart_account import (
    ImplementationVariant,
    SmartAccount,
    compute_counterfactual_address,
    encode_execute,
    resolve_smart_account,
)
from .verifies import verify_permit_signature, verify_signed_permit

__all__ = [
    "ChainReader",
    "decode_paymaster_data",
    "encode_paymaster_data",
    "build_permit_typed_data",
    "sign_permit",
    "PaymasterPayload",
    "SignedPermit",
    "DelegatedAccountSigner",
    "RawKeySigner",
    "Signer",
    "SignerCapability",
    "wrap_erc6492_signature",
    "ImplementationVariant",
    "SmartAccount",
    "compute_counterfactual_address",
    "encode_execute",
    "resolve_smart_account",
    "verify_permit_signature",
    "verify_signed_permit",
]
