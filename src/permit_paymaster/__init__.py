"""
permit_paymaster

Pay ERC-4337 gas in USDC through a token paymaster funded by an EIP-2612
permit: derive the counterfactual smart account, sign the permit, pack it
into ``paymasterData``, then assemble, submit and track the user operation.
"""

from .adapters.evm import (
    ChainReader,
    DelegatedAccountSigner,
    ImplementationVariant,
    RawKeySigner,
    SignedPermit,
    SignerCapability,
    SmartAccount,
    decode_paymaster_data,
    encode_paymaster_data,
    resolve_smart_account,
    sign_permit,
    verify_permit_signature,
)
from .clients import BundlerClient, PermitPaymasterProvider, PimlicoFeeEstimator
from .config import PaymasterSettings, PermitSignerChoice, SmartAccountSettings
from .engine import EventBus, LifecycleEvent, PaymasterError, Stage
from .engine.assembler import UserOperationAssembler
from .engine.pipeline import (
    AttemptOutcome,
    AttemptState,
    SessionContext,
    SponsoredTransferPipeline,
)
from .engine.tracker import OperationTracker
from .schemas import Call, OperationReceipt, UserOperation

__all__ = [
    "ChainReader",
    "DelegatedAccountSigner",
    "ImplementationVariant",
    "RawKeySigner",
    "SignedPermit",
    "SignerCapability",
    "SmartAccount",
    "decode_paymaster_data",
    "encode_paymaster_data",
    "resolve_smart_account",
    "sign_permit",
    "verify_permit_signature",
    "BundlerClient",
    "PermitPaymasterProvider",
    "PimlicoFeeEstimator",
    "PaymasterSettings",
    "PermitSignerChoice",
    "SmartAccountSettings",
    "EventBus",
    "LifecycleEvent",
    "PaymasterError",
    "Stage",
    "UserOperationAssembler",
    "AttemptOutcome",
    "AttemptState",
    "SessionContext",
    "SponsoredTransferPipeline",
    "OperationTracker",
    "Call",
    "OperationReceipt",
    "UserOperation",
]
