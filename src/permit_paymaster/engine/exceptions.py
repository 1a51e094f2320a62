"""
Exception and Error Definitions Module

Defines the failure taxonomy for one sponsored transfer attempt. Every
exception inherits from PaymasterError and carries the pipeline stage it
was raised in, so callers can report which step failed without parsing
messages.

Exception Hierarchy:
    PaymasterError (root)
    ├── IdentityUnavailable
    ├── AccountResolutionFailed
    ├── SigningUnsupported
    ├── ChainQueryFailed
    ├── FeeEstimationFailed
    ├── SubmissionRejected
    ├── NetworkUnavailable
    ├── OperationTimeout
    ├── OperationReverted
    └── ConfigurationError
    InvalidTransition
"""

from typing import Any, Optional


class PaymasterError(Exception):
    """
    Root exception class for all project-specific exceptions.

    Attributes:
        message: Human-readable failure reason
        stage: Lifecycle stage the failure belongs to (e.g. "signing_permit").
               Filled in by the pipeline when the raising component does not
               know its stage.
    """

    default_stage: Optional[str] = None

    def __init__(self, message: str = "", *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        return self.message or self.__class__.__name__


class IdentityUnavailable(PaymasterError):
    """
    Raised when no owner key or signing capability was supplied.

    Nothing can be derived or signed without an owner identity, so this
    is always the first failure a misconfigured caller sees.
    """

    default_stage = "connecting"


class AccountResolutionFailed(PaymasterError):
    """
    Raised when the smart account address cannot be resolved.

    This includes scenarios such as:
    - Chain client unreachable while reading the account's deployed code
    - Missing factory / implementation configuration

    An undeployed account is NOT a resolution failure.
    """

    default_stage = "resolving_account"


class SigningUnsupported(PaymasterError):
    """
    Raised when a signer cannot produce the requested signature type.

    The canonical case is a smart-contract account wrapper asked to sign an
    EIP-712 permit without declaring typed-data support. The signer refuses
    before producing anything instead of returning a signature the token's
    permit verifier would reject.

    Attributes:
        signer: Address of the signer that refused
        required: Capability that was missing
    """

    default_stage = "signing_permit"

    def __init__(
        self,
        message: str = "",
        *,
        stage: Optional[str] = None,
        signer: Optional[str] = None,
        required: Optional[str] = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.signer = signer
        self.required = required


class ChainQueryFailed(PaymasterError):
    """
    Raised when a read-only chain query times out or reverts.

    Attributes:
        method: Contract function or RPC method that failed
    """

    def __init__(self, message: str = "", *, stage: Optional[str] = None, method: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.method = method


class FeeEstimationFailed(PaymasterError):
    """
    Raised when the gas price oracle query fails.

    No local fee fallback is computed; the whole assembly is aborted.
    """

    default_stage = "estimating_fees"


class SubmissionRejected(PaymasterError):
    """
    Raised when the bundler rejects a user operation.

    This includes scenarios such as:
    - Invalid account or paymaster signature
    - Malformed paymaster data (paymaster validation reverts)
    - Insufficient token balance for the permit amount
    - EntryPoint nonce conflicts

    Attributes:
        code: JSON-RPC error code returned by the bundler
        data: Optional error data payload (often the revert bytes)
    """

    default_stage = "submitting"

    def __init__(
        self,
        message: str = "",
        *,
        stage: Optional[str] = None,
        code: Optional[int] = None,
        data: Any = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.code = code
        self.data = data


class NetworkUnavailable(PaymasterError):
    """
    Raised on transport failures talking to the bundler or RPC endpoint
    (connection refused, DNS failure, HTTP 5xx, read timeout).
    """


class OperationTimeout(PaymasterError):
    """
    Raised when no receipt arrives within the configured wait window.

    The operation may still be included later; the hash stays valid for an
    out-of-band lookup.

    Attributes:
        user_operation_hash: Hash of the submitted operation
        waited: Seconds spent waiting
    """

    default_stage = "awaiting_confirmation"

    def __init__(
        self,
        message: str = "",
        *,
        stage: Optional[str] = None,
        user_operation_hash: Optional[str] = None,
        waited: Optional[float] = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.user_operation_hash = user_operation_hash
        self.waited = waited


class OperationReverted(PaymasterError):
    """
    Raised when the operation was included but its execution failed on-chain.

    Attributes:
        receipt: The OperationReceipt reported by the bundler
        reason: Revert reason, when the bundler provides one
    """

    default_stage = "awaiting_confirmation"

    def __init__(
        self,
        message: str = "",
        *,
        stage: Optional[str] = None,
        receipt: Any = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.receipt = receipt
        self.reason = reason


class ConfigurationError(PaymasterError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing bundler / RPC URL
    - Paymaster or token address not a valid address
    - Chain id reported by the RPC differs from the configured one
    """


class InvalidTransition(Exception):
    """
    Raised when an attempt is moved to a state that does not follow its
    current state. Indicates a programming error, not a chain failure.
    """
