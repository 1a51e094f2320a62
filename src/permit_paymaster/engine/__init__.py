from .events import (
    ConfirmedEvent,
    EventBus,
    FailedEvent,
    LifecycleEvent,
    LifecycleLog,
    Stage,
)
from .exceptions import (
    AccountResolutionFailed,
    ChainQueryFailed,
    ConfigurationError,
    FeeEstimationFailed,
    IdentityUnavailable,
    InvalidTransition,
    NetworkUnavailable,
    OperationReverted,
    OperationTimeout,
    PaymasterError,
    SigningUnsupported,
    SubmissionRejected,
)

__all__ = [
    "ConfirmedEvent",
    "EventBus",
    "FailedEvent",
    "LifecycleEvent",
    "LifecycleLog",
    "Stage",
    "AccountResolutionFailed",
    "ChainQueryFailed",
    "ConfigurationError",
    "FeeEstimationFailed",
    "IdentityUnavailable",
    "InvalidTransition",
    "NetworkUnavailable",
    "OperationReverted",
    "OperationTimeout",
    "PaymasterError",
    "SigningUnsupported",
    "SubmissionRejected",
]
