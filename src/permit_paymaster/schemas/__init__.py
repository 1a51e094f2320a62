from .bases import CanonicalModel
from .operations import (
    Call,
    FeeQuote,
    GasEstimate,
    OperationReceipt,
    PaymasterData,
    UserOperation,
)

__all__ = [
    "CanonicalModel",
    "Call",
    "FeeQuote",
    "GasEstimate",
    "OperationReceipt",
    "PaymasterData",
    "UserOperation",
]
