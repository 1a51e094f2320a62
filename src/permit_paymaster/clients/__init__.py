from .bundler_client import BundlerClient, PimlicoFeeEstimator
from .paymaster import PaymasterProvider, PermitPaymasterProvider

__all__ = [
    "BundlerClient",
    "PimlicoFeeEstimator",
    "PaymasterProvider",
    "PermitPaymasterProvider",
]
