"""
ERC-4337 Bundler Client

JSON-RPC 2.0 client for an ERC-4337 bundler over ``httpx.AsyncClient``,
plus the Pimlico gas price oracle that runs on the same endpoint.

Error mapping at this boundary:

* JSON-RPC ``error`` object -> ``SubmissionRejected`` (code, message, data)
* connection / timeout / HTTP 5xx -> ``NetworkUnavailable``

No request is retried here; retries are the bundler's business.
"""

import itertools
import logging
from typing import Any, Dict, List, Literal, Optional

import httpx

from ..engine.exceptions import (
    FeeEstimationFailed,
    NetworkUnavailable,
    PaymasterError,
    SubmissionRejected,
)
from ..schemas.operations import FeeQuote, GasEstimate, OperationReceipt, UserOperation

logger = logging.getLogger(__name__)


class BundlerClient:
    """
    Bundler JSON-RPC client bound to one EntryPoint.

    Args:
        url: Bundler endpoint
        entry_point: EntryPoint address passed with every user operation call
        timeout: Request timeout in seconds
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject one
                with ``httpx.MockTransport``)

    Usage:
        ```python
        async with BundlerClient(url, ENTRY_POINT_V08) as bundler:
            user_op_hash = await bundler.send_user_operation(user_op)
        ```
    """

    def __init__(
        self,
        url: str,
        entry_point: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.entry_point = entry_point
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "BundlerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(self, method: str, params: List[Any]) -> Any:
        """
        Perform one JSON-RPC call and return its ``result``.

        Raises:
            SubmissionRejected: The bundler answered with a JSON-RPC error.
            NetworkUnavailable: Transport failure or HTTP 5xx.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug("Bundler request %s", method)
        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.TransportError as e:
            raise NetworkUnavailable(f"Bundler unreachable ({method}): {e}") from e

        if response.status_code >= 500:
            raise NetworkUnavailable(f"Bundler returned HTTP {response.status_code} for {method}")

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionRejected(
                f"Bundler returned a non-JSON response (HTTP {response.status_code}) for {method}",
                code=response.status_code,
            ) from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            data = error.get("data") if isinstance(error, dict) else None
            logger.warning("Bundler rejected %s: [%s] %s", method, code, message)
            raise SubmissionRejected(f"{method} rejected: {message}", code=code, data=data)

        if response.status_code >= 400:
            raise SubmissionRejected(
                f"Bundler returned HTTP {response.status_code} for {method}", code=response.status_code
            )
        return body.get("result") if isinstance(body, dict) else None

    async def send_user_operation(self, user_operation: UserOperation) -> str:
        result = await self.request("eth_sendUserOperation", [user_operation.to_rpc(), self.entry_point])
        if not isinstance(result, str):
            raise SubmissionRejected("Bundler returned no user operation hash")
        logger.info("User operation submitted: %s", result)
        return result

    async def estimate_user_operation_gas(self, user_operation: UserOperation) -> GasEstimate:
        result = await self.request(
            "eth_estimateUserOperationGas", [user_operation.to_rpc(), self.entry_point]
        )
        if not isinstance(result, dict):
            raise SubmissionRejected("Bundler returned an invalid gas estimate payload")
        return GasEstimate.from_rpc(result)

    async def get_user_operation_receipt(self, user_operation_hash: str) -> Optional[OperationReceipt]:
        """Receipt for ``user_operation_hash``, or ``None`` while it is not yet included."""
        result = await self.request("eth_getUserOperationReceipt", [user_operation_hash])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise SubmissionRejected("Bundler returned an invalid receipt payload")
        result.setdefault("userOpHash", user_operation_hash)
        return OperationReceipt.from_rpc(result)

    async def supported_entry_points(self) -> List[str]:
        return list(await self.request("eth_supportedEntryPoints", []) or [])

    def __repr__(self) -> str:
        return f"BundlerClient(url={self.url}, entry_point={self.entry_point})"


FeeTier = Literal["slow", "standard", "fast"]


class PimlicoFeeEstimator:
    """
    Fee oracle backed by ``pimlico_getUserOperationGasPrice``.

    The query runs every time ``estimate_fees`` is awaited; there is no
    cached or locally computed fallback.
    """

    def __init__(self, bundler: BundlerClient, tier: FeeTier = "standard") -> None:
        self.bundler = bundler
        self.tier = tier

    async def estimate_fees(self) -> FeeQuote:
        """
        Raises:
            FeeEstimationFailed: If the oracle call fails or its answer lacks the tier.
        """
        try:
            result: Dict[str, Any] = await self.bundler.request("pimlico_getUserOperationGasPrice", [])
            prices = result[self.tier]
            quote = FeeQuote(
                max_fee_per_gas=int(prices["maxFeePerGas"], 16),
                max_priority_fee_per_gas=int(prices["maxPriorityFeePerGas"], 16),
            )
        except PaymasterError as e:
            raise FeeEstimationFailed(f"Gas price oracle failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise FeeEstimationFailed(f"Gas price oracle returned no '{self.tier}' tier") from e
        logger.debug("Fee quote (%s): %s", self.tier, quote)
        return quote
