"""
Chain Read Capability

``ChainReader`` is the only component that talks to the JSON-RPC node. It
wraps a ``web3.AsyncWeb3`` client and exposes the handful of read-only
queries the paymaster flow needs. Every failure (timeout, revert, transport
error) surfaces as ``ChainQueryFailed`` naming the method that failed.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from web3 import AsyncHTTPProvider, AsyncWeb3

from ...engine.exceptions import ChainQueryFailed, ConfigurationError, PaymasterError
from .abis import get_eip2612_abi, get_entry_point_abi

logger = logging.getLogger(__name__)


class ChainReader:
    """
    Read-only chain access over ``AsyncWeb3``.

    Args:
        w3: Connected ``AsyncWeb3`` client.
        timeout: Per-query timeout in seconds.

    Example::

        chain = ChainReader.from_url("https://sepolia-rollup.arbitrum.io/rpc")
        code = await chain.get_code(account_address)
    """

    def __init__(self, w3: AsyncWeb3, *, timeout: float = 30.0) -> None:
        self.w3 = w3
        self.timeout = timeout

    @classmethod
    def from_url(cls, rpc_url: str, *, timeout: float = 30.0) -> "ChainReader":
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)), timeout=timeout)

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        await self.w3.provider.disconnect()

    async def _query(self, method: str, awaitable) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except PaymasterError:
            raise
        except asyncio.TimeoutError as e:
            raise ChainQueryFailed(f"{method} timed out after {self.timeout}s", method=method) from e
        except Exception as e:
            logger.debug("Chain query %s failed: %s", method, e)
            raise ChainQueryFailed(f"{method} failed: {e}", method=method) from e

    def _contract(self, address: str, abi: List[Dict[str, Any]]):
        return self.w3.eth.contract(address=self.w3.to_checksum_address(address), abi=abi)

    async def call_function(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        *args: Any,
    ) -> Any:
        """Call a view function and return its decoded result."""
        fn = getattr(self._contract(address, abi).functions, function_name)
        return await self._query(function_name, fn(*args).call())

    async def get_chain_id(self) -> int:
        return int(await self._query("eth_chainId", self.w3.eth.chain_id))

    async def ensure_chain_id(self, expected: int) -> None:
        """
        Raises:
            ConfigurationError: If the node serves a different chain.
        """
        actual = await self.get_chain_id()
        if actual != expected:
            raise ConfigurationError(f"RPC endpoint serves chain {actual}, expected {expected}")

    async def get_code(self, address: str) -> bytes:
        code = await self._query(
            "eth_getCode", self.w3.eth.get_code(self.w3.to_checksum_address(address))
        )
        return bytes(code)

    async def token_name(self, token: str) -> str:
        return await self.call_function(token, get_eip2612_abi(), "name")

    async def token_version(self, token: str) -> str:
        return await self.call_function(token, get_eip2612_abi(), "version")

    async def token_nonce(self, token: str, owner: str) -> int:
        return int(await self.call_function(
            token, get_eip2612_abi(), "nonces", self.w3.to_checksum_address(owner)
        ))

    async def token_balance(self, token: str, owner: str) -> int:
        return int(await self.call_function(
            token, get_eip2612_abi(), "balanceOf", self.w3.to_checksum_address(owner)
        ))

    async def entry_point_nonce(self, entry_point: str, sender: str, key: int = 0) -> int:
        return int(await self.call_function(
            entry_point, get_entry_point_abi(), "getNonce", self.w3.to_checksum_address(sender), key
        ))

    async def user_operation_hash(self, entry_point: str, packed: Sequence[Any]) -> bytes:
        """``EntryPoint.getUserOpHash(packedUserOp)``"""
        result = await self.call_function(
            entry_point, get_entry_point_abi(), "getUserOpHash", tuple(packed)
        )
        return bytes(result)

    def __repr__(self) -> str:
        provider: Optional[Any] = getattr(self.w3, "provider", None)
        return f"ChainReader(provider={type(provider).__name__})"
