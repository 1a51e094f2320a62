"""
Operation Tracker

Waits for a submitted user operation to be included, by polling the
bundler's ``eth_getUserOperationReceipt``.
"""

import asyncio
import logging
from typing import Optional

from ..clients.bundler_client import BundlerClient
from ..schemas.operations import OperationReceipt
from .exceptions import NetworkUnavailable, OperationReverted, OperationTimeout

logger = logging.getLogger(__name__)


class OperationTracker:
    """
    Receipt polling with a bounded wait window.

    Args:
        bundler: Bundler client the operation was submitted to
        timeout: Seconds to wait before giving up
        poll_interval: Seconds between receipt queries
    """

    def __init__(self, bundler: BundlerClient, *, timeout: float = 120.0, poll_interval: float = 2.0) -> None:
        if timeout <= 0 or poll_interval <= 0:
            raise ValueError("timeout and poll_interval must be positive")
        self.bundler = bundler
        self.timeout = timeout
        self.poll_interval = poll_interval

    async def get_receipt(self, user_operation_hash: str) -> Optional[OperationReceipt]:
        """Single lookup; ``None`` while the operation is not yet included."""
        return await self.bundler.get_user_operation_receipt(user_operation_hash)

    async def _poll(self, user_operation_hash: str, remaining: float) -> Optional[OperationReceipt]:
        if remaining <= 0:
            return None
        try:
            return await asyncio.wait_for(self.get_receipt(user_operation_hash), timeout=remaining)
        except asyncio.TimeoutError:
            logger.debug("Receipt poll for %s stalled", user_operation_hash)
        except NetworkUnavailable as e:
            logger.debug("Receipt poll for %s failed: %s", user_operation_hash, e)
        return None

    async def wait_for_receipt(self, user_operation_hash: str) -> OperationReceipt:
        """
        Poll until the operation is included.

        Each poll is bounded by the time left in the window. A poll that
        stalls or hits a transport error counts as "not included yet".

        Raises:
            OperationTimeout: No receipt within ``timeout``. The hash stays
                              valid for a later ``get_receipt``.
            OperationReverted: Included, but execution failed.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.timeout

        while True:
            receipt = await self._poll(user_operation_hash, deadline - loop.time())
            if receipt is not None:
                break
            remaining = deadline - loop.time()
            if remaining <= 0:
                waited = loop.time() - started
                logger.warning("No receipt for %s after %.1fs", user_operation_hash, waited)
                raise OperationTimeout(
                    f"User operation {user_operation_hash} not included within {self.timeout}s",
                    user_operation_hash=user_operation_hash,
                    waited=waited,
                )
            await asyncio.sleep(min(self.poll_interval, remaining))

        if not receipt.success:
            reason = receipt.reason or "execution reverted"
            logger.warning("User operation %s reverted: %s", user_operation_hash, reason)
            raise OperationReverted(
                f"User operation {user_operation_hash} reverted: {reason}",
                receipt=receipt,
                reason=receipt.reason,
            )

        logger.info("User operation %s included in %s", user_operation_hash, receipt.transaction_hash)
        return receipt
