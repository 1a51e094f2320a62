"""
User Operation Assembler

Builds a complete, signed ERC-4337 user operation for a smart account:

1. EntryPoint nonce (``getNonce(sender, key)``)
2. ``factory`` / ``factoryData`` while the account is undeployed
3. ERC-7579 call data
4. fees from the fee estimator
5. paymaster fields from the paymaster provider
6. gas limits from the bundler (estimated with a stub signature)
7. paymaster fields again when the first answer was not final
8. ``EntryPoint.getUserOpHash`` signed by the account owner

Each step returns a new frozen ``UserOperation``; nothing is mutated.
"""

import logging
from typing import Protocol, Sequence

from ..adapters.evm.chain import ChainReader
from ..adapters.evm.smart_account import SmartAccount
from ..clients.bundler_client import BundlerClient
from ..clients.paymaster import PaymasterProvider
from ..schemas.bases import bytes_to_hex
from ..schemas.operations import Call, FeeQuote, UserOperation
from .exceptions import FeeEstimationFailed, PaymasterError

logger = logging.getLogger(__name__)


class FeeEstimator(Protocol):
    async def estimate_fees(self) -> FeeQuote: ...


class UserOperationAssembler:
    """
    Assembles and submits user operations for one smart account.

    Args:
        account: Resolved smart account (sender)
        chain: Chain reader for the nonce and user operation hash
        bundler: Bundler used for gas estimation and submission
        paymaster: Paymaster provider
        fee_estimator: Fee oracle queried on every assembly
        entry_point: EntryPoint address
        nonce_key: EntryPoint nonce key (192-bit)
    """

    def __init__(
        self,
        account: SmartAccount,
        chain: ChainReader,
        bundler: BundlerClient,
        paymaster: PaymasterProvider,
        fee_estimator: FeeEstimator,
        *,
        entry_point: str,
        nonce_key: int = 0,
    ) -> None:
        self.account = account
        self.chain = chain
        self.bundler = bundler
        self.paymaster = paymaster
        self.fee_estimator = fee_estimator
        self.entry_point = entry_point
        self.nonce_key = nonce_key

    async def _estimate_fees(self) -> FeeQuote:
        try:
            return await self.fee_estimator.estimate_fees()
        except FeeEstimationFailed:
            raise
        except PaymasterError as e:
            raise FeeEstimationFailed(f"Fee estimation failed: {e}") from e

    async def prepare_user_operation(self, calls: Sequence[Call]) -> UserOperation:
        """
        Build and sign a user operation executing ``calls``.

        Raises:
            ValueError: If ``calls`` is empty.
            ChainQueryFailed: Nonce or hash query failed.
            FeeEstimationFailed: Fee oracle failed.
            SubmissionRejected: Bundler rejected the gas estimation.
            NetworkUnavailable: Bundler unreachable.
        """
        call_data = self.account.encode_calls(calls)
        nonce = await self.chain.entry_point_nonce(self.entry_point, self.account.address, self.nonce_key)

        user_operation = UserOperation(
            sender=self.account.address,
            nonce=nonce,
            factory=self.account.init_factory,
            factory_data=self.account.init_factory_data,
            call_data=call_data,
            signature=self.account.stub_signature(),
        )

        user_operation = user_operation.with_fees(await self._estimate_fees())

        paymaster_data = await self.paymaster.get_paymaster_data(user_operation)
        user_operation = user_operation.with_paymaster(paymaster_data)

        estimate = await self.bundler.estimate_user_operation_gas(user_operation)
        user_operation = user_operation.with_gas(estimate)

        if not paymaster_data.is_final:
            paymaster_data = await self.paymaster.get_paymaster_data(user_operation)
            user_operation = user_operation.with_paymaster(paymaster_data)

        user_operation_hash = await self.chain.user_operation_hash(self.entry_point, user_operation.to_packed())
        signature = await self.account.sign_user_operation_hash(user_operation_hash)
        logger.info(
            "Prepared user operation sender=%s nonce=%s hash=%s",
            user_operation.sender, nonce, bytes_to_hex(user_operation_hash),
        )
        return user_operation.with_signature(signature)

    async def submit(self, user_operation: UserOperation) -> str:
        """
        Submit a signed user operation; returns its hash.

        Raises:
            SubmissionRejected: Bundler rejected the operation.
            NetworkUnavailable: Bundler unreachable.
        """
        return await self.bundler.send_user_operation(user_operation)

    async def send_user_operation(self, calls: Sequence[Call]) -> str:
        user_operation = await self.prepare_user_operation(calls)
        return await self.submit(user_operation)
