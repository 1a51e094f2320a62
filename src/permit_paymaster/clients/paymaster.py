"""
Paymaster Providers

A paymaster provider answers ``get_paymaster_data(user_operation)`` with
the paymaster fields to attach to the operation.

``PermitPaymasterProvider`` serves a token paymaster that is paid through
an EIP-2612 permit: its data is the packed permit payload, fixed for the
whole attempt, so it is always final.
"""

import logging
from typing import Protocol, Union

from web3 import Web3

from ..adapters.evm.paymaster_data import encode_paymaster_data
from ..adapters.evm.schemas import SignedPermit
from ..schemas.bases import bytes_to_hex, to_hex_bytes
from ..schemas.operations import PaymasterData, UserOperation

logger = logging.getLogger(__name__)


class PaymasterProvider(Protocol):
    async def get_paymaster_data(self, user_operation: UserOperation) -> PaymasterData: ...


class PermitPaymasterProvider:
    """
    Serves pre-encoded permit paymaster data.

    Args:
        paymaster: Token paymaster contract
        paymaster_data: Encoded ``mode ‖ token ‖ amount ‖ signature`` payload
        verification_gas_limit: Paymaster validation gas limit
        post_op_gas_limit: Paymaster ``postOp`` gas limit
    """

    def __init__(
        self,
        paymaster: str,
        paymaster_data: Union[bytes, str],
        *,
        verification_gas_limit: int = 200_000,
        post_op_gas_limit: int = 15_000,
    ) -> None:
        self.paymaster = Web3.to_checksum_address(paymaster)
        self.paymaster_data = to_hex_bytes(paymaster_data)
        self.verification_gas_limit = verification_gas_limit
        self.post_op_gas_limit = post_op_gas_limit

    @classmethod
    def from_permit(
        cls,
        permit: SignedPermit,
        *,
        mode: int = 0,
        verification_gas_limit: int = 200_000,
        post_op_gas_limit: int = 15_000,
        allow_variable_signature: bool = False,
    ) -> "PermitPaymasterProvider":
        data = encode_paymaster_data(
            mode,
            permit.token,
            permit.value,
            permit.signature_bytes,
            allow_variable_signature=allow_variable_signature,
        )
        return cls(
            permit.spender,
            data,
            verification_gas_limit=verification_gas_limit,
            post_op_gas_limit=post_op_gas_limit,
        )

    async def get_paymaster_data(self, user_operation: UserOperation) -> PaymasterData:
        logger.debug("Paymaster data for %s (%d bytes)", user_operation.sender, len(self.paymaster_data))
        return PaymasterData(
            paymaster=self.paymaster,
            paymaster_data=bytes_to_hex(self.paymaster_data),
            paymaster_verification_gas_limit=self.verification_gas_limit,
            paymaster_post_op_gas_limit=self.post_op_gas_limit,
            is_final=True,
        )
