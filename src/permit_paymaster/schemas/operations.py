"""
ERC-4337 User Operation Schema Models

Models for the user operation lifecycle: the calls it executes, the fee
quote and paymaster data it is assembled from, the operation itself and
the receipt the bundler reports once it is included.

Classes:
    - Call: One call executed by the smart account
    - FeeQuote: maxFeePerGas / maxPriorityFeePerGas pair from the gas oracle
    - PaymasterData: Paymaster fields returned by a paymaster provider
    - GasEstimate: Bundler ``eth_estimateUserOperationGas`` result
    - UserOperation: EntryPoint v0.7/v0.8 user operation (unpacked RPC form)
    - OperationReceipt: Terminal result reported by the bundler

All integer quantities are raw units (wei / gas units); byte fields are
0x-prefixed hex strings so models serialise to JSON without loss.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector
from pydantic import ConfigDict, Field, field_validator
from web3 import Web3

from .bases import CanonicalModel, bytes_to_hex, to_hex_bytes


def _hex_int(value: int) -> str:
    return hex(int(value))


def _parse_quantity(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16) if str(value).startswith("0x") else int(value)


def _abi_type(param: Dict[str, Any]) -> str:
    """Canonical ABI type string for one input, expanding tuples."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


class Call(CanonicalModel):
    """
    A single call executed from the smart account.

    Attributes:
        to: Target contract or recipient address
        value: Native value to send (wei)
        data: ABI-encoded call data (0x-prefixed hex)

    Example::

        call = Call.from_signature(
            usdc_address,
            "transfer(address,uint256)",
            [recipient, 100_000],
        )
    """

    model_config = ConfigDict(frozen=True)

    to: str = Field(..., description="Target address")
    value: int = Field(default=0, ge=0, description="Native value in wei")
    data: str = Field(default="0x", description="ABI-encoded call data")

    @field_validator("to")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"Call target is not an EVM address: {value!r}")
        return Web3.to_checksum_address(value)

    @field_validator("data", mode="before")
    @classmethod
    def _normalise_data(cls, value: Any) -> str:
        return bytes_to_hex(to_hex_bytes(value))

    @classmethod
    def from_signature(cls, to: str, signature: str, args: Sequence[Any], value: int = 0) -> "Call":
        """
        Build a call from a function signature such as ``transfer(address,uint256)``.
        """
        name, _, params = signature.partition("(")
        types = [t.strip() for t in params.rstrip(")").split(",") if t.strip()]
        return cls._encoded(to, name, types, args, value)

    @classmethod
    def _encoded(cls, to: str, name: str, types: List[str], args: Sequence[Any], value: int) -> "Call":
        selector = function_signature_to_4byte_selector(f"{name}({','.join(types)})")
        return cls(to=to, value=value, data=selector + encode(types, list(args)))

    @classmethod
    def from_abi(
        cls,
        to: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        args: Sequence[Any],
        value: int = 0,
    ) -> "Call":
        """
        Build a call by looking ``function_name`` up in ``abi``.

        Raises:
            ValueError: If the ABI has no function with that name and arity.
        """
        for entry in abi:
            if entry.get("type") != "function" or entry.get("name") != function_name:
                continue
            inputs = entry.get("inputs", [])
            if len(inputs) != len(args):
                continue
            types = [_abi_type(i) for i in inputs]
            return cls._encoded(to, function_name, types, args, value)
        raise ValueError(f"Function {function_name!r} with {len(args)} argument(s) not found in ABI")

    @property
    def data_bytes(self) -> bytes:
        return to_hex_bytes(self.data)


class FeeQuote(CanonicalModel):
    """EIP-1559 fee pair used for the user operation."""

    model_config = ConfigDict(frozen=True)

    max_fee_per_gas: int = Field(..., ge=0)
    max_priority_fee_per_gas: int = Field(..., ge=0)


class PaymasterData(CanonicalModel):
    """
    Paymaster fields supplied by a paymaster provider.

    ``is_final=False`` means the data was a stub and the provider must be
    asked again once gas limits are known.
    """

    model_config = ConfigDict(frozen=True)

    paymaster: str
    paymaster_data: str = "0x"
    paymaster_verification_gas_limit: int = Field(default=0, ge=0)
    paymaster_post_op_gas_limit: int = Field(default=0, ge=0)
    is_final: bool = True

    @field_validator("paymaster_data", mode="before")
    @classmethod
    def _normalise_data(cls, value: Any) -> str:
        return bytes_to_hex(to_hex_bytes(value))


class GasEstimate(CanonicalModel):
    """Bundler gas estimate for a user operation."""

    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    paymaster_verification_gas_limit: Optional[int] = None
    paymaster_post_op_gas_limit: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "GasEstimate":
        return cls(
            call_gas_limit=_parse_quantity(data.get("callGasLimit")) or 0,
            verification_gas_limit=_parse_quantity(data.get("verificationGasLimit")) or 0,
            pre_verification_gas=_parse_quantity(data.get("preVerificationGas")) or 0,
            paymaster_verification_gas_limit=_parse_quantity(data.get("paymasterVerificationGasLimit")),
            paymaster_post_op_gas_limit=_parse_quantity(data.get("paymasterPostOpGasLimit")),
        )


class UserOperation(CanonicalModel):
    """
    ERC-4337 user operation (EntryPoint v0.7 / v0.8, unpacked form).

    Frozen: every assembly step returns an updated copy via
    ``model_copy(update=...)``, and the submitted instance is never mutated.
    """

    model_config = ConfigDict(frozen=True)

    sender: str
    nonce: int = Field(..., ge=0)
    factory: Optional[str] = None
    factory_data: str = "0x"
    call_data: str = "0x"
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: str = "0x"
    signature: str = "0x"

    @field_validator("factory_data", "call_data", "paymaster_data", "signature", mode="before")
    @classmethod
    def _normalise_bytes(cls, value: Any) -> str:
        return bytes_to_hex(to_hex_bytes(value))

    def with_fees(self, fees: FeeQuote) -> "UserOperation":
        return self.model_copy(update={
            "max_fee_per_gas": fees.max_fee_per_gas,
            "max_priority_fee_per_gas": fees.max_priority_fee_per_gas,
        })

    def with_paymaster(self, data: PaymasterData) -> "UserOperation":
        return self.model_copy(update={
            "paymaster": Web3.to_checksum_address(data.paymaster),
            "paymaster_data": data.paymaster_data,
            "paymaster_verification_gas_limit": data.paymaster_verification_gas_limit,
            "paymaster_post_op_gas_limit": data.paymaster_post_op_gas_limit,
        })

    def with_gas(self, estimate: GasEstimate) -> "UserOperation":
        update = {
            "call_gas_limit": estimate.call_gas_limit,
            "verification_gas_limit": estimate.verification_gas_limit,
            "pre_verification_gas": estimate.pre_verification_gas,
        }
        # The paymaster's own limits win unless the bundler needs more.
        if estimate.paymaster_verification_gas_limit is not None:
            update["paymaster_verification_gas_limit"] = max(
                self.paymaster_verification_gas_limit, estimate.paymaster_verification_gas_limit
            )
        if estimate.paymaster_post_op_gas_limit is not None:
            update["paymaster_post_op_gas_limit"] = max(
                self.paymaster_post_op_gas_limit, estimate.paymaster_post_op_gas_limit
            )
        return self.model_copy(update=update)

    def with_signature(self, signature: bytes | str) -> "UserOperation":
        # model_copy skips validation, so normalise here
        return self.model_copy(update={"signature": bytes_to_hex(to_hex_bytes(signature))})

    def to_rpc(self) -> Dict[str, Any]:
        """Bundler JSON-RPC representation (EntryPoint v0.7+ field names)."""
        rpc: Dict[str, Any] = {
            "sender": self.sender,
            "nonce": _hex_int(self.nonce),
            "callData": self.call_data,
            "callGasLimit": _hex_int(self.call_gas_limit),
            "verificationGasLimit": _hex_int(self.verification_gas_limit),
            "preVerificationGas": _hex_int(self.pre_verification_gas),
            "maxFeePerGas": _hex_int(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _hex_int(self.max_priority_fee_per_gas),
            "signature": self.signature,
        }
        if self.factory:
            rpc["factory"] = self.factory
            rpc["factoryData"] = self.factory_data
        if self.paymaster:
            rpc.update({
                "paymaster": self.paymaster,
                "paymasterVerificationGasLimit": _hex_int(self.paymaster_verification_gas_limit),
                "paymasterPostOpGasLimit": _hex_int(self.paymaster_post_op_gas_limit),
                "paymasterData": self.paymaster_data,
            })
        return rpc

    def to_packed(self) -> Tuple[str, int, bytes, bytes, bytes, int, bytes, bytes, bytes]:
        """
        PackedUserOperation tuple as the EntryPoint consumes it.

        - initCode = factory ‖ factoryData (empty when already deployed)
        - accountGasLimits = uint128 verificationGasLimit ‖ uint128 callGasLimit
        - gasFees = uint128 maxPriorityFeePerGas ‖ uint128 maxFeePerGas
        - paymasterAndData = paymaster ‖ uint128 verification gas ‖ uint128 post-op gas ‖ paymasterData
        """
        init_code = b""
        if self.factory:
            init_code = to_hex_bytes(self.factory) + to_hex_bytes(self.factory_data)

        account_gas_limits = (
            self.verification_gas_limit.to_bytes(16, "big") + self.call_gas_limit.to_bytes(16, "big")
        )
        gas_fees = (
            self.max_priority_fee_per_gas.to_bytes(16, "big") + self.max_fee_per_gas.to_bytes(16, "big")
        )

        paymaster_and_data = b""
        if self.paymaster:
            paymaster_and_data = (
                to_hex_bytes(self.paymaster)
                + self.paymaster_verification_gas_limit.to_bytes(16, "big")
                + self.paymaster_post_op_gas_limit.to_bytes(16, "big")
                + to_hex_bytes(self.paymaster_data)
            )

        return (
            Web3.to_checksum_address(self.sender),
            self.nonce,
            init_code,
            to_hex_bytes(self.call_data),
            account_gas_limits,
            self.pre_verification_gas,
            gas_fees,
            paymaster_and_data,
            to_hex_bytes(self.signature),
        )


class OperationReceipt(CanonicalModel):
    """
    Terminal result of a user operation reported by the bundler.

    Attributes:
        user_operation_hash: Hash returned by ``eth_sendUserOperation``
        transaction_hash: Hash of the bundle transaction that included it
        success: Whether the operation's execution succeeded
        reason: Revert reason, when provided
        actual_gas_cost: Gas cost charged (wei)
        actual_gas_used: Gas units used
        block_number: Inclusion block
        logs: Raw log entries emitted by the operation
    """

    user_operation_hash: str
    transaction_hash: Optional[str] = None
    success: bool
    reason: Optional[str] = None
    actual_gas_cost: Optional[int] = None
    actual_gas_used: Optional[int] = None
    block_number: Optional[int] = None
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "OperationReceipt":
        tx_receipt = data.get("receipt") or {}
        reason = data.get("reason")
        return cls(
            user_operation_hash=data.get("userOpHash", ""),
            transaction_hash=tx_receipt.get("transactionHash"),
            success=bool(data.get("success")),
            reason=reason if reason not in ("", "0x") else None,
            actual_gas_cost=_parse_quantity(data.get("actualGasCost")),
            actual_gas_used=_parse_quantity(data.get("actualGasUsed")),
            block_number=_parse_quantity(tx_receipt.get("blockNumber")),
            logs=list(data.get("logs") or []),
        )
