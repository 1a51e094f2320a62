"""
Runtime configuration for the permit paymaster flow.

Settings are plain pydantic models so they can be built explicitly in code
(tests, services) or loaded from the process environment / a ``.env`` file
with ``PaymasterSettings.from_env()``.

Environment Variables:
    - PAYMASTER_CHAIN_ID: EVM chain id (default 421614, Arbitrum Sepolia)
    - PAYMASTER_RPC_URL: JSON-RPC endpoint (defaults to the chain's public RPC)
    - PAYMASTER_BUNDLER_URL: ERC-4337 bundler endpoint (defaults to Pimlico public)
    - PAYMASTER_ADDRESS: token paymaster contract
    - PAYMASTER_TOKEN_ADDRESS: permit token (USDC) contract
    - PAYMASTER_ENTRY_POINT: EntryPoint contract
    - PAYMASTER_ACCOUNT_FACTORY: smart account CREATE2 factory
    - PAYMASTER_ACCOUNT_IMPLEMENTATION: smart account implementation
    - PAYMASTER_PROXY_CREATION_CODE: proxy creation bytecode (hex)
    - PAYMASTER_ACCOUNT_VARIANT: "hybrid" (default) or "multisig"
    - PAYMASTER_ACCOUNT_DEPLOY_ARGS: initializer arguments as a JSON list
    - PAYMASTER_ACCOUNT_SALT: CREATE2 salt (hex)
    - PAYMASTER_PERMIT_AMOUNT: permit value in smallest units (default 10_000_000)
    - PAYMASTER_PERMIT_SIGNER: "owner" or "account"
    - PAYMASTER_FEE_TIER: gas price oracle tier ("slow", "standard", "fast")
    - PAYMASTER_RECEIPT_TIMEOUT / PAYMASTER_POLL_INTERVAL: seconds
"""

import json
import os
from enum import Enum
from typing import Any, List, Literal, Optional, Union

import dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from web3 import Web3

from .adapters.evm.constants import (
    DEFAULT_CHAIN_ID,
    ENTRY_POINT_V08,
    get_chain_config,
    get_public_bundler_url,
)
from .adapters.evm.smart_account import ImplementationVariant
from .engine.exceptions import ConfigurationError


class PermitSignerChoice(str, Enum):
    """Which identity signs the token permit.

    ``OWNER`` signs with the raw owner key (permit owner = owner EOA).
    ``ACCOUNT`` signs on behalf of the smart account through a delegated
    signer that must declare typed-data support.
    """
    OWNER = "owner"
    ACCOUNT = "account"


class SmartAccountSettings(BaseModel):
    """CREATE2 deployment parameters for the smart account."""
    factory: Optional[str] = Field(default=None, description="CREATE2 deployer (SimpleFactory)")
    implementation: Optional[str] = Field(default=None, description="Account implementation behind the proxy")
    proxy_creation_code: Optional[str] = Field(default=None, description="ERC-1967 proxy creation bytecode (hex)")
    variant: ImplementationVariant = Field(default=ImplementationVariant.HYBRID, description="Initializer flavour")
    deploy_args: Optional[List[Any]] = Field(
        default=None, description="Initializer arguments; single-owner defaults when unset",
    )
    deploy_salt: Union[int, str] = Field(default="0x", description="CREATE2 salt, left-padded to bytes32")

    @field_validator("factory", "implementation")
    @classmethod
    def _checksum(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not Web3.is_address(value):
            raise ValueError(f"not an EVM address: {value!r}")
        return Web3.to_checksum_address(value)


class PaymasterSettings(BaseModel):
    """Configuration for one deployment of the paymaster flow."""

    chain_id: int = Field(default=DEFAULT_CHAIN_ID, ge=1)
    rpc_url: str
    bundler_url: str
    paymaster_address: str
    token_address: str
    entry_point: str = Field(default=ENTRY_POINT_V08)
    paymaster_mode: int = Field(default=0, ge=0, le=255, description="Paymaster data mode byte")
    permit_amount: int = Field(default=10_000_000, ge=0, description="Permit value in smallest units")
    permit_signer: PermitSignerChoice = Field(default=PermitSignerChoice.OWNER)
    paymaster_verification_gas_limit: int = Field(default=200_000, ge=0)
    paymaster_post_op_gas_limit: int = Field(default=15_000, ge=0)
    fee_tier: Literal["slow", "standard", "fast"] = "standard"
    receipt_timeout: float = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=2.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    account: SmartAccountSettings = Field(default_factory=SmartAccountSettings)

    @field_validator("paymaster_address", "token_address", "entry_point")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"not an EVM address: {value!r}")
        return Web3.to_checksum_address(value)

    @classmethod
    def for_chain(cls, chain_id: int = DEFAULT_CHAIN_ID, **overrides) -> "PaymasterSettings":
        """
        Build settings from the built-in network table.

        Raises:
            ConfigurationError: If the chain is unknown and no explicit
                                addresses were supplied, or a value is invalid.
        """
        chain = get_chain_config(chain_id)
        defaults = {"chain_id": chain_id}
        if chain is not None:
            usdc = chain.assets.get("USDC")
            defaults.update(
                rpc_url=chain.public_rpc_url,
                bundler_url=get_public_bundler_url(chain_id),
                paymaster_address=chain.paymaster,
                entry_point=chain.entry_point,
            )
            if usdc is not None:
                defaults["token_address"] = usdc.address
        defaults.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**defaults)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid paymaster settings for chain {chain_id}: {e}") from e

    @classmethod
    def from_env(cls) -> "PaymasterSettings":
        """Load settings from the environment (after reading ``.env``)."""
        dotenv.load_dotenv()
        try:
            chain_id = int(os.getenv("PAYMASTER_CHAIN_ID", DEFAULT_CHAIN_ID))
        except ValueError as e:
            raise ConfigurationError("PAYMASTER_CHAIN_ID must be an integer") from e

        try:
            deploy_args = os.getenv("PAYMASTER_ACCOUNT_DEPLOY_ARGS")
            account = SmartAccountSettings(
                factory=os.getenv("PAYMASTER_ACCOUNT_FACTORY") or None,
                implementation=os.getenv("PAYMASTER_ACCOUNT_IMPLEMENTATION") or None,
                proxy_creation_code=os.getenv("PAYMASTER_PROXY_CREATION_CODE") or None,
                variant=os.getenv("PAYMASTER_ACCOUNT_VARIANT") or ImplementationVariant.HYBRID,
                deploy_args=json.loads(deploy_args) if deploy_args else None,
                deploy_salt=os.getenv("PAYMASTER_ACCOUNT_SALT") or "0x",
            )
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid smart account settings: {e}") from e
        return cls.for_chain(
            chain_id,
            rpc_url=os.getenv("PAYMASTER_RPC_URL"),
            bundler_url=os.getenv("PAYMASTER_BUNDLER_URL"),
            paymaster_address=os.getenv("PAYMASTER_ADDRESS"),
            token_address=os.getenv("PAYMASTER_TOKEN_ADDRESS"),
            entry_point=os.getenv("PAYMASTER_ENTRY_POINT"),
            permit_amount=os.getenv("PAYMASTER_PERMIT_AMOUNT"),
            permit_signer=os.getenv("PAYMASTER_PERMIT_SIGNER"),
            fee_tier=os.getenv("PAYMASTER_FEE_TIER"),
            receipt_timeout=os.getenv("PAYMASTER_RECEIPT_TIMEOUT"),
            poll_interval=os.getenv("PAYMASTER_POLL_INTERVAL"),
            account=account,
        )
