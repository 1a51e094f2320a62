"""
EVM Chain Configuration Management

Provides the network table the paymaster flow runs against, protocol
constants (EntryPoint, ERC-1271, ERC-6492) and the canonical conversions
between human-readable token amounts and smallest-unit values.
"""

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from pydantic import BaseModel, Field

#: Maximum uint256, used as the "never expires" permit deadline.
MAX_UINT256: int = 2**256 - 1

#: Magic value returned by a valid ERC-1271 ``isValidSignature`` call.
ERC1271_MAGIC_VALUE: bytes = b"\x16\x26\xba\x7e"

#: 32-byte suffix marking an ERC-6492 wrapped signature.
ERC6492_MAGIC_SUFFIX: bytes = bytes.fromhex("64926492" * 8)

#: EntryPoint v0.8 singleton (same address on every chain).
ENTRY_POINT_V08: str = "0x4337084D9E255Ff0702461CF8895CE9E3b5Ff108"

#: EntryPoint v0.7 singleton.
ENTRY_POINT_V07: str = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

#: Dummy ECDSA signature handed to the bundler for gas estimation. Well-formed
#: (valid s / v) so account validation runs its full code path.
STUB_ECDSA_SIGNATURE: str = (
    "0xfffffffffffffffffffffffffffffff0000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)

#: Public Pimlico bundler endpoint, keyed by chain id.
PUBLIC_BUNDLER_URL_TEMPLATE: str = "https://public.pimlico.io/v2/{chain_id}/rpc"


class EvmAssetConfig(BaseModel):
    """Token asset configuration."""
    symbol: str
    address: str = Field(..., description="Token contract address")
    name: str = Field(..., description="Token name")
    decimals: int = Field(..., description="Token decimals")
    version: str = Field(..., description="EIP712 permit version")


class EvmChainConfig(BaseModel):
    """EVM network configuration for the paymaster flow."""
    caip2: str
    chain_id: int
    name: str
    public_rpc_url: str = Field(..., description="Public RPC endpoint")
    explorer_url: str = Field(..., description="Block explorer URL")
    entry_point: str = Field(default=ENTRY_POINT_V08, description="EntryPoint the paymaster is bound to")
    paymaster: str = Field(..., description="Token paymaster contract address")
    assets: Dict[str, EvmAssetConfig] = Field(default_factory=dict, description="Supported assets")


# Circle's permit paymaster v0.8 shares one address across its testnets.
_EVM_CHAINS_DATA: Dict = {
    "eip155:421614": {
        "name": "Arbitrum Sepolia",
        "public_rpc_url": "https://sepolia-rollup.arbitrum.io/rpc",
        "explorer_url": "https://sepolia.arbiscan.io",
        "paymaster": "0x3BA9A96eE3eFf3A69E2B18886AcF52027EFF8966",
        "assets": {
            "USDC": {
                "address": "0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d",
                "name": "USD Coin",
                "decimals": 6,
                "version": "2",
            }
        },
    },
    "eip155:84532": {
        "name": "Base Sepolia",
        "public_rpc_url": "https://sepolia.base.org",
        "explorer_url": "https://sepolia.basescan.org",
        "paymaster": "0x3BA9A96eE3eFf3A69E2B18886AcF52027EFF8966",
        "assets": {
            "USDC": {
                "address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
                "name": "USDC",
                "decimals": 6,
                "version": "2",
            }
        },
    },
    "eip155:11155111": {
        "name": "Sepolia Testnet",
        "public_rpc_url": "https://rpc.sepolia.org",
        "explorer_url": "https://sepolia.etherscan.io",
        "paymaster": "0x3BA9A96eE3eFf3A69E2B18886AcF52027EFF8966",
        "assets": {
            "USDC": {
                "address": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
                "name": "USDC",
                "decimals": 6,
                "version": "2",
            }
        },
    },
}

DEFAULT_CHAIN_ID: int = 421614


def get_chain_config(chain_id: int) -> Optional[EvmChainConfig]:
    """
    Look up the network table entry for ``chain_id``.

    Returns:
        EvmChainConfig, or None when the chain is not in the table.
    """
    caip2 = f"eip155:{chain_id}"
    raw = _EVM_CHAINS_DATA.get(caip2)
    if raw is None:
        return None
    assets = {
        symbol: EvmAssetConfig(symbol=symbol, **asset)
        for symbol, asset in raw.get("assets", {}).items()
    }
    return EvmChainConfig(
        caip2=caip2,
        chain_id=chain_id,
        name=raw["name"],
        public_rpc_url=raw["public_rpc_url"],
        explorer_url=raw["explorer_url"],
        paymaster=raw["paymaster"],
        assets=assets,
    )


def get_public_bundler_url(chain_id: int) -> str:
    return PUBLIC_BUNDLER_URL_TEMPLATE.format(chain_id=chain_id)


def amount_to_value(*, amount: float | int | str | Decimal, decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. "0.1" for USDC). Accepts float/int/str/Decimal.
        decimals: Token decimals (e.g. 6 for USDC).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() avoids binary-float artefacts (0.1 -> 0.1000000000000000055...)
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    scaled = dec_amount * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: int | str | Decimal, decimals: int) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `Decimal` amount.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if dec_value < 0:
        raise ValueError("value must be non-negative")
    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    return dec_value / (Decimal(10) ** decimals)
