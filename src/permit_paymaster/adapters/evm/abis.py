"""
Contract ABI Module

Simplified ABI fragments for the contracts the paymaster flow touches:
EIP-2612 permit tokens (USDC), the ERC-4337 EntryPoint, ERC-1271 wallets
and the smart account factory.

Usage:
    from .abis import get_eip2612_abi, get_entry_point_abi

    token = w3.eth.contract(address=token_address, abi=get_eip2612_abi())
    nonce = await token.functions.nonces(owner).call()
"""

from typing import Any, Dict, List

#: PackedUserOperation struct as consumed by EntryPoint v0.7 / v0.8.
PACKED_USER_OPERATION_COMPONENTS: List[Dict[str, str]] = [
    {"name": "sender", "type": "address"},
    {"name": "nonce", "type": "uint256"},
    {"name": "initCode", "type": "bytes"},
    {"name": "callData", "type": "bytes"},
    {"name": "accountGasLimits", "type": "bytes32"},
    {"name": "preVerificationGas", "type": "uint256"},
    {"name": "gasFees", "type": "bytes32"},
    {"name": "paymasterAndData", "type": "bytes"},
    {"name": "signature", "type": "bytes"},
]


def get_erc20_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for the ERC20 read functions and ``transfer``.

    Returns:
        List[Dict[str, Any]]: ABI for name, decimals, balanceOf and transfer
    """
    return [
        {
            "name": "name",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "string"}],
        },
        {
            "name": "decimals",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "uint8"}],
        },
        {
            "name": "balanceOf",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        },
        {
            "name": "transfer",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
        },
    ]


def get_eip2612_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for an EIP-2612 permit token (ERC20 + version/nonces/permit).

    Returns:
        List[Dict[str, Any]]: ERC20 fragments extended with the permit extension

    Example:
        abi = get_eip2612_abi()
        contract = w3.eth.contract(address=token_address, abi=abi)
        version = await contract.functions.version().call()
    """
    return get_erc20_abi() + [
        {
            "name": "version",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "string"}],
        },
        {
            "name": "nonces",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "owner", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        },
        {
            "name": "permit",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "outputs": [],
        },
    ]


def get_entry_point_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for the EntryPoint nonce and user-operation hash views.

    Returns:
        List[Dict[str, Any]]: ABI for ``getNonce`` and ``getUserOpHash``
    """
    return [
        {
            "name": "getNonce",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {"name": "sender", "type": "address"},
                {"name": "key", "type": "uint192"},
            ],
            "outputs": [{"name": "nonce", "type": "uint256"}],
        },
        {
            "name": "getUserOpHash",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {
                    "name": "userOp",
                    "type": "tuple",
                    "components": PACKED_USER_OPERATION_COMPONENTS,
                }
            ],
            "outputs": [{"name": "", "type": "bytes32"}],
        },
    ]


def get_erc1271_abi() -> List[Dict[str, Any]]:
    """Get ABI for ERC-1271 ``isValidSignature(bytes32,bytes)``."""
    return [
        {
            "name": "isValidSignature",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {"name": "hash", "type": "bytes32"},
                {"name": "signature", "type": "bytes"},
            ],
            "outputs": [{"name": "magicValue", "type": "bytes4"}],
        }
    ]


def get_account_factory_abi() -> List[Dict[str, Any]]:
    """Get ABI for the CREATE2 account factory ``deploy(bytes,bytes32)``."""
    return [
        {
            "name": "deploy",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "_bytecode", "type": "bytes"},
                {"name": "_salt", "type": "bytes32"},
            ],
            "outputs": [{"name": "addr_", "type": "address"}],
        }
    ]
