"""
Tests for counterfactual smart account derivation and ERC-7579 call encoding.
"""
import pytest
from eth_abi import decode, encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from permit_paymaster.adapters.evm.signers import RawKeySigner
from permit_paymaster.adapters.evm.smart_account import (
    BATCH_CALL_MODE,
    SINGLE_CALL_MODE,
    ImplementationVariant,
    encode_execute,
    normalise_salt,
    resolve_smart_account,
)
from permit_paymaster.adapters.evm.constants import STUB_ECDSA_SIGNATURE
from permit_paymaster.engine.exceptions import AccountResolutionFailed, ChainQueryFailed
from permit_paymaster.schemas.bases import to_hex_bytes
from permit_paymaster.schemas.operations import Call

from mocks import (
    MOCK_FACTORY,
    MOCK_IMPLEMENTATION,
    MOCK_OTHER_ADDRESS,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_PROXY_CREATION_CODE,
    MOCK_RECIPIENT,
    MOCK_USDC,
    create_mock_chain,
)


def _expected_hybrid_address(owner: str, salt: bytes = bytes(32)) -> str:
    initializer = function_signature_to_4byte_selector(
        "initialize(address,string[],uint256[],uint256[])"
    ) + encode(["address", "string[]", "uint256[]", "uint256[]"], [owner, [], [], []])
    bytecode = bytes.fromhex(MOCK_PROXY_CREATION_CODE[2:]) + encode(
        ["address", "bytes"], [MOCK_IMPLEMENTATION, initializer]
    )
    digest = keccak(b"\xff" + bytes.fromhex(MOCK_FACTORY[2:]) + salt + keccak(bytecode))
    return to_checksum_address("0x" + digest[12:].hex())


async def _resolve(chain=None, **kwargs):
    owner = RawKeySigner.from_key(MOCK_OWNER_PRIVATE_KEY)
    params = dict(
        factory=MOCK_FACTORY,
        implementation_address=MOCK_IMPLEMENTATION,
        proxy_creation_code=MOCK_PROXY_CREATION_CODE,
    )
    params.update(kwargs)
    return await resolve_smart_account(owner, chain or create_mock_chain(), **params)


@pytest.mark.asyncio
async def test_address_is_create2_of_proxy_bytecode():
    account = await _resolve()

    assert account.address == _expected_hybrid_address(MOCK_OWNER_ADDRESS)
    assert account.owner == MOCK_OWNER_ADDRESS
    assert account.implementation is ImplementationVariant.HYBRID
    assert account.deployed is False


@pytest.mark.asyncio
async def test_resolution_is_deterministic():
    first = await _resolve()
    second = await _resolve()

    assert first.address == second.address
    assert first.factory_data == second.factory_data


@pytest.mark.asyncio
@pytest.mark.parametrize("salt", ["0x", "0x0", "0x00", 0, bytes(32), "0x" + "00" * 32])
async def test_zero_salt_spellings_are_equivalent(salt):
    account = await _resolve(deploy_salt=salt)
    assert account.address == _expected_hybrid_address(MOCK_OWNER_ADDRESS)


@pytest.mark.asyncio
async def test_salt_changes_address():
    zero = await _resolve()
    one = await _resolve(deploy_salt=1)

    assert one.address != zero.address
    assert one.address == _expected_hybrid_address(MOCK_OWNER_ADDRESS, normalise_salt(1))


@pytest.mark.asyncio
async def test_factory_data_is_deploy_calldata():
    account = await _resolve()
    data = bytes.fromhex(account.factory_data[2:])

    assert data[:4] == function_signature_to_4byte_selector("deploy(bytes,bytes32)")
    bytecode, salt = decode(["bytes", "bytes32"], data[4:])
    assert bytecode.startswith(bytes.fromhex(MOCK_PROXY_CREATION_CODE[2:]))
    assert salt == bytes(32)
    assert account.init_factory == MOCK_FACTORY
    assert account.init_factory_data == account.factory_data


@pytest.mark.asyncio
async def test_deployed_account_carries_no_init_code():
    chain = create_mock_chain(code=b"\x60\x80")
    account = await _resolve(chain)

    assert account.deployed is True
    assert account.init_factory is None
    assert account.init_factory_data == "0x"
    chain.get_code.assert_awaited_once_with(account.address)


@pytest.mark.asyncio
async def test_multisig_variant_uses_its_initializer():
    hybrid = await _resolve()
    multisig = await _resolve(implementation=ImplementationVariant.MULTISIG)

    assert multisig.deploy_args == ([MOCK_OWNER_ADDRESS], 1)
    assert multisig.address != hybrid.address

    with pytest.raises(AccountResolutionFailed):
        await _resolve(implementation=ImplementationVariant.MULTISIG, deploy_args=[MOCK_OTHER_ADDRESS])


@pytest.mark.asyncio
async def test_code_lookup_failure_fails_resolution():
    chain = create_mock_chain()
    chain.get_code.side_effect = ChainQueryFailed("connection refused", method="eth_getCode")

    with pytest.raises(AccountResolutionFailed) as exc_info:
        await _resolve(chain)
    assert exc_info.value.stage == "resolving_account"


@pytest.mark.asyncio
async def test_missing_deployment_parameters_fail_resolution():
    with pytest.raises(AccountResolutionFailed):
        await _resolve(factory=None)


@pytest.mark.asyncio
async def test_user_operation_hash_is_signed_by_owner():
    account = await _resolve()
    op_hash = b"\x42" * 32

    signature = await account.sign_user_operation_hash(op_hash)
    assert signature == bytes(Account.unsafe_sign_hash(op_hash, MOCK_OWNER_PRIVATE_KEY).signature)
    assert account.stub_signature() == STUB_ECDSA_SIGNATURE


def test_stub_signature_is_ecdsa_sized():
    stub = to_hex_bytes(STUB_ECDSA_SIGNATURE)
    assert len(stub) == 65
    assert stub[-1] == 0x1c


def test_single_call_uses_packed_execution():
    call = Call.from_signature(MOCK_USDC, "transfer(address,uint256)", [MOCK_RECIPIENT, 100_000])
    data = encode_execute([call])

    assert data[:4] == function_signature_to_4byte_selector("execute(bytes32,bytes)")
    mode, execution = decode(["bytes32", "bytes"], data[4:])
    assert mode == SINGLE_CALL_MODE
    assert execution[:20] == bytes.fromhex(MOCK_USDC[2:])
    assert int.from_bytes(execution[20:52], "big") == 0
    assert execution[52:] == call.data_bytes


def test_batch_calls_use_abi_encoded_executions():
    calls = [
        Call(to=MOCK_RECIPIENT, value=5),
        Call.from_signature(MOCK_USDC, "transfer(address,uint256)", [MOCK_RECIPIENT, 1]),
    ]
    mode, execution = decode(["bytes32", "bytes"], encode_execute(calls)[4:])

    assert mode == BATCH_CALL_MODE
    (decoded,) = decode(["(address,uint256,bytes)[]"], execution)
    assert [(to.lower(), value) for to, value, _ in decoded] == [
        (MOCK_RECIPIENT.lower(), 5),
        (MOCK_USDC.lower(), 0),
    ]
    assert decoded[1][2] == calls[1].data_bytes


def test_empty_call_list_is_rejected():
    with pytest.raises(ValueError):
        encode_execute([])
