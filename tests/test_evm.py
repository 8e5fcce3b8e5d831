"""
Tests for deposits and withdrawals through the parent-network gateway.
"""
from unittest.mock import MagicMock

import pytest
from eth_abi import decode as abi_decode
from eth_account import Account as EthAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from adm_sdk.account import Account
from adm_sdk.address import Address
from adm_sdk.config import ProviderConfig
from adm_sdk.evm import (
    FUND_SIGNATURE, RELEASE_SIGNATURE, EvmClient, SubnetID, base_fee_surged, estimate_priority_fee,
    fvm_address,
)
from adm_sdk.exceptions import AdmError, ExecutionFailed, NetworkFailure, PreCheckFailed
from adm_sdk.provider import Provider
from adm_sdk.signer import LocalSigner, VoidSigner

from test_helpers import TEST_CHAIN_ID, TEST_ETH_ADDRESS, TEST_PRIV_KEY, TEST_RPC_URL

GATEWAY = Web3.to_checksum_address("0x" + "77" * 20)
SUBNET_ACTOR = Web3.to_checksum_address("0x" + "5a" * 20)
TX_HASH = b"\xab" * 32


class RecordingSigner(LocalSigner):
    """LocalSigner that remembers the EVM transactions it signed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.evm_transactions = []

    def sign_evm_transaction(self, transaction):
        self.evm_transactions.append(dict(transaction))
        return super().sign_evm_transaction(transaction)


@pytest.fixture
def evm_signer():
    return RecordingSigner(TEST_PRIV_KEY, chain_id=TEST_CHAIN_ID)


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.get_block.return_value = {"baseFeePerGas": 100}
    w3.eth.fee_history.return_value = {"reward": [[5], [7], [6]]}
    w3.eth.get_transaction_count.return_value = 3
    w3.eth.estimate_gas.return_value = 50_000
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {
        "transactionHash": TX_HASH, "blockNumber": 9, "gasUsed": 42_000, "status": 1,
    }
    return w3


@pytest.fixture
def client(w3):
    return EvmClient(TEST_RPC_URL, w3=w3, gateway=GATEWAY, chain_id=TEST_CHAIN_ID)


def _calldata(tx):
    return bytes.fromhex(tx["data"][2:])


def test_deposit_calls_gateway_fund(client, w3, evm_signer):
    subnet = f"/r314159/{SUBNET_ACTOR}"
    receipt = client.deposit(evm_signer, evm_signer.address(), 10 ** 18, subnet)

    assert receipt.tx_hash == "0x" + "ab" * 32
    assert receipt.block_number == 9
    assert receipt.gas_used == 42_000

    tx = evm_signer.evm_transactions[0]
    assert tx["to"] == GATEWAY
    assert tx["value"] == 10 ** 18
    assert tx["nonce"] == 3
    assert tx["chainId"] == TEST_CHAIN_ID
    assert tx["gas"] == 50_000
    assert "from" not in tx

    data = _calldata(tx)
    assert data[:4] == Web3.keccak(text=FUND_SIGNATURE)[:4]
    (root, route), (addr_type, payload) = abi_decode(["(uint64,address[])", "(uint8,bytes)"], data[4:])
    assert root == 314159
    assert [a.lower() for a in route] == [SUBNET_ACTOR.lower()]
    assert addr_type == 4
    namespace, length, buffer = abi_decode(["(uint64,uint128,bytes)"], payload)[0]
    assert (namespace, length) == (10, 20)
    assert buffer == bytes.fromhex(evm_signer.eth_address[2:])

    raw = w3.eth.send_raw_transaction.call_args[0][0]
    assert EthAccount.recover_transaction(raw) == evm_signer.eth_address
    w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=120.0)


def test_deposit_uses_configured_subnet(w3, evm_signer):
    client = EvmClient(TEST_RPC_URL, w3=w3, gateway=GATEWAY, subnet="/r42", chain_id=TEST_CHAIN_ID)
    client.deposit(evm_signer, evm_signer.address(), 1)
    (root, route), _ = abi_decode(
        ["(uint64,address[])", "(uint8,bytes)"], _calldata(evm_signer.evm_transactions[0])[4:]
    )
    assert (root, list(route)) == (42, [])


def test_deposit_without_subnet(client, evm_signer):
    with pytest.raises(AdmError, match="no subnet"):
        client.deposit(evm_signer, evm_signer.address(), 1)


def test_withdraw_calls_gateway_release(client, evm_signer):
    to = Address.new_id(1001)
    client.withdraw(evm_signer, to, 5)

    tx = evm_signer.evm_transactions[0]
    data = _calldata(tx)
    assert data[:4] == Web3.keccak(text=RELEASE_SIGNATURE)[:4]
    ((addr_type, payload),) = abi_decode(["(uint8,bytes)"], data[4:])
    assert (addr_type, payload) == (0, to.payload)
    assert tx["value"] == 5


def test_fees_follow_base_fee_and_rewards(client, evm_signer):
    client.withdraw(evm_signer, evm_signer.address(), 1)
    tx = evm_signer.evm_transactions[0]
    assert tx["maxPriorityFeePerGas"] == 6
    assert tx["maxFeePerGas"] == 200


def test_chain_id_read_from_node(w3, evm_signer):
    w3.eth.chain_id = 99
    EvmClient(TEST_RPC_URL, w3=w3, gateway=GATEWAY).withdraw(evm_signer, evm_signer.address(), 1)
    assert evm_signer.evm_transactions[0]["chainId"] == 99


def test_reverted_transaction(client, w3, evm_signer):
    w3.eth.wait_for_transaction_receipt.return_value = {
        "transactionHash": TX_HASH, "blockNumber": 9, "gasUsed": 42_000, "status": 0,
    }
    with pytest.raises(ExecutionFailed) as exc_info:
        client.withdraw(evm_signer, evm_signer.address(), 1)
    assert exc_info.value.tx_hash == "0x" + "ab" * 32


def test_gateway_rejection_is_precheck(client, w3, evm_signer):
    w3.eth.estimate_gas.side_effect = ContractLogicError("execution reverted")
    with pytest.raises(PreCheckFailed):
        client.withdraw(evm_signer, evm_signer.address(), 1)
    w3.eth.send_raw_transaction.assert_not_called()


def test_receipt_timeout_is_network_failure(client, w3, evm_signer):
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
    with pytest.raises(NetworkFailure, match="no receipt after"):
        client.withdraw(evm_signer, evm_signer.address(), 1)


def test_requires_gateway_and_key(w3, evm_signer):
    with pytest.raises(AdmError, match="no gateway"):
        EvmClient(TEST_RPC_URL, w3=w3).withdraw(evm_signer, evm_signer.address(), 1)

    client = EvmClient(TEST_RPC_URL, w3=w3, gateway=GATEWAY, chain_id=1)
    with pytest.raises(AdmError, match="cannot sign"):
        client.withdraw(VoidSigner(TEST_ETH_ADDRESS), TEST_ETH_ADDRESS, 1)
    with pytest.raises(ValueError):
        client.withdraw(evm_signer, evm_signer.address(), -1)
    w3.eth.send_raw_transaction.assert_not_called()


def test_account_helpers_delegate():
    evm = MagicMock()
    signer = LocalSigner(TEST_PRIV_KEY)
    Account.deposit(evm, signer, TEST_ETH_ADDRESS, 5, "/r1")
    Account.withdraw(evm, signer, TEST_ETH_ADDRESS, 6)
    evm.deposit.assert_called_once_with(signer, TEST_ETH_ADDRESS, 5, "/r1")
    evm.withdraw.assert_called_once_with(signer, TEST_ETH_ADDRESS, 6)


def test_provider_builds_client_from_config(chain):
    config = ProviderConfig(
        rpc_url=TEST_RPC_URL, chain_id=TEST_CHAIN_ID, evm_rpc_url="http://127.0.0.1:8545",
        evm_gateway=GATEWAY, subnet_id="/r314159",
    )
    provider = Provider(config=config, transport=chain)
    assert provider.evm.gateway == GATEWAY
    assert provider.evm.subnet == SubnetID(root=314159)


def test_subnet_id_parsing():
    child = Address.from_eth(SUBNET_ACTOR)
    subnet = SubnetID.parse(f"/r314159/{child}")
    assert subnet.root == 314159
    assert subnet.route == [SUBNET_ACTOR]
    assert str(subnet) == f"/r314159/{child}"
    assert SubnetID.parse("/r1").route == []
    with pytest.raises(ValueError):
        SubnetID.parse("/x1/abc")


def test_fvm_address_of_id():
    assert fvm_address(Address.new_id(7)) == (0, Address.new_id(7).payload)


@pytest.mark.parametrize("rewards, expected", [
    ([], 0),
    ([[0], [0]], 0),
    ([[9]], 9),
    ([[5], [7], [6]], 6),
    ([[1], [1], [10], [11]], 10),
    ([[1], [2], [3], [30]], 30),
])
def test_estimate_priority_fee(rewards, expected):
    assert estimate_priority_fee(rewards) == expected


@pytest.mark.parametrize("base_fee, expected", [
    (100, 200),
    (50_000_000_000, 80_000_000_000),
    (150_000_000_000, 210_000_000_000),
    (300_000_000_000, 360_000_000_000),
])
def test_base_fee_surged(base_fee, expected):
    assert base_fee_surged(base_fee) == expected
