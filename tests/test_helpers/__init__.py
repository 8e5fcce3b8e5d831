"""
Shared constants and builders for the ADM SDK tests.
"""
from .chain import (
    ACTOR_STATE_KEY_B64, ACTOR_STATE_VALUE_B64, CALL_REVERT_INFO, CALL_REVERT_VALUE_B64,
    TEST_CHAIN_ID, TEST_CID, TEST_ETH_ADDRESS, TEST_PRIV_KEY, TEST_RPC_URL, FakeChain,
    abci_response, actor_state_value, call_value, commit_result, rpc_result,
)
from .provider_creator import create_test_provider, create_test_signer

__all__ = [
    "ACTOR_STATE_KEY_B64", "ACTOR_STATE_VALUE_B64", "CALL_REVERT_INFO", "CALL_REVERT_VALUE_B64",
    "TEST_CHAIN_ID", "TEST_CID", "TEST_ETH_ADDRESS", "TEST_PRIV_KEY", "TEST_RPC_URL", "FakeChain",
    "abci_response", "actor_state_value", "call_value", "commit_result", "rpc_result",
    "create_test_provider", "create_test_signer",
]
