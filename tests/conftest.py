"""
Pytest fixtures for the ADM SDK tests.
"""
import logging

import pytest

from adm_sdk._rate_limited_log import reset_rate_limits
from adm_sdk.address import Network, set_current_network

from test_helpers import FakeChain, create_test_provider, create_test_signer


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Address rendering and log suppression are process-wide."""
    set_current_network(Network.MAINNET)
    reset_rate_limits()
    yield
    set_current_network(Network.MAINNET)
    reset_rate_limits()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def signer():
    return create_test_signer()


@pytest.fixture
def funded_chain(chain, signer):
    """A chain that knows the test signer's account."""
    chain.add_account(signer.address(), sequence=7, balance=10 ** 18)
    return chain


@pytest.fixture
def provider(funded_chain):
    return create_test_provider(funded_chain)


@pytest.fixture
def debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="adm_sdk")
    return caplog
