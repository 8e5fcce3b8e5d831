"""
Tests for gas field resolution.
"""
from unittest.mock import MagicMock

import pytest

from adm_sdk.address import Address
from adm_sdk.exceptions import ExecutionFailed
from adm_sdk.gas import GasPolicy
from adm_sdk.height import Height
from adm_sdk.models import GasEstimate, GasParams, QueryResponse, StateParams, UnsignedMessage

from test_helpers import TEST_ETH_ADDRESS


@pytest.fixture
def queries():
    queries = MagicMock()
    queries.estimate_gas.return_value = QueryResponse(
        height=1, value=GasEstimate(exit_code=0, info="", gas_limit=1000)
    )
    queries.state_params.return_value = QueryResponse(
        height=1, value=StateParams(base_fee=150, chain_id=1)
    )
    return queries


@pytest.fixture
def message():
    return UnsignedMessage(
        to=Address.new_id(1001), from_address=Address.from_eth(TEST_ETH_ADDRESS), sequence=3, method_num=2,
    )


def test_all_fields_estimated(queries, message):
    gas = GasPolicy(queries).resolve(message)
    assert gas.gas_limit == 1250
    assert gas.gas_fee_cap == 150
    assert gas.gas_premium == 0
    queries.estimate_gas.assert_called_once_with(message, Height.PENDING)
    queries.state_params.assert_called_once_with(Height.PENDING)


def test_explicit_fields_sent_as_given(queries, message):
    gas = GasPolicy(queries).resolve(message, GasParams(gas_limit=7, gas_fee_cap=1, gas_premium=2))
    assert (gas.gas_limit, gas.gas_fee_cap, gas.gas_premium) == (7, 1, 2)
    queries.estimate_gas.assert_not_called()
    queries.state_params.assert_not_called()


def test_fields_default_independently(queries, message):
    gas = GasPolicy(queries).resolve(message, GasParams(gas_limit=50_000))
    assert gas.gas_limit == 50_000
    assert gas.gas_fee_cap == 150
    queries.estimate_gas.assert_not_called()


def test_overestimation_rounds_up(queries, message):
    queries.estimate_gas.return_value = QueryResponse(
        height=1, value=GasEstimate(exit_code=0, gas_limit=3)
    )
    assert GasPolicy(queries, overestimation=1.5).estimate_limit(message) == 5


def test_failed_estimate_raises(queries, message):
    queries.estimate_gas.return_value = QueryResponse(
        height=1, value=GasEstimate(exit_code=33, info="contract reverted", gas_limit=0)
    )
    with pytest.raises(ExecutionFailed, match="contract reverted") as exc_info:
        GasPolicy(queries).resolve(message)
    assert exc_info.value.code == 33


def test_overestimation_below_one_rejected(queries):
    with pytest.raises(ValueError):
        GasPolicy(queries, overestimation=0.9)
