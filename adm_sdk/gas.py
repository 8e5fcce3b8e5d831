"""
Gas field resolution.

Each of gas limit, fee cap and premium defaults independently. Values the
caller sets are sent exactly as given; the chain rejects values it does not
accept.
"""
import logging
import math
from typing import Optional, Protocol

from .exceptions import ExecutionFailed
from .height import Height
from .models import GasEstimate, GasParams, QueryResponse, ResolvedGas, StateParams, UnsignedMessage

logger = logging.getLogger(__name__)

DEFAULT_GAS_OVERESTIMATION = 1.25
DEFAULT_GAS_PREMIUM = 0


class GasQueries(Protocol):
    def estimate_gas(self, message: UnsignedMessage, height: Height = ...) -> QueryResponse[GasEstimate]:
        ...

    def state_params(self, height: Height = ...) -> QueryResponse[StateParams]:
        ...


class GasPolicy:
    """Fill unset gas fields from network estimates."""

    def __init__(self, provider: GasQueries, overestimation: float = DEFAULT_GAS_OVERESTIMATION):
        if overestimation < 1.0:
            raise ValueError(f"gas overestimation must be >= 1.0, got {overestimation}")
        self.provider = provider
        self.overestimation = overestimation

    def estimate_limit(self, message: UnsignedMessage) -> int:
        """
        Dry-run the message and scale the estimate.

        Raises:
            ExecutionFailed: If the dry run itself fails
        """
        response = self.provider.estimate_gas(message, Height.PENDING)
        estimate = response.value
        if estimate.exit_code != 0:
            raise ExecutionFailed(
                f"gas estimation failed with exit code {estimate.exit_code}: {estimate.info}",
                code=estimate.exit_code,
                info=estimate.info,
            )
        limit = math.ceil(estimate.gas_limit * self.overestimation)
        logger.debug(f"Estimated gas limit {estimate.gas_limit}, using {limit}")
        return limit

    def base_fee(self) -> int:
        return self.provider.state_params(Height.PENDING).value.base_fee

    def resolve(self, message: UnsignedMessage, gas_params: Optional[GasParams] = None) -> ResolvedGas:
        """
        Resolve every gas field.

        Remote calls are only made for the fields that are missing.
        """
        gas_params = gas_params or GasParams()

        gas_limit = gas_params.gas_limit
        if gas_limit is None:
            gas_limit = self.estimate_limit(message)

        gas_fee_cap = gas_params.gas_fee_cap
        if gas_fee_cap is None:
            gas_fee_cap = self.base_fee()

        gas_premium = gas_params.gas_premium
        if gas_premium is None:
            gas_premium = DEFAULT_GAS_PREMIUM

        return ResolvedGas(gas_limit=gas_limit, gas_fee_cap=gas_fee_cap, gas_premium=gas_premium)
