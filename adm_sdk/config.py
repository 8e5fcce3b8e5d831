"""
Provider configuration.

Values come from keyword arguments first and ``ADM_*`` environment variables
second. Remote URLs must use https unless they point at the local machine.
"""
import os
import urllib.parse
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# Environment variable names
ENV_RPC_URL = "ADM_RPC_URL"
ENV_EVM_RPC_URL = "ADM_EVM_RPC_URL"
ENV_RPC_TIMEOUT = "ADM_RPC_TIMEOUT"
ENV_COMMIT_TIMEOUT = "ADM_COMMIT_TIMEOUT"
ENV_RETRY_COUNT = "ADM_RETRY_COUNT"
ENV_CHAIN_ID = "ADM_CHAIN_ID"
ENV_GAS_OVERESTIMATION = "ADM_GAS_OVERESTIMATION"
ENV_EVM_GATEWAY = "ADM_EVM_GATEWAY"
ENV_SUBNET_ID = "ADM_SUBNET_ID"
ENV_INSECURE_RPC = "ADM_INSECURE_RPC"

DEFAULT_RPC_URL = "http://127.0.0.1:26657"

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")

_ENV_FIELDS = {
    "rpc_url": ENV_RPC_URL,
    "evm_rpc_url": ENV_EVM_RPC_URL,
    "timeout": ENV_RPC_TIMEOUT,
    "commit_timeout": ENV_COMMIT_TIMEOUT,
    "retry_count": ENV_RETRY_COUNT,
    "chain_id": ENV_CHAIN_ID,
    "gas_overestimation": ENV_GAS_OVERESTIMATION,
    "evm_gateway": ENV_EVM_GATEWAY,
    "subnet_id": ENV_SUBNET_ID,
}


def validate_url(url_name: str, url: str) -> str:
    """
    Require https for remote endpoints.

    Raises:
        ValueError: If the URL is plain http to a non-local host and
            ADM_INSECURE_RPC is not set
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"{url_name} must be an http(s) URL (got: {url})")
    is_local = parsed.hostname in _LOCAL_HOSTS
    if parsed.scheme != "https" and not is_local and os.environ.get(ENV_INSECURE_RPC) != "1":
        raise ValueError(f"{url_name} must use https:// for security (got: {parsed.scheme}://)")
    return url


class ProviderConfig(BaseModel):
    """Connection and policy settings shared by the provider and its helpers."""

    rpc_url: str = DEFAULT_RPC_URL
    evm_rpc_url: Optional[str] = None
    timeout: float = Field(30.0, gt=0)
    commit_timeout: float = Field(60.0, gt=0)
    retry_count: int = Field(3, ge=0)
    chain_id: Optional[int] = None
    gas_overestimation: float = Field(1.25, ge=1.0)
    # Gateway contract on the EVM network and the subnet deposits target
    evm_gateway: Optional[str] = None
    subnet_id: Optional[str] = None

    @field_validator("rpc_url")
    @classmethod
    def _check_rpc_url(cls, value: str) -> str:
        return validate_url("rpc_url", value)

    @field_validator("evm_rpc_url")
    @classmethod
    def _check_evm_rpc_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return validate_url("evm_rpc_url", value)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides: Any) -> "ProviderConfig":
        """
        Build a config from ADM_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            **overrides: Explicit values; these win over the environment

        Returns:
            The validated configuration
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field_name, var in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw not in (None, ""):
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
