"""
Parent-network client.

Balances also live on the Ethereum-style chain above the subnet. Funds move
between the two through the IPC gateway contract: ``fund`` on the parent's
gateway credits an address inside a child subnet, and ``release`` on the
subnet's own gateway sends funds back up to the parent.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import requests
from eth_abi import encode as abi_encode
from pydantic import BaseModel, Field
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .address import Address, Protocol
from .exceptions import AdmError, ExecutionFailed, NetworkFailure, PreCheckFailed
from .models import EvmTxReceipt

logger = logging.getLogger(__name__)

FUND_SIGNATURE = "fund((uint64,address[]),(uint8,bytes))"
RELEASE_SIGNATURE = "release((uint8,bytes))"

# Fee history sampled for the priority fee estimate
FEE_HISTORY_BLOCKS = 10
FEE_HISTORY_PERCENTILE = 5.0
# A jump of this many percent between sorted rewards discards the cheaper ones
FEE_CHANGE_THRESHOLD = 200


class SubnetID(BaseModel):
    """
    Hierarchical subnet identifier, e.g. ``/r314159/t410f...``.

    ``root`` is the chain ID of the root network; ``route`` lists the subnet
    actors from the root down, as checksummed Ethereum addresses.
    """
    root: int = Field(..., ge=0)
    route: List[str] = Field(default_factory=list)

    @classmethod
    def parse(cls, value: Union["SubnetID", str]) -> "SubnetID":
        if isinstance(value, SubnetID):
            return value
        parts = str(value).strip().strip("/").split("/")
        head = parts[0]
        if not head.startswith("r") or not head[1:].isdigit():
            raise ValueError(f"invalid subnet ID '{value}': expected /r<chain id>/...")
        return cls(root=int(head[1:]), route=[Address.parse(p).to_eth() for p in parts[1:] if p])

    def __str__(self) -> str:
        route = "".join(f"/{Address.from_eth(a)}" for a in self.route)
        return f"/r{self.root}{route}"


def fvm_address(address: Union[Address, str]) -> Tuple[int, bytes]:
    """The gateway's ``FvmAddress`` struct for an address: (protocol, payload)."""
    address = Address.parse(address)
    if address.protocol == Protocol.DELEGATED:
        sub = address.subaddress
        payload = abi_encode(["(uint64,uint128,bytes)"], [(address.namespace, len(sub), sub)])
    else:
        payload = address.payload
    return int(address.protocol), payload


def gateway_calldata(signature: str, types: Sequence[str], args: Sequence[Any]) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4]) + abi_encode(list(types), list(args))


def base_fee_surged(base_fee: int) -> int:
    """Headroom over the current base fee, shrinking as fees rise."""
    if base_fee <= 40_000_000_000:
        return base_fee * 2
    if base_fee <= 100_000_000_000:
        return base_fee * 16 // 10
    if base_fee <= 200_000_000_000:
        return base_fee * 14 // 10
    return base_fee * 12 // 10


def estimate_priority_fee(rewards: Sequence[Sequence[int]]) -> int:
    """
    Median of the sampled priority fees.

    If the sorted samples jump by ``FEE_CHANGE_THRESHOLD`` percent or more in
    the upper half, only the samples from the jump onwards are considered.
    """
    values = sorted(int(r[0]) for r in rewards if r and int(r[0]) > 0)
    if not values:
        return 0
    if len(values) == 1:
        return values[0]

    changes = [(b - a) * 100 // a for a, b in zip(values, values[1:])]
    max_change = max(changes)
    max_index = changes.index(max_change)
    if max_change >= FEE_CHANGE_THRESHOLD and max_index >= len(values) // 2:
        values = values[max_index:]
    return values[len(values) // 2]


class EvmClient:
    """Ethereum-style JSON-RPC client for the parent network."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        w3: Optional[Web3] = None,
        gateway: Optional[Union[Address, str]] = None,
        subnet: Optional[Union[SubnetID, str]] = None,
        chain_id: Optional[int] = None,
        receipt_timeout: float = 120.0,
    ):
        """
        Args:
            rpc_url: Ethereum JSON-RPC endpoint
            timeout: Per-request timeout in seconds
            w3: Preconfigured Web3 instance (mostly for tests)
            gateway: Gateway contract on this network; needed for deposits and withdrawals
            subnet: Default child subnet for deposits
            chain_id: Chain ID of this network; read from the node when omitted
            receipt_timeout: Seconds to wait for a transaction receipt
        """
        self.rpc_url = rpc_url
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.gateway = Address.parse(gateway).to_eth() if gateway is not None else None
        self.subnet = SubnetID.parse(subnet) if subnet is not None else None
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout

    def balance(self, address: Union[Address, str], block: Union[str, int] = "latest") -> int:
        """
        Get the parent-network balance of an address in atto units.

        Raises:
            NetworkFailure: If the endpoint cannot be reached
        """
        eth_address = Address.parse(address).to_eth()
        try:
            return int(self.w3.eth.get_balance(eth_address, block_identifier=block))
        except (Web3Exception, requests.RequestException) as e:
            raise NetworkFailure(f"failed to fetch parent balance for {eth_address}: {e}") from e

    def deposit(
        self,
        signer: Any,
        to: Union[Address, str],
        amount: int,
        subnet: Optional[Union[SubnetID, str]] = None,
    ) -> EvmTxReceipt:
        """
        Fund ``to`` inside a child subnet from this network.

        Args:
            signer: Key holder paying from this network
            to: Recipient inside the subnet
            amount: Atto units to move
            subnet: Target subnet (defaults to the client's subnet)

        Raises:
            AdmError: If no gateway or subnet is configured
            PreCheckFailed: If the gateway rejects the call during estimation
            ExecutionFailed: If the transaction reverted
            NetworkFailure: If the endpoint cannot be reached
        """
        target = SubnetID.parse(subnet) if subnet is not None else self.subnet
        if target is None:
            raise AdmError("no subnet configured for deposit")
        data = gateway_calldata(
            FUND_SIGNATURE,
            ["(uint64,address[])", "(uint8,bytes)"],
            [(target.root, target.route), fvm_address(to)],
        )
        logger.info(f"Depositing {amount} into {target} for {Address.parse(to)}")
        return self._send(signer, data, amount)

    def withdraw(self, signer: Any, to: Union[Address, str], amount: int) -> EvmTxReceipt:
        """Release ``amount`` from this subnet to ``to`` on its parent."""
        data = gateway_calldata(RELEASE_SIGNATURE, ["(uint8,bytes)"], [fvm_address(to)])
        logger.info(f"Withdrawing {amount} to {Address.parse(to)}")
        return self._send(signer, data, amount)

    def estimate_fees(self) -> Tuple[int, int]:
        """Return (max priority fee, max fee) per gas for the next block."""
        block = self.w3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            raise AdmError("parent network has no base fee (EIP-1559 not activated)")
        history = self.w3.eth.fee_history(FEE_HISTORY_BLOCKS, "latest", [FEE_HISTORY_PERCENTILE])
        priority = estimate_priority_fee(history["reward"])
        potential_max = base_fee_surged(int(base_fee))
        max_fee = priority + potential_max if priority > potential_max else potential_max
        return priority, max_fee

    def _send(self, signer: Any, data: bytes, value: int) -> EvmTxReceipt:
        if value < 0:
            raise ValueError(f"amount must be non-negative, got {value}")
        if self.gateway is None:
            raise AdmError("no gateway contract configured for this network")
        sign = getattr(signer, "sign_evm_transaction", None)
        if sign is None:
            raise AdmError(f"{signer!r} cannot sign parent-network transactions")
        sender = signer.address().to_eth()

        try:
            chain_id = self.chain_id if self.chain_id is not None else int(self.w3.eth.chain_id)
            priority, max_fee = self.estimate_fees()
            tx: Dict[str, Any] = {
                "from": sender,
                "to": self.gateway,
                "value": value,
                "data": Web3.to_hex(data),
                "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
                "chainId": chain_id,
                "maxPriorityFeePerGas": priority,
                "maxFeePerGas": max_fee,
            }
            tx["gas"] = int(self.w3.eth.estimate_gas(tx))
        except ContractLogicError as e:
            raise PreCheckFailed(f"gateway call rejected: {e}", info=str(e)) from e
        except (Web3Exception, requests.RequestException) as e:
            raise NetworkFailure(f"failed to prepare gateway transaction: {e}") from e

        del tx["from"]
        signed = sign(tx)

        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.debug(f"Gateway transaction sent: {Web3.to_hex(tx_hash)}")
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except TimeExhausted as e:
            raise NetworkFailure(
                f"transaction {Web3.to_hex(tx_hash)} sent, but no receipt after {self.receipt_timeout}s"
            ) from e
        except (Web3Exception, requests.RequestException) as e:
            raise NetworkFailure(f"failed to send gateway transaction: {e}") from e

        result = EvmTxReceipt(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
            status=int(receipt["status"]),
        )
        if result.status != 1:
            raise ExecutionFailed(f"gateway transaction {result.tx_hash} reverted", tx_hash=result.tx_hash)
        logger.info(f"Gateway transaction {result.tx_hash} included in block {result.block_number}")
        return result
