"""
Account-level operations: info, owned machines, transfers and moving funds
to and from the parent network.
"""
import logging
from typing import List, Optional, Union

from .address import ADM_ACTOR_ADDR, Address
from .broadcast import BroadcastMode
from .codec import METHOD_SEND
from .evm import EvmClient, SubnetID
from .exceptions import DecodeError, InvalidAddress, NotFound
from .height import Height
from .machine import LIST_METADATA_METHOD, decode_machine_info
from .models import AccountInfo, EvmTxReceipt, GasParams, MachineInfo, TxReceipt
from .provider import HeightLike, Provider, local_message
from .signer import Signer

logger = logging.getLogger(__name__)


class Account:
    """Namespace for account operations."""

    @staticmethod
    def info(
        provider: Provider,
        address: Union[Address, str],
        height: HeightLike = Height.COMMITTED,
        evm: Optional[EvmClient] = None,
    ) -> AccountInfo:
        """
        Sequence and balance of an account, plus its parent-network balance
        when an EVM client is available.

        Raises:
            NotFound: If the account does not exist on chain
        """
        address = Address.parse(address)
        state = provider.actor_state(address, height).value
        if state is None:
            raise NotFound(f"account {address} not found")

        # Prefer the robust delegated form when the chain knows one
        robust = state.delegated_address or address
        try:
            eth_address = robust.to_eth()
        except InvalidAddress:
            eth_address = None

        parent_balance = None
        evm = evm or provider.evm
        if evm is not None and eth_address is not None:
            parent_balance = evm.balance(robust)

        return AccountInfo(
            address=robust,
            eth_address=eth_address,
            sequence=state.sequence,
            balance=state.balance,
            parent_balance=parent_balance,
        )

    @staticmethod
    def machines(
        provider: Provider, owner: Union[Address, str], height: HeightLike = Height.COMMITTED
    ) -> List[MachineInfo]:
        """Machines owned by ``owner``, as registered with the ADM actor."""
        owner = Address.parse(owner)
        codec = provider.codec
        message = local_message(ADM_ACTOR_ADDR, LIST_METADATA_METHOD, codec.encode_params([owner.to_bytes()]))

        def decode_machines(deliver_tx) -> List[MachineInfo]:
            value = codec.decode_result(deliver_tx, "Vec<Metadata>")
            if value is None:
                return []
            if not isinstance(value, list):
                raise DecodeError(f"error parsing as Vec<Metadata>: {value!r}")
            machines = [decode_machine_info(item) for item in value]
            return [m.model_copy(update={"owner": owner}) for m in machines]

        return provider.call(message, height, decode_machines).value

    @staticmethod
    def transfer(
        provider: Provider,
        signer: Signer,
        to: Union[Address, str],
        amount: int,
        broadcast_mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        gas_params: Optional[GasParams] = None,
    ) -> TxReceipt:
        """Send ``amount`` atto units to another account."""
        if amount < 0:
            raise ValueError(f"transfer amount must be non-negative, got {amount}")
        to = Address.parse(to)
        logger.info(f"Transferring {amount} from {signer.address()} to {to}")
        return provider.transaction(
            signer,
            to,
            METHOD_SEND,
            b"",
            value=amount,
            gas_params=gas_params,
            broadcast_mode=broadcast_mode,
        )

    @staticmethod
    def deposit(
        evm: EvmClient,
        signer: Signer,
        to: Union[Address, str],
        amount: int,
        subnet: Optional[Union[SubnetID, str]] = None,
    ) -> EvmTxReceipt:
        """
        Move ``amount`` from the parent network into ``to``'s subnet account.

        ``evm`` must point at the parent network and know its gateway.
        """
        return evm.deposit(signer, to, amount, subnet)

    @staticmethod
    def withdraw(evm: EvmClient, signer: Signer, to: Union[Address, str], amount: int) -> EvmTxReceipt:
        """
        Move ``amount`` out of the subnet to ``to`` on the parent network.

        ``evm`` must point at the subnet's own EVM endpoint and gateway.
        """
        return evm.withdraw(signer, to, amount)
