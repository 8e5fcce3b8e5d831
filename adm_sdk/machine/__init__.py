"""
Machines: object stores and accumulators hosted by the ADM actor.

A machine is identified by its address. ``create`` deploys a new one through
the ADM actor (always in commit mode, since the address is only known once
the deployment has executed); ``attach`` wraps an existing address.
"""
import logging
from enum import Enum
from typing import Any, Optional, Tuple, Type, TypeVar, Union

from ..address import ADM_ACTOR_ADDR, Address
from ..broadcast import BroadcastMode
from ..codec import method_hash
from ..exceptions import DecodeError
from ..height import Height
from ..models import CreateReturn, DeliverTx, DeployTxReceipt, GasParams, MachineInfo, WriteAccess
from ..provider import HeightLike, Provider, local_message
from ..signer import Signer

logger = logging.getLogger(__name__)

M = TypeVar("M", bound="Machine")

# ADM actor methods
CREATE_EXTERNAL_METHOD = method_hash("CreateExternal")
LIST_METADATA_METHOD = method_hash("ListMetadata")

# Implemented by every machine
GET_METADATA_METHOD = method_hash("GetMetadata")


class MachineKind(str, Enum):
    OBJECT_STORE = "ObjectStore"
    ACCUMULATOR = "Accumulator"


def _struct_field(value: Any, name: str, index: int) -> Any:
    if isinstance(value, dict):
        return value.get(name)
    if isinstance(value, (list, tuple)) and index < len(value):
        return value[index]
    return None


def decode_machine_info(value: Any, address: Optional[Address] = None) -> MachineInfo:
    """Decode machine metadata as returned by a machine or the ADM actor."""
    if not isinstance(value, (dict, list, tuple)):
        raise DecodeError(f"expected machine metadata, got {type(value).__name__}")
    kind = _struct_field(value, "kind", 0)
    second = _struct_field(value, "owner", 1) if address is not None else _struct_field(value, "address", 1)
    metadata = _struct_field(value, "metadata", 2) or {}
    if isinstance(kind, dict):
        kind = next(iter(kind), "")
    if address is not None:
        return MachineInfo(
            kind=str(kind), address=address,
            owner=Address.from_bytes(second) if second else None, metadata=metadata,
        )
    return MachineInfo(
        kind=str(kind), address=Address.from_bytes(second) if second else None, metadata=metadata,
    )


class Machine:
    """Base class for machine handles."""

    KIND: MachineKind

    def __init__(self, address: Union[Address, str]):
        self._address = Address.parse(address)

    @classmethod
    def attach(cls: Type[M], address: Union[Address, str]) -> M:
        """Wrap an existing machine address."""
        return cls(address)

    @property
    def address(self) -> Address:
        return self._address

    @classmethod
    def create(
        cls: Type[M],
        provider: Provider,
        signer: Signer,
        write_access: WriteAccess = WriteAccess.ONLY_OWNER,
        gas_params: Optional[GasParams] = None,
    ) -> Tuple[M, DeployTxReceipt]:
        """
        Deploy a new machine owned by the signer.

        Returns:
            The machine handle and the deployment receipt
        """
        params = provider.codec.encode_params([cls.KIND.value, WriteAccess(write_access).value])
        codec = provider.codec

        def decode_create(deliver_tx: DeliverTx) -> CreateReturn:
            value = codec.decode_result(deliver_tx, "CreateExternalReturn")
            actor_id = _struct_field(value, "actor_id", 0)
            robust = _struct_field(value, "robust_address", 1)
            if not isinstance(actor_id, int):
                raise DecodeError(f"error parsing as CreateExternalReturn: {value!r}")
            return CreateReturn(actor_id=actor_id, robust_address=Address.from_bytes(robust) if robust else None)

        receipt = provider.transaction(
            signer,
            ADM_ACTOR_ADDR,
            CREATE_EXTERNAL_METHOD,
            params,
            gas_params=gas_params,
            broadcast_mode=BroadcastMode.COMMIT,
            decode=decode_create,
        )
        created: CreateReturn = receipt.data
        address = created.robust_address or Address.new_id(created.actor_id)
        logger.info(f"Deployed {cls.KIND.value} machine {address} at height {receipt.height}")
        deploy = DeployTxReceipt(
            hash=receipt.tx_hash, height=receipt.height, gas_used=receipt.gas_used, address=address
        )
        return cls(address), deploy

    def metadata(self, provider: Provider, height: HeightLike = Height.COMMITTED) -> MachineInfo:
        """Kind, owner and metadata of this machine."""
        return get_metadata(provider, self._address, height)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Machine):
            return NotImplemented
        return type(self) is type(other) and self._address == other._address

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._address))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._address})"


def get_metadata(provider: Provider, address: Union[Address, str], height: HeightLike = Height.COMMITTED) -> MachineInfo:
    """Fetch metadata for any machine address."""
    address = Address.parse(address)
    message = local_message(address, GET_METADATA_METHOD)
    codec = provider.codec
    response = provider.call(
        message, height, lambda tx: decode_machine_info(codec.decode_result(tx, "Metadata"), address)
    )
    return response.value


from .accumulator import Accumulator  # noqa: E402
from .objectstore import ObjectStore, parse_range  # noqa: E402

__all__ = [
    "Machine", "MachineKind", "ObjectStore", "Accumulator", "get_metadata", "decode_machine_info",
    "parse_range", "CREATE_EXTERNAL_METHOD", "LIST_METADATA_METHOD", "GET_METADATA_METHOD",
]
