"""
Data models for the ADM SDK.
"""
from enum import Enum
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .address import Address

T = TypeVar("T")

# Listing engine maximum when limit is 0 or larger than this
MAX_LIST_LIMIT = 10_000


class WriteAccess(str, Enum):
    """Who may write to a machine."""
    ONLY_OWNER = "OnlyOwner"
    PUBLIC = "Public"


class GasParams(BaseModel):
    """
    Caller-supplied gas fields.

    Any field left as None is filled by the gas policy; values that are set are
    sent exactly as given.
    """
    gas_limit: Optional[int] = None
    gas_fee_cap: Optional[int] = None
    gas_premium: Optional[int] = None


class ResolvedGas(BaseModel):
    """Concrete gas fields after defaults have been applied."""
    model_config = ConfigDict(frozen=True)

    gas_limit: int
    gas_fee_cap: int
    gas_premium: int


class UnsignedMessage(BaseModel):
    """A message ready for signing; immutable once constructed."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: int = 0
    to: Address
    from_address: Address = Field(..., alias="from")
    sequence: int
    value: int = 0
    method_num: int
    params: bytes = b""
    gas_limit: int = 0
    gas_fee_cap: int = 0
    gas_premium: int = 0


class ObjectRef(BaseModel):
    """Reference to externally staged object bytes, attached to a signed message."""
    model_config = ConfigDict(frozen=True)

    key: bytes
    cid: str
    address: Address


class SignedTransaction(BaseModel):
    """UnsignedMessage plus signature. Opaque to everything but the chain and the signer."""
    model_config = ConfigDict(frozen=True)

    message: UnsignedMessage
    signature: bytes
    object: Optional[ObjectRef] = None


class TxState(str, Enum):
    ACCEPTED = "accepted"
    UNKNOWN = "unknown"


class AsyncTxReceipt(BaseModel):
    """
    Result of an async broadcast.

    The node only accepted the bytes for relay. The transaction may still fail
    pre-check or execution without any further signal to the caller.
    """
    tx_hash: str = Field(..., alias="hash")
    state: Literal[TxState.UNKNOWN] = TxState.UNKNOWN

    model_config = ConfigDict(populate_by_name=True)


class SyncTxReceipt(BaseModel):
    """
    Result of a sync broadcast: pre-check passed, inclusion not awaited.

    Execution can still fail later; no execution result is available here.
    """
    tx_hash: str = Field(..., alias="hash")
    state: Literal[TxState.ACCEPTED] = TxState.ACCEPTED
    code: int = 0
    log: str = ""

    model_config = ConfigDict(populate_by_name=True)


class CommitTxReceipt(BaseModel, Generic[T]):
    """Result of a commit broadcast: included in a block and executed successfully."""
    tx_hash: str = Field(..., alias="hash")
    state: Literal[TxState.ACCEPTED] = TxState.ACCEPTED
    height: int
    gas_used: int = 0
    gas_wanted: int = 0
    data: Optional[T] = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)


TxReceipt = Union[AsyncTxReceipt, SyncTxReceipt, CommitTxReceipt]


class EvmTxReceipt(BaseModel):
    """Receipt of a transaction on the parent EVM network."""
    tx_hash: str
    block_number: int
    gas_used: int = 0
    status: int = 1


class QueryResponse(BaseModel, Generic[T]):
    """A decoded query value together with the height it was read at."""
    height: int
    value: T

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ActorState(BaseModel):
    """On-chain state of an actor (account or machine)."""
    actor_id: int
    code: str
    state: str
    sequence: int
    balance: int
    delegated_address: Optional[Address] = None


class GasEstimate(BaseModel):
    exit_code: int
    info: str = ""
    gas_limit: int


class StateParams(BaseModel):
    """Slowly changing chain parameters."""
    base_fee: int
    circ_supply: int = 0
    chain_id: int
    network_version: int = 0


class DeliverTx(BaseModel):
    """Outcome of executing a message, as reported by the node."""
    code: int = 0
    data: bytes = b""
    log: str = ""
    info: str = ""
    gas_wanted: int = 0
    gas_used: int = 0
    codespace: str = ""

    @property
    def is_ok(self) -> bool:
        return self.code == 0


class InternalState(BaseModel):
    """An object whose bytes are fully replicated on-chain."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["internal"] = "internal"
    content_ref: Optional[str] = None
    size: int


class ExternalState(BaseModel):
    """
    An object stored off-chain and referenced by content identifier.

    ``resolved`` is False until the network has confirmed the bytes are available.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["external"] = "external"
    content_ref: str
    resolved: bool


ObjectState = Annotated[Union[InternalState, ExternalState], Field(discriminator="kind")]


class ObjectEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: bytes
    state: ObjectState


class StoredObject(BaseModel):
    """Result of a get: the object state plus internal bytes when present."""
    key: bytes
    state: ObjectState
    data: Optional[bytes] = None


class ListingQuery(BaseModel):
    """S3-style listing parameters."""
    prefix: Union[str, bytes] = ""
    delimiter: Union[str, bytes] = "/"
    offset: int = Field(0, ge=0)
    limit: int = Field(0, ge=0, validate_default=True)

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        if value == 0 or value > MAX_LIST_LIMIT:
            return MAX_LIST_LIMIT
        return value

    @property
    def prefix_bytes(self) -> bytes:
        return self.prefix.encode() if isinstance(self.prefix, str) else bytes(self.prefix)

    @property
    def delimiter_bytes(self) -> bytes:
        return self.delimiter.encode() if isinstance(self.delimiter, str) else bytes(self.delimiter)


class ListingResult(BaseModel):
    objects: List[ObjectEntry] = Field(default_factory=list)
    common_prefixes: List[str] = Field(default_factory=list)


class PushReturn(BaseModel):
    root: str
    index: int


class CreateReturn(BaseModel):
    actor_id: int
    robust_address: Optional[Address] = None


class DeployTxReceipt(BaseModel):
    """Receipt of a machine deployment (always commit mode)."""
    tx_hash: str = Field(..., alias="hash")
    height: int
    gas_used: int
    address: Address

    model_config = ConfigDict(populate_by_name=True)


class MachineInfo(BaseModel):
    """Machine metadata: kind, owner and free-form metadata."""
    kind: str
    address: Optional[Address] = None
    owner: Optional[Address] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class AccountInfo(BaseModel):
    address: Address
    eth_address: Optional[str] = None
    sequence: int
    balance: int
    parent_balance: Optional[int] = None


__all__ = [
    "MAX_LIST_LIMIT", "WriteAccess", "GasParams", "ResolvedGas", "UnsignedMessage",
    "ObjectRef", "SignedTransaction", "TxState", "AsyncTxReceipt", "SyncTxReceipt",
    "CommitTxReceipt", "TxReceipt", "EvmTxReceipt", "QueryResponse", "ActorState", "GasEstimate",
    "StateParams", "DeliverTx", "InternalState", "ExternalState", "ObjectState",
    "ObjectEntry", "StoredObject", "ListingQuery", "ListingResult", "PushReturn",
    "CreateReturn", "DeployTxReceipt", "MachineInfo", "AccountInfo",
]
