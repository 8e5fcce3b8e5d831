"""
ADM SDK - Python client for ADM object stores and accumulators.

Turns high-level machine operations into signed, correctly sequenced
transactions, submits them under a chosen broadcast mode, and decodes
read-query results into typed values.
"""
from .version import __version__
from .address import ADM_ACTOR_ADDR, SYSTEM_ACTOR_ADDR, Address, Network, Protocol, use_testnet_addresses
from .height import Height, parse_height
from .exceptions import (
    AdmError, DecodeError, ExecutionFailed, InvalidAddress, InvalidBroadcastMode, InvalidHeight,
    NetworkFailure, NotFound, ObjectError, PreCheckFailed, RpcError, SequenceConflict,
)
from .models import (
    AccountInfo, ActorState, AsyncTxReceipt, CommitTxReceipt, DeployTxReceipt, EvmTxReceipt, ExternalState,
    GasParams, InternalState, ListingQuery, ListingResult, MachineInfo, ObjectEntry, PushReturn,
    QueryResponse, SignedTransaction, StoredObject, SyncTxReceipt, TxState, UnsignedMessage,
    WriteAccess,
)
from .config import ProviderConfig
from .codec import Codec
from .transport import HttpRpcTransport, RpcTransport
from .broadcast import Broadcaster, BroadcastMode
from .sequencer import Sequencer, SequencerRegistry
from .gas import GasPolicy
from .listing import list_objects
from .signer import LocalSigner, Signer, VoidSigner
from .evm import EvmClient, SubnetID
from .provider import Provider
from .machine import Accumulator, Machine, ObjectStore
from .account import Account

__all__ = [
    "__version__",
    # addresses and heights
    "Address", "Network", "Protocol", "ADM_ACTOR_ADDR", "SYSTEM_ACTOR_ADDR", "use_testnet_addresses",
    "Height", "parse_height",
    # errors
    "AdmError", "DecodeError", "ExecutionFailed", "InvalidAddress", "InvalidBroadcastMode",
    "InvalidHeight", "NetworkFailure", "NotFound", "ObjectError", "PreCheckFailed", "RpcError",
    "SequenceConflict",
    # models
    "AccountInfo", "ActorState", "AsyncTxReceipt", "CommitTxReceipt", "DeployTxReceipt",
    "ExternalState", "GasParams", "InternalState", "ListingQuery", "ListingResult", "MachineInfo",
    "EvmTxReceipt", "ObjectEntry", "PushReturn", "QueryResponse", "SignedTransaction", "StoredObject",
    "SyncTxReceipt", "TxState", "UnsignedMessage", "WriteAccess",
    # components
    "ProviderConfig", "Codec", "RpcTransport", "HttpRpcTransport", "Broadcaster", "BroadcastMode",
    "Sequencer", "SequencerRegistry", "GasPolicy", "list_objects", "Signer", "LocalSigner",
    "VoidSigner", "Provider", "EvmClient", "SubnetID", "Machine", "ObjectStore", "Accumulator", "Account",
]
