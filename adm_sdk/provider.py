"""
Provider - Main entry point for the ADM SDK.

The provider owns the transport to the chain's consensus-layer RPC endpoint
and exposes two surfaces:

1. Read-only queries (actor state, gas estimates, read-only calls) at a
   resolved height
2. Transactions: sequence acquisition, gas resolution, signing and
   broadcasting under a chosen durability contract
"""
import base64
import binascii
import logging
import threading
from typing import Any, Callable, List, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel

from .address import SYSTEM_ACTOR_ADDR, Address
from .broadcast import Broadcaster, BroadcastMode
from .codec import Codec, decode_cid
from .config import ProviderConfig
from .evm import EvmClient
from .exceptions import DecodeError, ExecutionFailed, NetworkFailure, NotFound, SequenceConflict
from .gas import GasPolicy
from .height import Height, parse_height
from .models import (
    ActorState, DeliverTx, GasEstimate, GasParams, ObjectRef, QueryResponse, StateParams,
    TxReceipt, UnsignedMessage,
)
from .sequencer import SequencerRegistry
from .signer import Signer
from .transport import HttpRpcTransport, RpcTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

HeightLike = Union[Height, str, int]

# Exit code returned by queries against unknown actors, keys or indexes
USR_NOT_FOUND = 17


class AbciQueryResult(BaseModel):
    """Raw ABCI query response with base64 fields decoded."""
    code: int = 0
    key: bytes = b""
    value: bytes = b""
    height: int = 0
    info: str = ""
    log: str = ""
    codespace: str = ""

    @property
    def is_not_found(self) -> bool:
        return self.code == USR_NOT_FOUND


def _b64decode(value: Optional[str], what: str) -> bytes:
    if not value:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise NetworkFailure(f"malformed base64 in query {what}: {e}") from e


def local_message(to: Address, method_num: int, params: bytes = b"", sender: Optional[Address] = None) -> UnsignedMessage:
    """Build a message for read-only execution; sequence and gas are irrelevant."""
    return UnsignedMessage(
        to=Address.parse(to),
        from_address=sender or SYSTEM_ACTOR_ADDR,
        sequence=0,
        method_num=method_num,
        params=params,
        gas_limit=10_000_000_000,
    )


class Provider:
    """
    Transaction and query provider.

    Thread-safe: queries run concurrently; transactions for the same account
    are serialized by that account's sequencer lock.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        transport: Optional[RpcTransport] = None,
        codec: Optional[Codec] = None,
        evm: Optional[EvmClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the provider

        Args:
            config: Connection and policy settings (defaults to ProviderConfig.from_env())
            transport: JSON-RPC transport (defaults to HTTP against config.rpc_url)
            codec: Actor/ABI encoder (defaults to the DAG-CBOR codec)
            evm: Parent-network client (defaults to config.evm_rpc_url when set)
            logger: Optional logger instance to use for debug/info logging
        """
        self.config = config or ProviderConfig.from_env()
        self.logger = logger or logging.getLogger(__name__)
        self.transport = transport or HttpRpcTransport(
            self.config.rpc_url,
            timeout=self.config.timeout,
            retry_count=self.config.retry_count,
            logger=self.logger,
        )
        self.codec = codec or Codec()
        if evm is None and self.config.evm_rpc_url:
            evm = EvmClient(
                self.config.evm_rpc_url,
                timeout=self.config.timeout,
                gateway=self.config.evm_gateway,
                subnet=self.config.subnet_id,
            )
        self.evm = evm

        self.sequencers = SequencerRegistry(self)
        self.gas_policy = GasPolicy(self, overestimation=self.config.gas_overestimation)
        self.broadcaster = Broadcaster(
            self.transport, self.codec, commit_timeout=self.config.commit_timeout, logger=self.logger
        )
        self._chain_id = self.config.chain_id
        self._chain_id_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def query(self, kind: str, payload: Any = None, height: HeightLike = Height.COMMITTED) -> AbciQueryResult:
        """
        Run a raw FVM query.

        Args:
            kind: Query kind (Call, EstimateGas, ActorState, StateParams, BuiltinActors, Ipld)
            payload: Query payload for kinds that take one
            height: committed, pending or an exact height

        Returns:
            The decoded ABCI response; the exit code is not checked
        """
        resolved = parse_height(height)
        data = self.codec.encode_query(kind, payload)
        self.logger.debug(f"ABCI query {kind} at {resolved}")
        response = self.transport.abci_query(data, resolved.to_wire())
        try:
            result_height = int(response.get("height") or 0)
            code = int(response.get("code") or 0)
        except (TypeError, ValueError) as e:
            raise NetworkFailure(f"malformed abci_query response: {response!r}") from e
        return AbciQueryResult(
            code=code,
            key=_b64decode(response.get("key"), "key"),
            value=_b64decode(response.get("value"), "value"),
            height=result_height,
            info=response.get("info") or "",
            log=response.get("log") or "",
            codespace=response.get("codespace") or "",
        )

    @staticmethod
    def _extract(result: AbciQueryResult, what: str) -> AbciQueryResult:
        if result.code == 0:
            return result
        message = (
            f"{what} returned non-zero exit code: {result.code}; "
            f"info: {result.info}; log: {result.log}"
        )
        if result.is_not_found:
            raise NotFound(message)
        raise ExecutionFailed(message, code=result.code, info=result.info, log=result.log,
                              codespace=result.codespace)

    def call(
        self,
        message: UnsignedMessage,
        height: HeightLike = Height.COMMITTED,
        decode: Optional[Callable[[DeliverTx], T]] = None,
    ) -> QueryResponse:
        """
        Run a message in a read-only fashion.

        Args:
            message: The message to execute
            height: Query height
            decode: Decoder applied to the resulting DeliverTx; when omitted the
                DeliverTx itself is returned

        Raises:
            ExecutionFailed: If the call reverted
            NotFound: If the target does not exist
        """
        result = self._extract(self.query("Call", message, height), "call")
        deliver_tx = self.codec.decode_deliver_tx(result.value)
        if not deliver_tx.is_ok:
            raise ExecutionFailed(
                f"call reverted (code {deliver_tx.code}): info: {deliver_tx.info}; log: {deliver_tx.log}",
                code=deliver_tx.code, info=deliver_tx.info, log=deliver_tx.log,
                codespace=deliver_tx.codespace,
            )
        value = decode(deliver_tx) if decode is not None else deliver_tx
        return QueryResponse(height=result.height, value=value)

    def estimate_gas(self, message: UnsignedMessage, height: HeightLike = Height.PENDING) -> QueryResponse[GasEstimate]:
        # Sequence 0 so estimation is not tripped up by a nonce mismatch
        message = message.model_copy(update={"sequence": 0})
        result = self._extract(self.query("EstimateGas", message, height), "gas estimate")
        return QueryResponse(height=result.height, value=self.codec.decode_gas_estimate(result.value))

    def actor_state(
        self, address: Union[Address, str], height: HeightLike = Height.COMMITTED
    ) -> QueryResponse[Optional[ActorState]]:
        """Query the state of an actor; the value is None when the actor is unknown."""
        result = self.query("ActorState", Address.parse(address), height)
        if result.is_not_found:
            return QueryResponse(height=result.height, value=None)
        result = self._extract(result, "actor state")
        return QueryResponse(height=result.height, value=self.codec.decode_actor_state(result.key, result.value))

    def state_params(self, height: HeightLike = Height.COMMITTED) -> QueryResponse[StateParams]:
        result = self._extract(self.query("StateParams", None, height), "state params")
        return QueryResponse(height=result.height, value=self.codec.decode_state_params(result.value))

    def builtin_actors(self, height: HeightLike = Height.COMMITTED) -> QueryResponse[List[Tuple[str, str]]]:
        """Built-in actor names and their code CIDs, as registered with the system actor."""
        result = self._extract(self.query("BuiltinActors", None, height), "builtin actors")
        registry = self.codec.loads(result.value, "builtin actors")
        if isinstance(registry, dict):
            registry = registry.get("registry", [])
        try:
            value = [(str(name), decode_cid(cid)) for name, cid in registry]
        except (TypeError, ValueError) as e:
            raise DecodeError(f"failed to decode builtin actors: {e}") from e
        return QueryResponse(height=result.height, value=value)

    def ipld(self, cid: str, height: HeightLike = Height.COMMITTED) -> Optional[bytes]:
        """Fetch a block from the IPLD store; None when not present."""
        result = self.query("Ipld", cid, height)
        if result.is_not_found:
            return None
        return self._extract(result, "ipld").value

    def sequence(self, address: Union[Address, str], height: HeightLike = Height.PENDING) -> int:
        state = self.actor_state(address, height).value
        return state.sequence if state is not None else 0

    def balance(self, address: Union[Address, str], height: HeightLike = Height.COMMITTED) -> int:
        """
        Get the balance of an account in atto units.

        Raises:
            NotFound: If the account does not exist
        """
        address = Address.parse(address)
        state = self.actor_state(address, height).value
        if state is None:
            raise NotFound(f"actor {address} not found")
        return state.balance

    def chain_id(self) -> int:
        """Chain ID from config, else read once from the state params."""
        with self._chain_id_lock:
            if self._chain_id is None:
                self._chain_id = self.state_params(Height.COMMITTED).value.chain_id
            return self._chain_id

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def transaction(
        self,
        signer: Signer,
        to: Union[Address, str],
        method_num: int,
        params: bytes = b"",
        value: int = 0,
        gas_params: Optional[GasParams] = None,
        broadcast_mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        decode: Optional[Callable[[DeliverTx], T]] = None,
        sequence: Optional[int] = None,
        object: Optional[ObjectRef] = None,
    ) -> TxReceipt:
        """
        Build, sign and submit a message.

        A stale-sequence rejection is retried exactly once with a freshly
        fetched sequence. A caller-supplied ``sequence`` is never replaced, so
        a conflict on it is raised immediately.

        Args:
            signer: Signing capability of the sender
            to: Target actor
            method_num: Method to invoke
            params: Encoded method parameters
            value: Tokens to transfer with the message (atto units)
            gas_params: Gas fields; unset fields are estimated
            broadcast_mode: commit (default), sync or async
            decode: Decoder for the return data (commit mode only)
            sequence: Explicit sequence, bypassing the remote fetch
            object: Reference to externally staged object bytes

        Returns:
            A receipt whose shape depends on the broadcast mode

        Raises:
            SequenceConflict: If the sequence is still stale after one retry
            PreCheckFailed: If the transaction was rejected before inclusion
            ExecutionFailed: If the transaction reverted (commit mode)
            NetworkFailure: If the node could not be reached
        """
        mode = BroadcastMode.from_str(broadcast_mode)
        to = Address.parse(to)
        sender = signer.address()
        if getattr(signer, "chain_id", None) is None:
            signer.chain_id = self.chain_id()

        sequencer = self.sequencers.get(sender)
        with sequencer.lock:
            base = UnsignedMessage(
                to=to, from_address=sender, sequence=sequencer.next_sequence(sequence),
                value=value, method_num=method_num, params=params,
            )
            gas = self.gas_policy.resolve(base, gas_params)
            message = base.model_copy(update=gas.model_dump())
            try:
                return self.broadcaster.broadcast(signer.sign(message, object), mode, decode)
            except SequenceConflict as e:
                if sequence is not None:
                    raise
                self.logger.warning(
                    f"Sequence {message.sequence} for {sender} is stale ({e.info or e.log}); retrying once"
                )

            retry = message.model_copy(update={"sequence": sequencer.next_sequence()})
            return self.broadcaster.broadcast(signer.sign(retry, object), mode, decode)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "Provider":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


__all__ = ["Provider", "AbciQueryResult", "local_message", "USR_NOT_FOUND"]
