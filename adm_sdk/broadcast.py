"""
Transaction broadcasting.

A signed transaction is submitted under one of three durability contracts,
and the receipt type tells the caller which one applied:

- ``async``: the node accepted the bytes for relay. Nothing else is known; the
  transaction may still fail pre-check or execution without any signal.
- ``sync``: pre-check (signature, sequence, balance) passed. Execution may
  still fail later.
- ``commit``: the transaction was included in a block and executed. This is
  the only mode whose receipt reflects execution.
"""
import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from .codec import Codec
from .exceptions import (
    DecodeError, ExecutionFailed, InvalidBroadcastMode, NetworkFailure, PreCheckFailed,
    RpcError, SequenceConflict,
)
from .models import AsyncTxReceipt, CommitTxReceipt, DeliverTx, SignedTransaction, SyncTxReceipt
from .transport import RpcTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SEQUENCE_MISMATCH = re.compile(
    r"(invalid|expected|wrong|mismatch\w*)\s+(sequence|nonce)|(sequence|nonce)\s+(mismatch|too low|expected)",
    re.IGNORECASE,
)


class BroadcastMode(str, Enum):
    COMMIT = "commit"
    SYNC = "sync"
    ASYNC = "async"

    @classmethod
    def from_str(cls, value: Union[str, "BroadcastMode"]) -> "BroadcastMode":
        if isinstance(value, BroadcastMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidBroadcastMode(
                f"invalid broadcast mode '{value}': expected commit, sync or async"
            ) from None

    def __str__(self) -> str:
        return self.value


def is_sequence_conflict(info: str = "", log: str = "") -> bool:
    """
    Whether a pre-check rejection was caused by a stale sequence.

    Pre-check reports both stale sequences and insufficient balance with
    exit code 2 (SYS_SENDER_STATE_INVALID), so the code alone proves nothing
    and only a sequence or nonce message counts.
    """
    return bool(_SEQUENCE_MISMATCH.search(info or "") or _SEQUENCE_MISMATCH.search(log or ""))


def _format_err(info: str, log: str) -> str:
    return f"info: {info}; log: {log}"


def _check_failure(result: Dict[str, Any], tx_hash: Optional[str]) -> PreCheckFailed:
    code = int(result.get("code") or 0)
    info = result.get("info") or ""
    log = result.get("log") or ""
    codespace = result.get("codespace") or ""
    error_class = SequenceConflict if is_sequence_conflict(info, log) else PreCheckFailed
    return error_class(
        f"transaction rejected by pre-check (code {code}): {_format_err(info, log)}",
        code=code, info=info, log=log, codespace=codespace, tx_hash=tx_hash,
    )


class Broadcaster:
    """Submit signed transactions and shape the result per broadcast mode."""

    def __init__(
        self,
        transport: RpcTransport,
        codec: Optional[Codec] = None,
        commit_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.codec = codec or Codec()
        self.commit_timeout = commit_timeout
        self.logger = logger or logging.getLogger(__name__)

    def broadcast(
        self,
        signed: SignedTransaction,
        mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        decode: Optional[Callable[[DeliverTx], T]] = None,
    ) -> Union[AsyncTxReceipt, SyncTxReceipt, CommitTxReceipt]:
        """
        Submit a signed transaction.

        Args:
            signed: The transaction to submit
            mode: Broadcast mode (commit, sync or async)
            decode: Decoder for the return data; only used in commit mode

        Returns:
            AsyncTxReceipt, SyncTxReceipt or CommitTxReceipt depending on ``mode``

        Raises:
            SequenceConflict: Pre-check rejected a stale sequence
            PreCheckFailed: Pre-check rejected the transaction
            ExecutionFailed: The transaction was included but reverted (commit only)
            NetworkFailure: The node could not be reached
        """
        mode = BroadcastMode.from_str(mode)
        tx = self.codec.encode_chain_message(signed)
        self.logger.debug(
            f"Broadcasting message from {signed.message.from_address} "
            f"sequence {signed.message.sequence} ({mode})"
        )

        try:
            if mode == BroadcastMode.ASYNC:
                return self._async(tx)
            if mode == BroadcastMode.SYNC:
                return self._sync(tx)
            return self._commit(tx, decode)
        except RpcError as e:
            # The node refused the transaction before it reached the mempool
            info = "" if e.data is None else str(e.data)
            detail = f"{e}: {info}" if info else str(e)
            error_class = SequenceConflict if is_sequence_conflict(info, str(e)) else PreCheckFailed
            raise error_class(f"transaction rejected: {detail}", code=e.code or 0, info=info, log=detail) from e

    def _async(self, tx: bytes) -> AsyncTxReceipt:
        result = self.transport.broadcast_tx_async(tx)
        tx_hash = _hash_of(result)
        self.logger.info(f"Submitted transaction {tx_hash} (async)")
        return AsyncTxReceipt(hash=tx_hash)

    def _sync(self, tx: bytes) -> SyncTxReceipt:
        result = self.transport.broadcast_tx_sync(tx)
        tx_hash = _hash_of(result)
        if int(result.get("code") or 0) != 0:
            raise _check_failure(result, tx_hash)
        self.logger.info(f"Submitted transaction {tx_hash} (sync)")
        return SyncTxReceipt(hash=tx_hash, code=0, log=result.get("log") or "")

    def _commit(self, tx: bytes, decode: Optional[Callable[[DeliverTx], T]]) -> CommitTxReceipt:
        result = self.transport.broadcast_tx_commit(tx, timeout=self.commit_timeout)
        tx_hash = _hash_of(result)

        check_tx = result.get("check_tx") or {}
        if int(check_tx.get("code") or 0) != 0:
            raise _check_failure(check_tx, tx_hash)

        deliver_json = result.get("deliver_tx", result.get("tx_result"))
        if not isinstance(deliver_json, dict):
            raise NetworkFailure(f"commit result for {tx_hash} has no execution result")
        deliver_tx = self.codec.deliver_tx_from_json(deliver_json)
        if not deliver_tx.is_ok:
            raise ExecutionFailed(
                f"transaction {tx_hash} failed (code {deliver_tx.code}): "
                f"{_format_err(deliver_tx.info, deliver_tx.log)}",
                code=deliver_tx.code, info=deliver_tx.info, log=deliver_tx.log,
                codespace=deliver_tx.codespace, tx_hash=tx_hash,
            )

        data = None
        if decode is not None:
            try:
                data = decode(deliver_tx)
            except DecodeError:
                raise
            except (ValueError, TypeError, KeyError, IndexError) as e:
                raise DecodeError(f"error decoding data from deliver_tx in commit: {e}") from e

        height = int(result.get("height") or 0)
        self.logger.info(f"Transaction {tx_hash} committed at height {height} (gas used {deliver_tx.gas_used})")
        return CommitTxReceipt(
            hash=tx_hash,
            height=height,
            gas_used=deliver_tx.gas_used,
            gas_wanted=deliver_tx.gas_wanted,
            data=data,
        )


def _hash_of(result: Any) -> str:
    if not isinstance(result, dict) or not result.get("hash"):
        raise NetworkFailure(f"broadcast result is missing the transaction hash: {result!r}")
    return str(result["hash"])
