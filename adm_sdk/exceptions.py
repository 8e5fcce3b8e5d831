"""
Exceptions for the ADM SDK.

Callers (CLIs, SDK consumers) branch on the exception type to render
different messages, so each failure keeps its own kind all the way up.
"""
from typing import Any, Optional


class AdmError(Exception):
    """Base exception for all ADM SDK errors."""
    pass


class InvalidHeight(AdmError, ValueError):
    """Raised when a query height token cannot be parsed."""
    pass


class InvalidAddress(AdmError, ValueError):
    """Raised when an address string or payload is malformed."""
    pass


class InvalidBroadcastMode(AdmError, ValueError):
    """Raised when a broadcast mode token is not commit, sync or async."""
    pass


class DecodeError(AdmError):
    """Raised when a remote value cannot be decoded into the expected type."""
    pass


class ObjectError(AdmError):
    """Raised for invalid object store input (empty objects, bad ranges, ...)."""
    pass


class NotFound(AdmError):
    """Raised when a query targets a nonexistent address, machine, key or index."""
    pass


class NetworkFailure(AdmError):
    """
    Raised for transport-level failures.

    Covers timeouts, refused connections and malformed JSON-RPC envelopes.
    These are independent of whether the transaction or query itself is valid.
    """
    pass


class RpcError(AdmError):
    """Raised when the node answers with a well-formed JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class _ResultError(AdmError):
    """Shared shape for errors carrying an ABCI result code."""

    def __init__(
        self,
        message: str,
        code: int = 0,
        info: str = "",
        log: str = "",
        codespace: str = "",
        tx_hash: Optional[str] = None,
    ):
        self.code = code
        self.info = info
        self.log = log
        self.codespace = codespace
        self.tx_hash = tx_hash
        super().__init__(message)


class PreCheckFailed(_ResultError):
    """Raised when a transaction is rejected before broadcast (CheckTx)."""
    pass


class SequenceConflict(PreCheckFailed):
    """Raised when CheckTx rejects a transaction because its sequence is stale."""
    pass


class ExecutionFailed(_ResultError):
    """
    Raised when a method reverted.

    For transactions this means the message was included in a block and
    failed during execution. For read-only calls it means the call reverted.
    """
    pass
