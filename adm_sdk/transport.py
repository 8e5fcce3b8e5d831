"""
Transport layer for the CometBFT JSON-RPC endpoint.

This module defines the transport abstraction used by the provider and an
HTTP implementation built on ``requests``. Failures are split in two kinds:
``NetworkFailure`` when the node could not be reached or answered with
something that is not a JSON-RPC envelope, and ``RpcError`` when the node
answered with a well-formed JSON-RPC error object.
"""
import base64
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ._rate_limited_log import rate_limited_log
from .exceptions import NetworkFailure, RpcError

logger = logging.getLogger(__name__)


class RpcTransport(ABC):
    """
    Abstract base class for JSON-RPC transports.

    Implementations only move envelopes; they know nothing about queries,
    messages or broadcast modes.
    """

    @abstractmethod
    def request(self, method: str, params: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        """
        Send one JSON-RPC request and return its ``result`` member.

        Raises:
            NetworkFailure: On timeouts, refused connections or malformed envelopes
            RpcError: When the node returns a JSON-RPC error object
        """
        pass

    def close(self) -> None:
        """Release any resources held by the transport."""
        pass

    # ------------------------------------------------------------------ #
    # CometBFT helpers
    # ------------------------------------------------------------------ #
    def abci_query(self, data: bytes, height: int, path: str = "") -> Dict[str, Any]:
        """Run an ABCI query and return the ``response`` object."""
        result = self.request(
            "abci_query",
            {"path": path, "data": data.hex(), "height": str(height), "prove": False},
        )
        response = result.get("response") if isinstance(result, dict) else None
        if not isinstance(response, dict):
            raise NetworkFailure(f"malformed abci_query result: {result!r}")
        return response

    def broadcast_tx_async(self, tx: bytes) -> Dict[str, Any]:
        return self.request("broadcast_tx_async", {"tx": _b64(tx)})

    def broadcast_tx_sync(self, tx: bytes) -> Dict[str, Any]:
        return self.request("broadcast_tx_sync", {"tx": _b64(tx)})

    def broadcast_tx_commit(self, tx: bytes, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.request("broadcast_tx_commit", {"tx": _b64(tx)}, timeout=timeout)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class HttpRpcTransport(RpcTransport):
    """
    JSON-RPC 2.0 over HTTP POST.

    Connection-level failures are retried by urllib3 before surfacing as
    ``NetworkFailure``; POST requests are never replayed once the node has
    answered, so a broadcast is submitted at most once per call.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        retry_count: int = 3,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

        self.session = session or requests.Session()
        if session is None:
            retries = Retry(
                total=retry_count,
                backoff_factor=0.5,
                connect=retry_count,
                read=0,
                status=0,
                other=retry_count,
                allowed_methods=["POST"],
                raise_on_status=False,
            )
            self.session.mount("http://", HTTPAdapter(max_retries=retries))
            self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def _next_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def request(self, method: str, params: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        request_id = self._next_id()
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        self.logger.debug(f"JSON-RPC request {request_id}: {method}")

        try:
            response = self.session.post(self.url, json=payload, timeout=timeout or self.timeout)
        except requests.Timeout as e:
            rate_limited_log(f"Timeout calling {method} on {self.url}", logger_instance=self.logger)
            raise NetworkFailure(f"{method} timed out: {e}") from e
        except requests.RequestException as e:
            rate_limited_log(f"Cannot reach {self.url}: {type(e).__name__}", logger_instance=self.logger)
            raise NetworkFailure(f"{method} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkFailure(
                f"{method} returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(body, dict):
            raise NetworkFailure(f"{method} returned a malformed JSON-RPC envelope")

        error = body.get("error")
        if error is not None:
            if not isinstance(error, dict):
                raise NetworkFailure(f"{method} returned a malformed JSON-RPC error: {error!r}")
            message = error.get("message") or "unknown error"
            data = error.get("data")
            self.logger.debug(f"JSON-RPC error for {method}: {message} ({data})")
            raise RpcError(
                f"{message}: {data}" if data else message,
                code=error.get("code"),
                data=data,
            )

        if "result" not in body:
            if response.status_code >= 400:
                raise NetworkFailure(f"{method} failed with HTTP {response.status_code}")
            raise NetworkFailure(f"{method} response is missing 'result'")
        return body["result"]

    def close(self) -> None:
        self.session.close()

    def __repr__(self) -> str:
        return f"HttpRpcTransport({self.url!r})"
