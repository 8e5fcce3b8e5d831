"""
Accumulator machine: an append-only Merkle mountain range.
"""
import logging
from typing import Any, List, Optional, Union

from ..broadcast import BroadcastMode
from ..codec import decode_cid, method_hash
from ..exceptions import DecodeError, NotFound, ObjectError
from ..height import Height
from ..models import DeliverTx, GasParams, PushReturn, TxReceipt
from ..provider import HeightLike, Provider, local_message
from ..signer import Signer
from . import Machine, MachineKind

logger = logging.getLogger(__name__)

MAX_ACC_PAYLOAD_SIZE = 1024 * 500

PUSH_METHOD = method_hash("Push")
GET_METHOD = method_hash("Get")
COUNT_METHOD = method_hash("Count")
PEAKS_METHOD = method_hash("Peaks")
ROOT_METHOD = method_hash("Root")


class Accumulator(Machine):
    """A machine for verifiable append-only logs."""

    KIND = MachineKind.ACCUMULATOR

    def push(
        self,
        provider: Provider,
        signer: Signer,
        payload: bytes,
        broadcast_mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        gas_params: Optional[GasParams] = None,
    ) -> TxReceipt:
        """
        Append a leaf.

        Raises:
            ObjectError: If the payload exceeds 500 KiB
        """
        payload = bytes(payload)
        if len(payload) > MAX_ACC_PAYLOAD_SIZE:
            raise ObjectError(f"max payload size is {MAX_ACC_PAYLOAD_SIZE} bytes")
        codec = provider.codec

        def decode_push(deliver_tx: DeliverTx) -> PushReturn:
            value = codec.decode_result(deliver_tx, "PushReturn")
            if isinstance(value, dict):
                root, index = value.get("root"), value.get("index")
            elif isinstance(value, (list, tuple)) and len(value) == 2:
                root, index = value
            else:
                raise DecodeError(f"error parsing as PushReturn: {value!r}")
            return PushReturn(root=decode_cid(root), index=index)

        return provider.transaction(
            signer,
            self.address,
            PUSH_METHOD,
            codec.encode_params(payload),
            gas_params=gas_params,
            broadcast_mode=broadcast_mode,
            decode=decode_push,
        )

    def _call(self, provider: Provider, method_num: int, params: Any, height: HeightLike, what: str) -> Any:
        codec = provider.codec
        message = local_message(self.address, method_num, codec.encode_params(params))
        return provider.call(message, height, lambda tx: codec.decode_result(tx, what)).value

    def leaf(self, provider: Provider, index: int, height: HeightLike = Height.COMMITTED) -> bytes:
        """
        Get the leaf at ``index``.

        Raises:
            NotFound: If there is no leaf at the index
        """
        value = self._call(provider, GET_METHOD, index, height, "leaf")
        if value is None:
            raise NotFound(f"leaf not found at index '{index}'")
        if isinstance(value, list):
            return bytes(value)
        if not isinstance(value, (bytes, bytearray)):
            raise DecodeError(f"error parsing leaf as bytes: {value!r}")
        return bytes(value)

    def count(self, provider: Provider, height: HeightLike = Height.COMMITTED) -> int:
        value = self._call(provider, COUNT_METHOD, None, height, "count")
        if not isinstance(value, int):
            raise DecodeError(f"error parsing count as integer: {value!r}")
        return value

    def peaks(self, provider: Provider, height: HeightLike = Height.COMMITTED) -> List[str]:
        value = self._call(provider, PEAKS_METHOD, None, height, "peaks")
        return [decode_cid(item) for item in value or []]

    def root(self, provider: Provider, height: HeightLike = Height.COMMITTED) -> str:
        return decode_cid(self._call(provider, ROOT_METHOD, None, height, "root"))
