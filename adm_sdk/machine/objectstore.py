"""
Object store machine: an S3-like key/object namespace.

Small objects (up to 1024 bytes) are stored on-chain (``Internal``). Larger
objects are staged through the object data transport and only referenced
on-chain by CID (``External``); those become ``resolved`` once the network
has confirmed the bytes are available.
"""
import logging
from typing import Any, List, Optional, Tuple, Union

from ..broadcast import BroadcastMode
from ..codec import cid_tag, decode_cid, method_hash
from ..exceptions import DecodeError, NotFound, ObjectError
from ..height import Height
from ..listing import list_objects
from ..models import (
    MAX_LIST_LIMIT, ExternalState, GasParams, InternalState, ListingQuery, ListingResult, ObjectEntry,
    ObjectRef, ObjectState, StoredObject, TxReceipt,
)
from ..provider import HeightLike, Provider, local_message
from ..signer import Signer
from . import Machine, MachineKind

logger = logging.getLogger(__name__)

MAX_INTERNAL_OBJECT_LENGTH = 1024

PUT_OBJECT_METHOD = method_hash("PutObject")
DELETE_OBJECT_METHOD = method_hash("DeleteObject")
GET_OBJECT_METHOD = method_hash("GetObject")
LIST_OBJECTS_METHOD = method_hash("ListObjects")

Key = Union[str, bytes]


def _key_bytes(key: Key) -> bytes:
    data = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    if not data:
        raise ObjectError("object key must not be empty")
    return data


def parse_range(range_spec: str, size: int) -> Tuple[int, int]:
    """
    Parse an HTTP-style byte range (``start-end``, ``start-`` or ``-suffix``).

    Returns:
        Inclusive (start, end) byte positions

    Raises:
        ObjectError: If the range is malformed or does not fit the object
    """
    parts = range_spec.split("-")
    if len(parts) != 2:
        raise ObjectError("invalid range format")
    first, last = parts
    try:
        if first and last:
            start, end = int(first), int(last)
        elif first:
            start, end = int(first), size - 1
        elif last:
            suffix = int(last)
            start, end = (0, size - 1) if suffix > size else (size - suffix, size - 1)
        else:
            start, end = 0, size - 1
    except ValueError as e:
        raise ObjectError(f"invalid range format: {e}") from e
    if start < 0 or start > end or end >= size:
        raise ObjectError("invalid range")
    return start, end


def decode_object_state(value: Any) -> Tuple[ObjectState, Optional[bytes]]:
    """Decode an object variant into its state and, for internal objects, its bytes."""
    if not isinstance(value, dict) or len(value) != 1:
        raise DecodeError(f"expected object variant, got {value!r}")
    kind, body = next(iter(value.items()))
    if kind == "Internal":
        data = bytes(body)
        return InternalState(size=len(data)), data
    if kind == "External":
        if not isinstance(body, (list, tuple)) or len(body) != 2:
            raise DecodeError(f"expected (cid, resolved) for external object, got {body!r}")
        cid, resolved = body
        return ExternalState(content_ref=decode_cid(cid), resolved=bool(resolved)), None
    raise DecodeError(f"unknown object kind '{kind}'")


class ObjectStore(Machine):
    """A machine for S3-like object storage."""

    KIND = MachineKind.OBJECT_STORE

    def add(
        self,
        provider: Provider,
        signer: Signer,
        key: Key,
        data: bytes,
        overwrite: bool = False,
        broadcast_mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        gas_params: Optional[GasParams] = None,
    ) -> TxReceipt:
        """
        Store a small object on-chain.

        Raises:
            ObjectError: If the object is empty or larger than 1024 bytes
        """
        data = bytes(data)
        if not data:
            raise ObjectError("cannot add an empty object")
        if len(data) > MAX_INTERNAL_OBJECT_LENGTH:
            raise ObjectError(
                f"object is {len(data)} bytes; objects over {MAX_INTERNAL_OBJECT_LENGTH} bytes "
                f"must be staged externally and added with add_external"
            )
        params = provider.codec.encode_params([_key_bytes(key), {"Internal": data}, overwrite])
        return self._put(provider, signer, params, broadcast_mode, gas_params)

    def add_external(
        self,
        provider: Provider,
        signer: Signer,
        key: Key,
        cid: str,
        overwrite: bool = False,
        broadcast_mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        gas_params: Optional[GasParams] = None,
    ) -> TxReceipt:
        """Reference bytes already staged through the object data transport."""
        key_bytes = _key_bytes(key)
        params = provider.codec.encode_params([key_bytes, {"External": cid_tag(cid)}, overwrite])
        obj = ObjectRef(key=key_bytes, cid=cid, address=self.address)
        return self._put(provider, signer, params, broadcast_mode, gas_params, obj)

    def _put(self, provider, signer, params, broadcast_mode, gas_params, obj=None) -> TxReceipt:
        codec = provider.codec
        return provider.transaction(
            signer,
            self.address,
            PUT_OBJECT_METHOD,
            params,
            gas_params=gas_params,
            broadcast_mode=broadcast_mode,
            decode=lambda tx: decode_cid(codec.decode_result(tx, "Cid")),
            object=obj,
        )

    def delete(
        self,
        provider: Provider,
        signer: Signer,
        key: Key,
        broadcast_mode: Union[BroadcastMode, str] = BroadcastMode.COMMIT,
        gas_params: Optional[GasParams] = None,
    ) -> TxReceipt:
        """Delete an object."""
        codec = provider.codec
        return provider.transaction(
            signer,
            self.address,
            DELETE_OBJECT_METHOD,
            codec.encode_params([_key_bytes(key)]),
            gas_params=gas_params,
            broadcast_mode=broadcast_mode,
            decode=lambda tx: decode_cid(codec.decode_result(tx, "Cid")),
        )

    def get(
        self,
        provider: Provider,
        key: Key,
        height: HeightLike = Height.COMMITTED,
        range: Optional[str] = None,
    ) -> StoredObject:
        """
        Get an object at the given key and height.

        Internal bytes are returned inline, sliced by ``range`` when given.
        External objects only carry their state; fetch the bytes by CID.

        Raises:
            NotFound: If no object is stored at the key
            ObjectError: If the range does not fit the object
        """
        key_bytes = _key_bytes(key)
        codec = provider.codec
        message = local_message(self.address, GET_OBJECT_METHOD, codec.encode_params([key_bytes]))
        response = provider.call(message, height, lambda tx: codec.decode_result(tx, "Option<Object>"))
        if response.value is None:
            raise NotFound(f"object not found for key '{key_bytes.decode('utf-8', errors='replace')}'")

        state, data = decode_object_state(response.value)
        if data is not None and range is not None:
            start, end = parse_range(range, len(data))
            data = data[start:end + 1]
        return StoredObject(key=key_bytes, state=state, data=data)

    def entries(
        self, provider: Provider, height: HeightLike = Height.COMMITTED, prefix: Key = b""
    ) -> List[ObjectEntry]:
        """
        All (key, state) pairs under ``prefix``, in insertion order.

        The remote engine returns at most MAX_LIST_LIMIT entries per call, so
        this pages through the flat listing until a short page comes back.
        Every page after the first is read at the first page's height.
        """
        prefix_bytes = prefix.encode("utf-8") if isinstance(prefix, str) else bytes(prefix)
        codec = provider.codec
        entries: List[ObjectEntry] = []
        offset = 0
        query_height = height
        while True:
            # Flat listing: no delimiter
            params = codec.encode_params([prefix_bytes, b"", offset, MAX_LIST_LIMIT])
            message = local_message(self.address, LIST_OBJECTS_METHOD, params)
            response = provider.call(message, query_height, lambda tx: codec.decode_result(tx, "ObjectList"))
            page = self._decode_entries(response.value)
            entries.extend(page)
            if len(page) < MAX_LIST_LIMIT:
                return entries
            offset += len(page)
            query_height = response.height
            logger.debug(f"Listing {self.address} continues at offset {offset} (height {query_height})")

    @staticmethod
    def _decode_entries(value: Any) -> List[ObjectEntry]:
        if value is None:
            return []
        if isinstance(value, dict):
            objects = value.get("objects", [])
        elif isinstance(value, (list, tuple)) and value:
            objects = value[0]
        else:
            raise DecodeError(f"error parsing as ObjectList: {value!r}")
        entries = []
        for item in objects or []:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise DecodeError(f"expected (key, object) pair, got {item!r}")
            key, obj = item
            state, _ = decode_object_state(obj)
            entries.append(ObjectEntry(key=bytes(key), state=state))
        return entries

    def query(
        self,
        provider: Provider,
        listing: Optional[ListingQuery] = None,
        height: HeightLike = Height.COMMITTED,
    ) -> ListingResult:
        """
        List objects with S3-style prefix/delimiter grouping.

        Raw entries are read at ``height`` and grouped locally, so repeated
        queries at a fixed height return identical results.
        """
        listing = listing or ListingQuery()
        return list_objects(self.entries(provider, height, listing.prefix_bytes), listing)
