"""
Wire codec for the ADM SDK.

Queries, chain messages, actor parameters and return values travel as
IPLD DAG-CBOR (encoded with ``cbor2``). Read-only call results additionally
wrap an ABCI ``ResponseDeliverTx`` protobuf, decoded with ``protobuf`` from a
descriptor built at import time.

The ``Codec`` class is the default actor/ABI encoding capability; callers may
pass their own object with the same methods to a ``Provider``.
"""
import base64
import hashlib
import logging
from typing import Any, Dict, List, Optional

import base58
import cbor2
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError as ProtoDecodeError

from .address import Address, Protocol
from .exceptions import DecodeError
from .models import (
    ActorState, DeliverTx, GasEstimate, ObjectRef, SignedTransaction, StateParams,
    UnsignedMessage,
)

logger = logging.getLogger(__name__)

# IPLD link tag
CID_TAG = 42

# Signature type prefixes
SIG_TYPE_SECP256K1 = 1
SIG_TYPE_DELEGATED = 3

# Plain value transfer
METHOD_SEND = 0

# Hashed method numbers start above the reserved range
_FIRST_HASHED_METHOD = 1 << 24


def method_hash(name: str) -> int:
    """
    Derive an actor method number from its exported name.

    The number is the first big-endian 32-bit word of blake2b-512(``"1|" + name``)
    that falls outside the reserved range.
    """
    if not name or not (name[0].isupper() or name[0] == "_"):
        raise ValueError(f"invalid method name '{name}'")
    digest = hashlib.blake2b(f"1|{name}".encode(), digest_size=64).digest()
    for i in range(0, len(digest), 4):
        number = int.from_bytes(digest[i:i + 4], "big")
        if number >= _FIRST_HASHED_METHOD:
            return number
    raise ValueError(f"no valid method number for '{name}'")


# ---------------------------------------------------------------------------
# CIDs
# ---------------------------------------------------------------------------


def cid_to_string(raw: bytes) -> str:
    """Render binary CID bytes; CIDv0 as base58btc, CIDv1 as multibase base32."""
    raw = bytes(raw)
    if len(raw) == 34 and raw[0] == 0x12 and raw[1] == 0x20:
        return base58.b58encode(raw).decode("ascii")
    return "b" + base64.b32encode(raw).decode("ascii").lower().rstrip("=")


def cid_from_string(text: str) -> bytes:
    """Parse a CID string produced by cid_to_string (or any base32/base58 CID)."""
    try:
        if text.startswith("Qm") and len(text) == 46:
            return base58.b58decode(text)
        if text.startswith("b"):
            body = text[1:].upper()
            return base64.b32decode(body + "=" * (-len(body) % 8))
    except ValueError as e:
        raise DecodeError(f"invalid CID '{text}': {e}") from e
    raise DecodeError(f"unsupported CID encoding '{text}'")


def cid_tag(text: str) -> cbor2.CBORTag:
    """Wrap a CID string as a DAG-CBOR link."""
    return cbor2.CBORTag(CID_TAG, b"\x00" + cid_from_string(text))


def decode_cid(value: Any) -> str:
    """Decode a DAG-CBOR link (tag 42) into a CID string."""
    if isinstance(value, cbor2.CBORTag) and value.tag == CID_TAG:
        raw = bytes(value.value)
        return cid_to_string(raw[1:] if raw[:1] == b"\x00" else raw)
    if isinstance(value, (bytes, bytearray)):
        return cid_to_string(value)
    raise DecodeError(f"expected CID link, got {type(value).__name__}")


# ---------------------------------------------------------------------------
# Token amounts (sign-prefixed big-endian big integers)
# ---------------------------------------------------------------------------


def encode_bigint(value: int) -> bytes:
    if value == 0:
        return b""
    sign = b"\x00" if value > 0 else b"\x01"
    magnitude = abs(value)
    return sign + magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "big")


def decode_bigint(raw: bytes) -> int:
    raw = bytes(raw)
    if not raw:
        return 0
    magnitude = int.from_bytes(raw[1:], "big")
    if raw[0] == 0:
        return magnitude
    if raw[0] == 1:
        return -magnitude
    raise DecodeError(f"invalid big integer sign byte {raw[0]}")


# ---------------------------------------------------------------------------
# ABCI ResponseDeliverTx
# ---------------------------------------------------------------------------

_FieldType = descriptor_pb2.FieldDescriptorProto

_DELIVER_TX_FIELDS = (
    (1, "code", _FieldType.TYPE_UINT32),
    (2, "data", _FieldType.TYPE_BYTES),
    (3, "log", _FieldType.TYPE_STRING),
    (4, "info", _FieldType.TYPE_STRING),
    (5, "gas_wanted", _FieldType.TYPE_INT64),
    (6, "gas_used", _FieldType.TYPE_INT64),
    (8, "codespace", _FieldType.TYPE_STRING),
)


def _build_deliver_tx_class():
    proto = descriptor_pb2.FileDescriptorProto()
    proto.name = "adm_sdk/abci_deliver_tx.proto"
    proto.package = "adm_sdk.abci"
    proto.syntax = "proto3"
    message = proto.message_type.add()
    message.name = "ResponseDeliverTx"
    for number, name, field_type in _DELIVER_TX_FIELDS:
        field = message.field.add()
        field.name = name
        field.number = number
        field.type = field_type
        field.label = _FieldType.LABEL_OPTIONAL
    pool = descriptor_pool.DescriptorPool()
    pool.Add(proto)
    return message_factory.GetMessageClass(
        pool.FindMessageTypeByName("adm_sdk.abci.ResponseDeliverTx")
    )


ResponseDeliverTx = _build_deliver_tx_class()


def _as_bytes(value: Any, what: str) -> bytes:
    """IPLD may carry byte strings either as CBOR bytes or as arrays of u8."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, list):
        try:
            return bytes(value)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"invalid byte array in {what}: {e}") from e
    raise DecodeError(f"expected bytes in {what}, got {type(value).__name__}")


def _field(value: Any, name: str, index: int) -> Any:
    """Read a struct field that may be encoded as a map or as a tuple."""
    if isinstance(value, dict):
        return value.get(name)
    if isinstance(value, (list, tuple)):
        return value[index] if index < len(value) else None
    raise DecodeError(f"expected struct, got {type(value).__name__}")


class Codec:
    """Default DAG-CBOR / protobuf codec."""

    # ------------------------------------------------------------------ #
    # Generic helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def dumps(value: Any) -> bytes:
        return cbor2.dumps(value, canonical=True)

    @staticmethod
    def loads(data: bytes, what: str = "value") -> Any:
        try:
            return cbor2.loads(data)
        except (cbor2.CBORDecodeError, ValueError) as e:
            raise DecodeError(f"failed to decode {what}: {e}") from e

    # ------------------------------------------------------------------ #
    # Encoding
    # ------------------------------------------------------------------ #
    def message_fields(self, message: UnsignedMessage) -> List[Any]:
        return [
            message.version,
            message.to.to_bytes(),
            message.from_address.to_bytes(),
            message.sequence,
            encode_bigint(message.value),
            message.method_num,
            message.params,
            message.gas_limit,
            encode_bigint(message.gas_fee_cap),
            encode_bigint(message.gas_premium),
        ]

    def encode_message(self, message: UnsignedMessage) -> bytes:
        """Canonical encoding of an unsigned message; this is what gets signed."""
        return self.dumps(self.message_fields(message))

    def _object_fields(self, obj: Optional[ObjectRef]) -> Optional[List[Any]]:
        if obj is None:
            return None
        return [obj.key, cid_tag(obj.cid), obj.address.to_bytes()]

    def encode_signing_payload(self, message: UnsignedMessage, obj: Optional[ObjectRef], chain_id: int) -> bytes:
        return self.dumps([self.message_fields(message), self._object_fields(obj), chain_id])

    def encode_chain_message(self, signed: SignedTransaction) -> bytes:
        """Serialize a signed transaction for inclusion in a CometBFT transaction."""
        sig_type = (
            SIG_TYPE_DELEGATED
            if signed.message.from_address.protocol == Protocol.DELEGATED
            else SIG_TYPE_SECP256K1
        )
        body = [
            self.message_fields(signed.message),
            bytes([sig_type]) + signed.signature,
            self._object_fields(signed.object),
        ]
        return self.dumps({"Signed": body})

    def encode_query(self, kind: str, payload: Any = None) -> bytes:
        """
        Encode an FVM query.

        ``kind`` is one of Call, EstimateGas, ActorState, StateParams, BuiltinActors, Ipld.
        """
        if kind in ("Call", "EstimateGas"):
            return self.dumps({kind: self.message_fields(payload)})
        if kind == "ActorState":
            return self.dumps({kind: Address.parse(payload).to_bytes()})
        if kind == "Ipld":
            return self.dumps({kind: cid_tag(payload)})
        if payload is not None:
            raise ValueError(f"query {kind} takes no payload")
        return self.dumps(kind)

    def encode_params(self, params: Any) -> bytes:
        """Encode actor method parameters. None encodes as empty params."""
        if params is None:
            return b""
        return self.dumps(params)

    # ------------------------------------------------------------------ #
    # Decoding
    # ------------------------------------------------------------------ #
    def decode_return(self, data: bytes, what: str = "return value") -> Any:
        if not data:
            return None
        return self.loads(data, what)

    def decode_data(self, deliver_tx: DeliverTx) -> bytes:
        """Return the raw return bytes of an executed message."""
        return bytes(deliver_tx.data)

    def decode_result(self, deliver_tx: DeliverTx, what: str = "return value") -> Any:
        """Decode the CBOR return value of an executed message (None when empty)."""
        return self.decode_return(self.decode_data(deliver_tx), what)

    def decode_actor_state(self, key: bytes, value: bytes) -> ActorState:
        actor_id = self.loads(key, "actor ID")
        state = self.loads(value, "actor state")
        if not isinstance(actor_id, int):
            raise DecodeError(f"expected actor ID integer, got {type(actor_id).__name__}")
        delegated = _field(state, "delegated_address", 4)
        return ActorState(
            actor_id=actor_id,
            code=decode_cid(_field(state, "code", 0)),
            state=decode_cid(_field(state, "state", 1)),
            sequence=_field(state, "sequence", 2),
            balance=decode_bigint(_field(state, "balance", 3) or b""),
            delegated_address=Address.from_bytes(delegated) if delegated else None,
        )

    def decode_gas_estimate(self, value: bytes) -> GasEstimate:
        estimate = self.loads(value, "gas estimate")
        return GasEstimate(
            exit_code=_field(estimate, "exit_code", 0) or 0,
            info=_field(estimate, "info", 1) or "",
            gas_limit=_field(estimate, "gas_limit", 2) or 0,
        )

    def decode_state_params(self, value: bytes) -> StateParams:
        params = self.loads(value, "state params")
        if isinstance(params, dict):
            return StateParams(
                base_fee=decode_bigint(params.get("base_fee") or b""),
                circ_supply=decode_bigint(params.get("circ_supply") or b""),
                chain_id=params.get("chain_id", 0),
                network_version=params.get("network_version", 0),
            )
        # tuple layout: state_root, timestamp, network_version, base_fee, circ_supply, chain_id, ...
        return StateParams(
            network_version=_field(params, "network_version", 2) or 0,
            base_fee=decode_bigint(_field(params, "base_fee", 3) or b""),
            circ_supply=decode_bigint(_field(params, "circ_supply", 4) or b""),
            chain_id=_field(params, "chain_id", 5) or 0,
        )

    def decode_deliver_tx(self, value: bytes) -> DeliverTx:
        """Decode the result of a Call query: IPLD bytes wrapping a protobuf ResponseDeliverTx."""
        raw = _as_bytes(self.loads(value, "call result"), "call result")
        message = ResponseDeliverTx()
        try:
            message.ParseFromString(raw)
        except ProtoDecodeError as e:
            raise DecodeError(f"failed to deserialize ResponseDeliverTx: {e}") from e
        return DeliverTx(
            code=message.code,
            data=message.data,
            log=message.log,
            info=message.info,
            gas_wanted=message.gas_wanted,
            gas_used=message.gas_used,
            codespace=message.codespace,
        )

    @staticmethod
    def deliver_tx_from_json(result: Dict[str, Any]) -> DeliverTx:
        """
        Build a DeliverTx from a CometBFT JSON result.

        The node wraps the return bytes twice: the JSON ``data`` field is base64
        of the ASCII base64 text of the actual bytes.
        """
        data = result.get("data") or ""
        try:
            text = base64.b64decode(data, validate=True) if data else b""
            raw = base64.b64decode(text, validate=True) if text else b""
        except ValueError as e:
            raise DecodeError(f"error parsing base64 data in tx result: {e}") from e
        return DeliverTx(
            code=int(result.get("code") or 0),
            data=raw,
            log=result.get("log") or "",
            info=result.get("info") or "",
            gas_wanted=int(result.get("gas_wanted") or 0),
            gas_used=int(result.get("gas_used") or 0),
            codespace=result.get("codespace") or "",
        )
