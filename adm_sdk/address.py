"""
Account and machine addresses.

An address has two user-facing spellings: an Ethereum-style hex string
(``0x...``) and a network-namespaced string (``f410f...`` / ``t0123``).
Both are parsed into the same canonical ``(protocol, payload)`` pair, and
equality is defined on that pair only.
"""
import base64
import hashlib
from enum import Enum, IntEnum
from typing import Any, Optional, Tuple, Union

from pydantic_core import core_schema
from web3 import Web3

from .exceptions import InvalidAddress

# Address manager namespace for Ethereum-style addresses
EAM_NAMESPACE = 10

# 0xff followed by 11 zero bytes marks an Ethereum-style alias of an ID address
_ID_MASK_PREFIX = b"\xff" + b"\x00" * 11

_CHECKSUM_LEN = 4
_MAX_SUBADDRESS_LEN = 54
_MAX_U64 = 2 ** 64 - 1


class Protocol(IntEnum):
    ID = 0
    SECP256K1 = 1
    ACTOR = 2
    BLS = 3
    DELEGATED = 4


_PAYLOAD_LENGTHS = {
    Protocol.SECP256K1: 20,
    Protocol.ACTOR: 20,
    Protocol.BLS: 48,
}


class Network(str, Enum):
    MAINNET = "f"
    TESTNET = "t"


_current_network = Network.MAINNET


def set_current_network(network: Network) -> None:
    """Set the network prefix used when rendering addresses with str()."""
    global _current_network
    _current_network = Network(network)


def use_testnet_addresses() -> None:
    """Render addresses with the testnet ``t`` prefix."""
    set_current_network(Network.TESTNET)


def current_network() -> Network:
    return _current_network


def _leb128_encode(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _leb128_decode(data: bytes) -> Tuple[int, int]:
    """Return (value, bytes consumed)."""
    result = 0
    shift = 0
    for i, byte in enumerate(data):
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if result > _MAX_U64:
                raise InvalidAddress("varint overflows u64")
            return result, i + 1
        shift += 7
        if shift > 63:
            raise InvalidAddress("varint too long")
    raise InvalidAddress("truncated varint")


def _checksum(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=_CHECKSUM_LEN).digest()


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").lower().rstrip("=")


def _b32decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 8)
    try:
        return base64.b32decode(text.upper() + padding)
    except (ValueError, TypeError) as e:
        raise InvalidAddress(f"invalid base32 payload: {e}") from e


class Address:
    """
    Canonical account/machine identifier.

    Instances are immutable and hashable; two addresses parsed from different
    spellings of the same identity compare equal.
    """

    __slots__ = ("_protocol", "_payload")

    def __init__(self, protocol: Union[Protocol, int], payload: bytes):
        protocol = Protocol(protocol)
        payload = bytes(payload)
        self._validate_payload(protocol, payload)
        self._protocol = protocol
        self._payload = payload

    @staticmethod
    def _validate_payload(protocol: Protocol, payload: bytes) -> None:
        if protocol == Protocol.ID:
            value, used = _leb128_decode(payload)
            if used != len(payload):
                raise InvalidAddress("trailing bytes after ID payload")
        elif protocol == Protocol.DELEGATED:
            _, used = _leb128_decode(payload)
            if len(payload) - used > _MAX_SUBADDRESS_LEN:
                raise InvalidAddress("delegated subaddress too long")
        elif len(payload) != _PAYLOAD_LENGTHS[protocol]:
            raise InvalidAddress(
                f"invalid payload length {len(payload)} for protocol {protocol.name}"
            )

    # ------------------------------------------------------------------ #
    # Constructors
    # ------------------------------------------------------------------ #
    @classmethod
    def new_id(cls, actor_id: int) -> "Address":
        if actor_id < 0 or actor_id > _MAX_U64:
            raise InvalidAddress(f"actor ID out of range: {actor_id}")
        return cls(Protocol.ID, _leb128_encode(actor_id))

    @classmethod
    def new_delegated(cls, namespace: int, subaddress: bytes) -> "Address":
        return cls(Protocol.DELEGATED, _leb128_encode(namespace) + bytes(subaddress))

    @classmethod
    def from_eth(cls, eth_address: Union[str, bytes]) -> "Address":
        """
        Convert an Ethereum-style address.

        Masked ID aliases (``0xff000...``) map back to ID addresses; everything
        else becomes a delegated address in the EAM namespace.
        """
        if isinstance(eth_address, str):
            text = eth_address[2:] if eth_address.lower().startswith("0x") else eth_address
            try:
                raw = bytes.fromhex(text)
            except ValueError as e:
                raise InvalidAddress(f"invalid hex address '{eth_address}': {e}") from e
        else:
            raw = bytes(eth_address)
        if len(raw) != 20:
            raise InvalidAddress(f"Ethereum address must be 20 bytes, got {len(raw)}")
        if raw.startswith(_ID_MASK_PREFIX):
            return cls.new_id(int.from_bytes(raw[12:], "big"))
        return cls.new_delegated(EAM_NAMESPACE, raw)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Address":
        data = bytes(data)
        if not data:
            raise InvalidAddress("empty address bytes")
        try:
            protocol = Protocol(data[0])
        except ValueError as e:
            raise InvalidAddress(f"unknown address protocol {data[0]}") from e
        return cls(protocol, data[1:])

    @classmethod
    def from_string(cls, text: str) -> "Address":
        """Parse an ``f``/``t`` network address string."""
        if len(text) < 3 or text[0] not in ("f", "t"):
            raise InvalidAddress(f"unknown network in address '{text}'")
        try:
            protocol = Protocol(int(text[1]))
        except ValueError as e:
            raise InvalidAddress(f"unknown protocol in address '{text}'") from e
        body = text[2:]

        if protocol == Protocol.ID:
            if not body.isdigit():
                raise InvalidAddress(f"invalid ID address '{text}'")
            return cls.new_id(int(body))

        if protocol == Protocol.DELEGATED:
            namespace, sep, encoded = body.partition("f")
            if not sep or not namespace.isdigit():
                raise InvalidAddress(f"invalid delegated address '{text}'")
            raw = _b32decode(encoded)
            if len(raw) < _CHECKSUM_LEN:
                raise InvalidAddress(f"delegated address too short '{text}'")
            payload = _leb128_encode(int(namespace)) + raw[:-_CHECKSUM_LEN]
        else:
            raw = _b32decode(body)
            if len(raw) < _CHECKSUM_LEN:
                raise InvalidAddress(f"address too short '{text}'")
            payload = raw[:-_CHECKSUM_LEN]

        address = cls(protocol, payload)
        if _checksum(address.to_bytes()) != raw[-_CHECKSUM_LEN:]:
            raise InvalidAddress(f"invalid checksum in address '{text}'")
        return address

    @classmethod
    def parse(cls, value: Union["Address", str, bytes]) -> "Address":
        """Parse any accepted spelling into a canonical address."""
        if isinstance(value, Address):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(value)
        if not isinstance(value, str):
            raise InvalidAddress(f"cannot parse address from {type(value).__name__}")
        text = value.strip()
        if text.lower().startswith("0x"):
            return cls.from_eth(text)
        return cls.from_string(text)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #
    @property
    def protocol(self) -> Protocol:
        return self._protocol

    @property
    def payload(self) -> bytes:
        return self._payload

    @property
    def actor_id(self) -> int:
        if self._protocol != Protocol.ID:
            raise InvalidAddress("not an ID address")
        return _leb128_decode(self._payload)[0]

    @property
    def namespace(self) -> int:
        if self._protocol != Protocol.DELEGATED:
            raise InvalidAddress("not a delegated address")
        return _leb128_decode(self._payload)[0]

    @property
    def subaddress(self) -> bytes:
        if self._protocol != Protocol.DELEGATED:
            raise InvalidAddress("not a delegated address")
        _, used = _leb128_decode(self._payload)
        return self._payload[used:]

    def to_bytes(self) -> bytes:
        return bytes([self._protocol]) + self._payload

    def to_string(self, network: Optional[Network] = None) -> str:
        prefix = Network(network or _current_network).value
        head = f"{prefix}{int(self._protocol)}"
        if self._protocol == Protocol.ID:
            return f"{head}{self.actor_id}"
        checksum = _checksum(self.to_bytes())
        if self._protocol == Protocol.DELEGATED:
            return f"{head}{self.namespace}f{_b32encode(self.subaddress + checksum)}"
        return f"{head}{_b32encode(self._payload + checksum)}"

    def to_eth(self) -> str:
        """
        Return the EIP-55 checksummed Ethereum form.

        Only EAM delegated addresses and ID addresses have one.
        """
        if self._protocol == Protocol.ID:
            raw = _ID_MASK_PREFIX + self.actor_id.to_bytes(8, "big")
        elif (
            self._protocol == Protocol.DELEGATED
            and self.namespace == EAM_NAMESPACE
            and len(self.subaddress) == 20
        ):
            raw = self.subaddress
        else:
            raise InvalidAddress(f"address {self} has no Ethereum representation")
        return Web3.to_checksum_address("0x" + raw.hex())

    # ------------------------------------------------------------------ #
    # Dunder / pydantic integration
    # ------------------------------------------------------------------ #
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self._protocol == other._protocol and self._payload == other._payload

    def __hash__(self) -> int:
        return hash((int(self._protocol), self._payload))

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"Address('{self.to_string()}')"

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )


# Well-known singleton actors
SYSTEM_ACTOR_ADDR = Address.new_id(0)
ADM_ACTOR_ADDR = Address.new_id(17)
