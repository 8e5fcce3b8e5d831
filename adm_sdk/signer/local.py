"""
Local secp256k1 signer backed by eth_account.
"""
import hashlib
import logging
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.datastructures import SignedTransaction as EvmSignedTransaction
from eth_account.signers.local import LocalAccount

from ..address import Address
from ..codec import Codec
from ..exceptions import AdmError
from ..models import ObjectRef, SignedTransaction, UnsignedMessage

logger = logging.getLogger(__name__)


class LocalSigner:
    """
    Sign messages with an in-memory private key.

    The sender address is the delegated (``f410``) form of the key's
    Ethereum address. Key generation and persistence are the caller's job.
    """

    def __init__(self, private_key: str, chain_id: Optional[int] = None, codec: Optional[Codec] = None):
        """
        Initialize the signer

        Args:
            private_key: Hex-encoded secp256k1 private key (with or without 0x)
            chain_id: Chain ID mixed into every signature; may be set later
            codec: Message encoder (defaults to the DAG-CBOR codec)

        Raises:
            ValueError: If the private key is malformed
        """
        self._account: LocalAccount = Account.from_key(private_key)
        self._address = Address.from_eth(self._account.address)
        self.chain_id = chain_id
        self.codec = codec or Codec()

    @property
    def eth_address(self) -> str:
        return self._account.address

    def address(self) -> Address:
        return self._address

    def digest(self, message: UnsignedMessage, object: Optional[ObjectRef] = None) -> bytes:
        """blake2b-256 of the canonical message encoding bound to the chain ID."""
        if self.chain_id is None:
            raise AdmError("signer has no chain ID; set chain_id before signing")
        payload = self.codec.encode_signing_payload(message, object, self.chain_id)
        return hashlib.blake2b(payload, digest_size=32).digest()

    def sign(self, message: UnsignedMessage, object: Optional[ObjectRef] = None) -> SignedTransaction:
        if message.from_address != self._address:
            raise AdmError(f"message sender {message.from_address} does not match signer {self._address}")
        signed = self._account.unsafe_sign_hash(self.digest(message, object))
        # r || s || recovery id
        signature = (
            signed.r.to_bytes(32, "big")
            + signed.s.to_bytes(32, "big")
            + bytes([signed.v - 27 if signed.v >= 27 else signed.v])
        )
        logger.debug(f"Signed message from {self._address} with sequence {message.sequence}")
        return SignedTransaction(message=message, signature=signature, object=object)

    def sign_evm_transaction(self, transaction: Dict[str, Any]) -> EvmSignedTransaction:
        """Sign a transaction for the parent EVM network with the same key."""
        return self._account.sign_transaction(transaction)

    def __repr__(self) -> str:
        return f"LocalSigner({self._address})"
