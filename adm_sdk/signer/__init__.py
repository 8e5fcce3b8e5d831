"""
Signing capability.

The provider never sees private keys; it hands an UnsignedMessage to a
Signer and gets a SignedTransaction back.
"""
from typing import Optional, Protocol, runtime_checkable

from ..address import Address
from ..models import ObjectRef, SignedTransaction, UnsignedMessage


@runtime_checkable
class Signer(Protocol):
    """Protocol for custom signers"""
    chain_id: Optional[int]

    def address(self) -> Address:
        """Return the canonical address messages are sent from"""
        ...

    def sign(self, message: UnsignedMessage, object: Optional[ObjectRef] = None) -> SignedTransaction:
        """Sign a message and return the signed transaction"""
        ...


from .local import LocalSigner  # noqa: E402
from .void import VoidSigner  # noqa: E402

__all__ = ["Signer", "LocalSigner", "VoidSigner"]
