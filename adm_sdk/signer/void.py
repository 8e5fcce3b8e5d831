"""
Read-only signer identity.
"""
from typing import Any, Dict, Optional, Union

from ..address import Address
from ..exceptions import AdmError
from ..models import ObjectRef, SignedTransaction, UnsignedMessage


class VoidSigner:
    """
    An address without a key.

    Useful for queries that need a sender (read-only calls, account info)
    when no key is available. Signing always fails.
    """

    def __init__(self, address: Union[Address, str], chain_id: Optional[int] = None):
        self._address = Address.parse(address)
        self.chain_id = chain_id

    def address(self) -> Address:
        return self._address

    def sign(self, message: UnsignedMessage, object: Optional[ObjectRef] = None) -> SignedTransaction:
        raise AdmError("void signer cannot sign messages")

    def sign_evm_transaction(self, transaction: Dict[str, Any]) -> Any:
        raise AdmError("void signer cannot sign parent-network transactions")

    def __repr__(self) -> str:
        return f"VoidSigner({self._address})"
