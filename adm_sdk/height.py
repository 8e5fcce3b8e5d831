"""
Query height resolution.

Heights are a small closed set: the latest committed height, the pending
height (which includes state from transactions still in the mempool), or an
exact historical height.
"""
from enum import Enum
from typing import Union

from .exceptions import InvalidHeight


class HeightKind(str, Enum):
    COMMITTED = "committed"
    PENDING = "pending"
    SPECIFIC = "specific"


class Height:
    """
    A resolved query height.

    Use the ``Height.COMMITTED`` / ``Height.PENDING`` constants or
    ``Height.at(n)`` for an exact height.
    """

    __slots__ = ("kind", "value")

    COMMITTED: "Height"
    PENDING: "Height"

    def __init__(self, kind: HeightKind, value: int = 0):
        if kind == HeightKind.SPECIFIC and value < 0:
            raise InvalidHeight(f"height must be non-negative, got {value}")
        self.kind = HeightKind(kind)
        self.value = value if kind == HeightKind.SPECIFIC else 0

    @classmethod
    def at(cls, height: int) -> "Height":
        return cls(HeightKind.SPECIFIC, int(height))

    def to_wire(self) -> int:
        """
        Map to the ABCI query height parameter.

        The node reserves 0 for the committed state and 1 for the pending state.
        """
        if self.kind == HeightKind.COMMITTED:
            return 0
        if self.kind == HeightKind.PENDING:
            return 1
        return self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Height):
            return NotImplemented
        return self.kind == other.kind and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.kind, self.value))

    def __str__(self) -> str:
        if self.kind == HeightKind.SPECIFIC:
            return str(self.value)
        return self.kind.value

    def __repr__(self) -> str:
        return f"Height({self})"


Height.COMMITTED = Height(HeightKind.COMMITTED)
Height.PENDING = Height(HeightKind.PENDING)


def parse_height(token: Union[str, int, Height]) -> Height:
    """
    Parse a user-facing height token.

    Args:
        token: "committed", "pending" (any case) or a non-negative integer

    Returns:
        The resolved Height

    Raises:
        InvalidHeight: If the token is neither a known word nor a non-negative integer
    """
    if isinstance(token, Height):
        return token
    if isinstance(token, bool):
        raise InvalidHeight(f"invalid height: {token!r}")
    if isinstance(token, int):
        if token < 0:
            raise InvalidHeight(f"height must be non-negative, got {token}")
        return Height.at(token)
    if not isinstance(token, str):
        raise InvalidHeight(f"invalid height type: {type(token).__name__}")

    text = token.strip().lower()
    if text == HeightKind.COMMITTED.value:
        return Height.COMMITTED
    if text == HeightKind.PENDING.value:
        return Height.PENDING
    if not text.isdigit() or not text.isascii():
        raise InvalidHeight(f"invalid height '{token}': expected committed, pending or a non-negative integer")
    return Height.at(int(text))
