"""
Per-account sequence (nonce) acquisition.

The chain is the only source of truth for an account's sequence. Nothing is
cached locally: every new message re-reads the account at the pending height,
which already accounts for transactions sitting in the mempool.
"""
import logging
import threading
from typing import Dict, Optional, Protocol

from .address import Address
from .height import Height
from .models import ActorState, QueryResponse

logger = logging.getLogger(__name__)


class ActorStateReader(Protocol):
    def actor_state(self, address: Address, height: Height = ...) -> QueryResponse[Optional[ActorState]]:
        ...


class Sequencer:
    """
    Sequence source for a single account.

    ``lock`` must be held across acquire, sign and submit so that concurrent
    callers using the same account do not race for the same sequence.
    """

    def __init__(self, provider: ActorStateReader, address: Address):
        self.provider = provider
        self.address = Address.parse(address)
        self.lock = threading.Lock()
        self._fetch_count = 0
        self._count_lock = threading.Lock()

    @property
    def fetch_count(self) -> int:
        """Number of remote sequence reads made so far."""
        with self._count_lock:
            return self._fetch_count

    def next_sequence(self, override: Optional[int] = None) -> int:
        """
        Return the sequence to use for the next message.

        Args:
            override: Explicit sequence; when given no remote read is made

        Returns:
            The pending sequence of the account, or 0 if the chain does not know it
        """
        if override is not None:
            if override < 0:
                raise ValueError(f"sequence must be non-negative, got {override}")
            return override

        with self._count_lock:
            self._fetch_count += 1
        response = self.provider.actor_state(self.address, Height.PENDING)
        if response.value is None:
            logger.debug(f"Account {self.address} not found on chain; starting at sequence 0")
            return 0
        logger.debug(f"Account {self.address} pending sequence is {response.value.sequence}")
        return response.value.sequence


class SequencerRegistry:
    """Hands out exactly one Sequencer per canonical account address."""

    def __init__(self, provider: ActorStateReader):
        self.provider = provider
        self._sequencers: Dict[Address, Sequencer] = {}
        self._lock = threading.RLock()

    def get(self, address: Address) -> Sequencer:
        address = Address.parse(address)
        with self._lock:
            sequencer = self._sequencers.get(address)
            if sequencer is None:
                sequencer = Sequencer(self.provider, address)
                self._sequencers[address] = sequencer
            return sequencer

    def __len__(self) -> int:
        with self._lock:
            return len(self._sequencers)
