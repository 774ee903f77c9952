"""
Interfaces of the collaborators the composition logic depends on.

Each collaborator is reduced to the few calls the domain actually makes, so
the resolver, reply extractor and processor can be exercised with in-memory
fakes instead of live AWS services.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Set

from .models import Identity


class MatchMethod(Enum):
    """Strategies the identity directory can use to match an address."""
    FULL_ADDRESS = 'full_address'
    IDENTITY_ID = 'identity_id'
    NICKNAME = 'nickname'


class IdentityDirectory(Protocol):
    """Trust-network directory resolving addresses to identities."""

    def match_identities(
        self,
        addresses: Set[str],
        requester: str,
        methods: Iterable[MatchMethod]
    ) -> Dict[str, List[Identity]]:
        """
        Raises:
            DirectoryUnavailable: If the directory cannot be reached
        """
        ...

    def get_identity(self, identity_id: str, requester: str) -> Optional[Identity]:
        """
        Raises:
            DirectoryUnavailable: If the directory cannot be reached
        """
        ...


class StoredMessageHandle(Protocol):
    """Open stream over one stored message."""

    def read_header_field(self, name: str) -> Optional[str]:
        ...

    def read_line(self) -> Optional[str]:
        """Return the next line without its terminator, or None at end of stream."""
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> 'StoredMessageHandle':
        ...

    def __exit__(self, exc_type, exc, tb) -> None:
        ...


class MessageStore(Protocol):
    """Mailbox folders of one account."""

    def open_message(self, folder: str, sequence_number: int) -> StoredMessageHandle:
        """
        Raises:
            MessageNotFound: If the folder has no message with that number
        """
        ...


class DeliveryService(Protocol):
    """Outbound delivery; the handoff is fire-and-forget."""

    def send(self, identities: List[Identity], message: bytes) -> None:
        ...
