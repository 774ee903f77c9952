"""
Recipient resolution against the identity directory.

The directory is queried once per batch with every match method. An address
is resolved only if exactly one identity matched it; unknown and ambiguous
addresses are reported the same way.
"""

import logging
import time
from typing import Iterable, List

from .models import Identity, MatchResult, ResolvedAddress
from .ports import IdentityDirectory, MatchMethod

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolves recipient rows to directory identities."""

    def __init__(self, directory: IdentityDirectory):
        self.directory = directory

    def resolve(self, recipients: List[ResolvedAddress], requester: str) -> MatchResult:
        """
        Query the directory for every recipient address in one call.

        Args:
            recipients: Grouped recipients (one entry per normalized address)
            requester: Opaque token of the requesting user

        Returns:
            MatchResult with one key per submitted address

        Raises:
            DirectoryUnavailable: If the directory cannot be reached. No
                partial result is returned.
        """
        addresses = {r.normalized_address for r in recipients}
        logger.info(f"Resolving {len(addresses)} recipient address(es)")
        start_time = time.time()

        found = self.directory.match_identities(addresses, requester, list(MatchMethod))

        matches = {}
        for address in addresses:
            matches[address] = _unique_identities(found.get(address, []))

        result = MatchResult(recipients=list(recipients), matches=matches)
        logger.info(
            f"Resolution completed: resolved={len(addresses) - len(result.failed_addresses)}, "
            f"failed={len(result.failed_addresses)}, time={time.time() - start_time:.3f}s"
        )
        return result


def _unique_identities(identities: Iterable[Identity]) -> List[Identity]:
    """Drop repeated identities (same identity ID), keeping directory order."""
    seen = set()
    unique = []
    for identity in identities:
        if identity.identity_id in seen:
            continue
        seen.add(identity.identity_id)
        unique.append(identity)
    return unique
