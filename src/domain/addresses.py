"""
Recipient address handling.

Recipients are typed free-form, optionally with a display name
(``Alice <alice@abc.freemail>``). Only the part between the angle brackets
is used for directory lookup; the typed text is kept for the To header.
"""

import logging
from typing import Iterable, List

from .models import ResolvedAddress

logger = logging.getLogger(__name__)


def normalize_address(recipient: str) -> str:
    """
    Strip display-name decoration from a recipient string.

    No validation is done here; malformed addresses pass through and fail
    later as unresolved recipients.

    Example:
        >>> normalize_address("Alice <a@b>")
        'a@b'
        >>> normalize_address("<a@b")
        '<a@b'
    """
    if '<' in recipient and '>' in recipient:
        return recipient[recipient.index('<') + 1:recipient.index('>')]
    return recipient


def group_recipients(rows: Iterable[str]) -> List[ResolvedAddress]:
    """
    Reduce recipient rows to one entry per normalized address.

    Empty rows are skipped. When several rows normalize to the same address
    the last typed text wins, but the address keeps the position of its
    first row.

    Args:
        rows: Recipient text per form row

    Returns:
        List of ResolvedAddress in row order
    """
    grouped = {}
    for raw_text in rows:
        if raw_text == '':
            continue
        address = normalize_address(raw_text)
        if address in grouped:
            logger.debug(f"Duplicate recipient {address!r}, keeping last typed text")
        grouped[address] = raw_text

    return [ResolvedAddress(normalized_address=a, raw_text=t) for a, t in grouped.items()]
