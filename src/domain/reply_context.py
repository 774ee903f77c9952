"""
Reply draft construction from a stored message.

Reads the threading fields of the stored message, rewrites its subject and
quotes its body line by line. The stored message stream is always closed,
including when the message turns out to be malformed.
"""

import logging
from typing import Iterable, Iterator

from .errors import MalformedStoredMessage
from .models import Draft
from .ports import MessageStore, StoredMessageHandle

logger = logging.getLogger(__name__)

REPLY_PREFIX = "Re: "


def rewrite_subject(subject: str) -> str:
    """
    Prefix a subject with "Re: " unless it already has one (any case).

    Example:
        >>> rewrite_subject("hello")
        'Re: hello'
        >>> rewrite_subject("RE: hello")
        'RE: hello'
    """
    if not subject.lower().startswith(REPLY_PREFIX.lower()):
        return REPLY_PREFIX + subject
    return subject


def quote_lines(lines: Iterable[str]) -> str:
    """Prefix every line with ">" and terminate it with CRLF."""
    return "".join(f">{line}\r\n" for line in lines)


def extract_reply_context(store: MessageStore, folder: str, sequence_number: int) -> Draft:
    """
    Build a reply draft from a stored message.

    Args:
        store: Mailbox of the replying account
        folder: Folder holding the message
        sequence_number: Message number within the folder

    Returns:
        Draft addressed to the original sender, with rewritten subject,
        quoted body and in_reply_to set to the original Message-ID

    Raises:
        MessageNotFound: If the message does not exist
        MalformedStoredMessage: If the message has no From header or no
            header/body separator
    """
    logger.debug(f"Replying to message {sequence_number} in folder {folder}")

    with store.open_message(folder, sequence_number) as message:
        sender = message.read_header_field('From')
        if sender is None:
            raise MalformedStoredMessage(
                f"Message {sequence_number} in {folder} has no From header"
            )
        in_reply_to = message.read_header_field('Message-ID') or ''
        subject = rewrite_subject(message.read_header_field('Subject') or '')

        _skip_header_block(message, folder, sequence_number)
        body = quote_lines(_remaining_lines(message))

    return Draft(
        recipients=[sender],
        subject=subject,
        body=body.encode('utf-8'),
        in_reply_to=in_reply_to
    )


def _skip_header_block(message: StoredMessageHandle, folder: str, sequence_number: int) -> None:
    line = message.read_line()
    while line is not None and line != '':
        line = message.read_line()

    if line is None:
        raise MalformedStoredMessage(
            f"Message {sequence_number} in {folder} ended before the end of its header"
        )


def _remaining_lines(message: StoredMessageHandle) -> Iterator[str]:
    line = message.read_line()
    while line is not None:
        yield line
        line = message.read_line()
