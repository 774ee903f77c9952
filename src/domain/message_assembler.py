"""
Outgoing message assembly.

Builds the header block of a new message and joins it with the body into the
single buffer handed to delivery. Header fields are written in a fixed order:
To (one per recipient), Subject, Date, From, Message-ID, then a blank line.
"""

import io
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .models import OutgoingMessage, SenderAccount

logger = logging.getLogger(__name__)

CRLF = "\r\n"

# Month names are fixed so the Date header does not depend on the process locale
_MONTHS = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
           'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')

_LINE_BREAKS = re.compile(r'\r\n|\r|\n')


def format_date(moment: datetime) -> str:
    """
    Format a timestamp as ``dd MMM yyyy HH:mm:ss +0000`` in UTC.

    Naive datetimes are taken to be UTC already.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return f"{moment:%d} {_MONTHS[moment.month - 1]} {moment:%Y %H:%M:%S} +0000"


def generate_message_id(domain: str) -> str:
    """Return a new ``<random-uuid@domain>`` Message-ID."""
    return f"<{uuid.uuid4()}@{domain}>"


def build_header(
    recipients: Iterable[str],
    subject: str,
    sender: SenderAccount,
    moment: datetime,
    message_id: str
) -> str:
    """
    Build the header block, including the blank line that ends it.

    Recipient strings are written as typed. Line breaks inside a value are
    replaced by a space.
    """
    lines: List[str] = []
    for recipient in recipients:
        lines.append(f"To: {_single_line(recipient)}")
    lines.append(f"Subject: {_single_line(subject)}")
    lines.append(f"Date: {format_date(moment)}")
    lines.append(f"From: {sender.nickname} <{sender.nickname}@{sender.domain}>")
    lines.append(f"Message-ID: {message_id}")
    lines.append("")
    return CRLF.join(lines) + CRLF


def assemble_message(
    recipients: Iterable[str],
    subject: str,
    body: bytes,
    sender: SenderAccount,
    moment: Optional[datetime] = None
) -> OutgoingMessage:
    """
    Assemble a complete outgoing message.

    Args:
        recipients: Recipient text as typed, one To header each
        subject: Subject line
        body: Body bytes, passed through unmodified
        sender: Sending account (From header and Message-ID domain)
        moment: Send time; defaults to now (UTC)

    Returns:
        OutgoingMessage with its header block, body and Message-ID
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    message_id = generate_message_id(sender.domain)

    header = build_header(recipients, subject, sender, moment, message_id)
    message = OutgoingMessage(
        header_block=header.encode('utf-8'),
        body=bytes(body),
        message_id=message_id
    )
    logger.info(f"Assembled message {message_id}: {len(message):,} bytes")
    return message


def message_bytes(message: OutgoingMessage) -> bytes:
    """Join header block and body into the buffer handed to delivery."""
    with io.BytesIO() as buffer:
        buffer.write(message.header_block)
        buffer.write(message.body)
        return buffer.getvalue()


def _single_line(value: str) -> str:
    return _LINE_BREAKS.sub(' ', value)
