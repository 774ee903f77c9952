"""
Data models for the message composition domain.

These type-safe data structures define clear contracts between components.
Every value here is request-scoped: it is created while handling one request
and discarded when the response has been built.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any

from .errors import AmbiguousOrUnknownRecipient

IDENTITY_DOMAIN_SUFFIX = os.environ.get('FREEMAIL_DOMAIN_SUFFIX', 'freemail')


@dataclass(frozen=True)
class Identity:
    """
    Identity record borrowed from the identity directory.

    Attributes:
        nickname: Human-readable nickname chosen by the identity owner
        identity_id: Directory-wide unique identity ID
    """
    nickname: str
    identity_id: str

    @property
    def mail_address(self) -> str:
        """Address other users type to reach this identity."""
        return f"{self.nickname}@{self.identity_id}.{IDENTITY_DOMAIN_SUFFIX}"


@dataclass(frozen=True)
class SenderAccount:
    """
    Local account that sends the message.

    Attributes:
        user_id: Requester token passed through to the directory
        nickname: Account nickname used in the From header
        domain: Account mail domain used in From and Message-ID
    """
    user_id: str
    nickname: str
    domain: str


@dataclass(frozen=True)
class ResolvedAddress:
    """
    A recipient row reduced to the address used for directory lookup.

    Attributes:
        normalized_address: Address with display-name decoration removed
        raw_text: Recipient text exactly as the user typed it
    """
    normalized_address: str
    raw_text: str


@dataclass
class MatchResult:
    """
    Directory matches for one batch of recipients.

    Every address in ``recipients`` has exactly one key in ``matches``.
    An address is resolved only if it matched exactly one identity.
    """
    recipients: List[ResolvedAddress]
    matches: Dict[str, List[Identity]]

    @property
    def failed_addresses(self) -> List[str]:
        """Normalized addresses that matched zero or several identities."""
        return [
            r.normalized_address for r in self.recipients
            if len(self.matches.get(r.normalized_address, [])) != 1
        ]

    @property
    def failed_recipients(self) -> List[str]:
        """Failed recipients as the user typed them, in row order."""
        return [
            r.raw_text for r in self.recipients
            if len(self.matches.get(r.normalized_address, [])) != 1
        ]

    @property
    def all_resolved(self) -> bool:
        return not self.failed_addresses

    def identities(self) -> List[Identity]:
        """
        Return the single identity of every recipient, in row order.

        Raises:
            AmbiguousOrUnknownRecipient: If any recipient is not resolved
        """
        failed = self.failed_recipients
        if failed:
            raise AmbiguousOrUnknownRecipient(failed)
        return [self.matches[r.normalized_address][0] for r in self.recipients]


@dataclass
class Draft:
    """
    Unsent message being edited, redisplayed to the user.

    Attributes:
        recipients: Recipient rows, text preserved verbatim
        subject: Subject line
        body: Message body bytes
        in_reply_to: Message-ID of the message being replied to ("" if none)
    """
    recipients: List[str] = field(default_factory=lambda: [""])
    subject: str = ""
    body: bytes = b""
    in_reply_to: str = ""

    @property
    def body_text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recipients': list(self.recipients),
            'subject': self.subject,
            'body': self.body_text,
            'inReplyTo': self.in_reply_to,
        }


@dataclass
class OutgoingMessage:
    """
    Assembled message ready for handoff to delivery.

    Attributes:
        header_block: CRLF-terminated header lines plus the blank separator line
        body: Body bytes, unmodified
        message_id: Value written to the Message-ID header
    """
    header_block: bytes
    body: bytes
    message_id: str

    def __len__(self) -> int:
        return len(self.header_block) + len(self.body)


class ComposeOutcome(Enum):
    """What the caller should show after handling one request."""
    REDISPLAY = 'redisplay'
    QUEUED = 'queued'
    RECIPIENTS_FAILED = 'recipients_failed'
    DIRECTORY_UNAVAILABLE = 'directory_unavailable'
    UNKNOWN_ACTION = 'unknown_action'


@dataclass
class ComposeResult:
    """
    Result of one compose request.

    This explicit result type keeps recoverable outcomes (failed recipients,
    unavailable directory, unknown action) out of exception control flow.

    Attributes:
        outcome: Which page or notice to show
        draft: Draft to redisplay (REDISPLAY only)
        failed_recipients: Recipients to list as failed (RECIPIENTS_FAILED only)
        diagnostic: Submitted-field dump (UNKNOWN_ACTION only)
        message_id: Message-ID of the queued message (QUEUED only)
    """
    outcome: ComposeOutcome
    draft: Optional[Draft] = None
    failed_recipients: List[str] = field(default_factory=list)
    diagnostic: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (ComposeOutcome.REDISPLAY, ComposeOutcome.QUEUED)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'outcome': self.outcome.value}
        if self.draft is not None:
            result['draft'] = self.draft.to_dict()
        if self.outcome == ComposeOutcome.RECIPIENTS_FAILED:
            result['failedRecipients'] = list(self.failed_recipients)
            result['failedCount'] = len(self.failed_recipients)
        if self.diagnostic is not None:
            result['diagnostic'] = self.diagnostic
        if self.message_id is not None:
            result['messageId'] = self.message_id
        return result

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.outcome == ComposeOutcome.RECIPIENTS_FAILED:
            return f"ComposeResult(outcome={self.outcome.value}, failed={len(self.failed_recipients)})"
        return f"ComposeResult(outcome={self.outcome.value})"
