"""
Compose request processing - core business logic.

This module handles one submission of the compose form:
1. Decide the requested action (send, reply, add row, remove row)
2. For edits, rebuild the draft and return it for redisplay
3. For replies, build the reply draft from the stored message
4. For sends, resolve recipients, assemble the message and hand it to delivery

Recoverable outcomes (failed recipients, unavailable directory, unknown
action) are returned as ComposeResult. Stored-message and form errors
propagate to the caller.
"""

import logging
from typing import Callable, Mapping, Optional, Sequence, Tuple

from .addresses import group_recipients
from .draft_rows import Action, ActionKind, RecipientRows, describe_fields, parse_action
from .errors import (
    AmbiguousOrUnknownRecipient,
    DirectoryUnavailable,
    InvalidFormField,
    UnknownAction,
)
from .identity_resolver import IdentityResolver
from .message_assembler import assemble_message, message_bytes
from .models import ComposeOutcome, ComposeResult, Draft, SenderAccount
from .ports import DeliveryService, IdentityDirectory, MessageStore
from .reply_context import extract_reply_context

logger = logging.getLogger(__name__)

BODY_FIELD = 'message-text'


class ComposeProcessor:
    """
    Handles compose form requests for one deployment.

    Holds no per-request state; every call builds its own draft, match
    result and message.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        outboxes: Callable[[SenderAccount], DeliveryService],
        message_stores: Callable[[SenderAccount], MessageStore]
    ):
        """
        Args:
            directory: Identity directory used for recipient resolution
            outboxes: Returns the delivery handoff of a given account
            message_stores: Returns the mailbox of a given account
        """
        self.directory = directory
        self.resolver = IdentityResolver(directory)
        self.outboxes = outboxes
        self.message_stores = message_stores

    def new_message(self, account: SenderAccount, to: Optional[str] = None) -> ComposeResult:
        """
        Start a new draft, optionally prefilled with one recipient.

        Args:
            account: Requesting account
            to: Identity ID of the recipient to prefill (optional)
        """
        if not to:
            return ComposeResult(outcome=ComposeOutcome.REDISPLAY, draft=Draft())

        try:
            identity = self.directory.get_identity(to, account.user_id)
        except DirectoryUnavailable as e:
            logger.error(f"Identity directory unavailable: {e}")
            return ComposeResult(outcome=ComposeOutcome.DIRECTORY_UNAVAILABLE)

        if identity is None:
            logger.warning(f"No identity found for prefill: {to}")
            return ComposeResult(outcome=ComposeOutcome.REDISPLAY, draft=Draft())

        return ComposeResult(
            outcome=ComposeOutcome.REDISPLAY,
            draft=Draft(recipients=[identity.mail_address])
        )

    def handle_form(
        self,
        fields: Mapping[str, str],
        account: SenderAccount,
        submitted: Optional[Sequence[Tuple[str, str]]] = None
    ) -> ComposeResult:
        """
        Process one compose form submission.

        Args:
            fields: Submitted form fields, in submission order
            account: Requesting account
            submitted: Raw (name, value) pairs including repeated names;
                used for the unknown-action diagnostic (defaults to fields)

        Returns:
            ComposeResult describing what to show next

        Raises:
            InvalidFormField: If a reply names no valid folder/message
            MessageNotFound: If the message being replied to does not exist
            MalformedStoredMessage: If that message cannot be parsed
        """
        rows = RecipientRows.from_form(fields)
        action = parse_action(fields, len(rows))
        logger.info(f"Compose action: {action.kind.value}, rows={len(rows)}")

        if action.kind == ActionKind.SEND:
            return self._send(rows, fields, account)
        if action.kind == ActionKind.REPLY:
            return self._reply(fields, account)
        if action.kind in (ActionKind.ADD_ROW, ActionKind.REMOVE_ROW):
            return self._edit(action, rows, fields)

        pairs = list(submitted) if submitted is not None else list(fields.items())
        error = UnknownAction(describe_fields(pairs))
        logger.error(f"Unknown action requested. Set parts: {describe_fields(_without_body(pairs))}")
        return ComposeResult(outcome=ComposeOutcome.UNKNOWN_ACTION, diagnostic=error.diagnostic)

    def _edit(self, action: Action, rows: RecipientRows, fields: Mapping[str, str]) -> ComposeResult:
        if action.kind == ActionKind.ADD_ROW:
            logger.debug("Adding new recipient")
            rows = rows.add_row()
        else:
            logger.debug(f"Removing recipient {action.index}")
            rows = rows.remove_row(action.index)

        draft = Draft(
            recipients=rows.to_list(),
            subject=fields.get('subject', ''),
            body=_body_bytes(fields),
            in_reply_to=fields.get('inReplyTo', '')
        )
        return ComposeResult(outcome=ComposeOutcome.REDISPLAY, draft=draft)

    def _reply(self, fields: Mapping[str, str], account: SenderAccount) -> ComposeResult:
        folder = fields.get('folder', '')
        if not folder:
            raise InvalidFormField("Reply requires a folder")

        sequence = fields.get('message', '')
        if not (sequence.isascii() and sequence.isdigit()):
            raise InvalidFormField(f"Invalid message number: {sequence!r}")

        draft = extract_reply_context(self.message_stores(account), folder, int(sequence))
        return ComposeResult(outcome=ComposeOutcome.REDISPLAY, draft=draft)

    def _send(self, rows: RecipientRows, fields: Mapping[str, str], account: SenderAccount) -> ComposeResult:
        recipients = group_recipients(rows)
        if not recipients:
            logger.warning("Send requested without any recipient")
            return ComposeResult(outcome=ComposeOutcome.RECIPIENTS_FAILED)

        try:
            match = self.resolver.resolve(recipients, account.user_id)
        except DirectoryUnavailable as e:
            logger.error(f"Identity directory unavailable: {e}")
            return ComposeResult(outcome=ComposeOutcome.DIRECTORY_UNAVAILABLE)

        try:
            identities = match.identities()
        except AmbiguousOrUnknownRecipient as e:
            logger.warning(str(e))
            return ComposeResult(
                outcome=ComposeOutcome.RECIPIENTS_FAILED,
                failed_recipients=e.failed_recipients
            )

        message = assemble_message(
            recipients=[r.raw_text for r in match.recipients],
            subject=fields.get('subject', ''),
            body=_body_bytes(fields),
            sender=account
        )
        self.outboxes(account).send(identities, message_bytes(message))
        logger.info(f"Message {message.message_id} queued for {len(identities)} recipient(s)")

        return ComposeResult(outcome=ComposeOutcome.QUEUED, message_id=message.message_id)


def _body_bytes(fields: Mapping[str, str]) -> bytes:
    return fields.get(BODY_FIELD, '').encode('utf-8')


def _without_body(pairs: Sequence[Tuple[str, str]]):
    """Replace the message text by its length for logging."""
    return [
        (name, f"<{len(value)} chars>" if name == BODY_FIELD else value)
        for name, value in pairs
    ]
