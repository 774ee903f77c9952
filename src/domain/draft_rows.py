"""
Recipient rows and action decoding for the compose form.

The form encodes recipient rows positionally (``to0``, ``to1``, ...) and the
requested action as the presence of differently named fields. Both are
decoded once per request here.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

RECIPIENT_FIELD_PREFIX = 'to'
SEND_FIELD = 'sendMessage'
REPLY_FIELD = 'reply'
ADD_ROW_FIELD = 'addRcpt'
REMOVE_ROW_FIELD_PREFIX = 'removeRcpt'


class RecipientRows:
    """
    Ordered recipient rows of a draft.

    Rows are read from ``to<i>`` fields starting at index 0; the first unset
    index ends the sequence, so rows after a gap are never read.
    """

    def __init__(self, rows: Optional[List[str]] = None):
        self._rows: List[str] = list(rows) if rows is not None else []

    @classmethod
    def from_form(cls, fields: Mapping[str, str]) -> 'RecipientRows':
        rows = []
        i = 0
        while f"{RECIPIENT_FIELD_PREFIX}{i}" in fields:
            rows.append(fields[f"{RECIPIENT_FIELD_PREFIX}{i}"])
            i += 1
        logger.debug(f"Found {len(rows)} recipients")
        return cls(rows)

    def add_row(self) -> 'RecipientRows':
        """Return the rows with one empty row appended."""
        return RecipientRows(self._rows + [''])

    def remove_row(self, index: int) -> 'RecipientRows':
        """Return the rows without row ``index``; out-of-range indexes change nothing."""
        if not 0 <= index < len(self._rows):
            return RecipientRows(self._rows)
        return RecipientRows(self._rows[:index] + self._rows[index + 1:])

    def to_list(self) -> List[str]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[str]:
        return iter(self._rows)

    def __getitem__(self, index: int) -> str:
        return self._rows[index]

    def __eq__(self, other) -> bool:
        if isinstance(other, RecipientRows):
            return self._rows == other._rows
        return NotImplemented

    def __repr__(self) -> str:
        return f"RecipientRows({self._rows!r})"


class ActionKind(Enum):
    SEND = 'send'
    REPLY = 'reply'
    ADD_ROW = 'add_row'
    REMOVE_ROW = 'remove_row'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class Action:
    """
    Action requested by one form submission.

    Attributes:
        kind: Which action was requested
        index: Row to remove (REMOVE_ROW only)
    """
    kind: ActionKind
    index: Optional[int] = None


def parse_action(fields: Mapping[str, str], row_count: int) -> Action:
    """
    Decide the single action of a form submission.

    Precedence: send, reply, add row, then the lowest-numbered remove row
    marker among the existing rows. Anything else is unknown.

    Image buttons submit their click coordinates as ``<name>.x`` and
    ``<name>.y``; a plain ``<name>`` field is accepted as well.
    """
    if SEND_FIELD in fields:
        return Action(ActionKind.SEND)
    if REPLY_FIELD in fields:
        return Action(ActionKind.REPLY)
    if _button_pressed(fields, ADD_ROW_FIELD):
        return Action(ActionKind.ADD_ROW)
    for i in range(row_count):
        if _button_pressed(fields, f"{REMOVE_ROW_FIELD_PREFIX}{i}"):
            return Action(ActionKind.REMOVE_ROW, index=i)
    return Action(ActionKind.UNKNOWN)


def describe_fields(pairs: Iterable[Tuple[str, str]]) -> str:
    """
    Render submitted fields as name="value" for diagnostics.

    Takes (name, value) pairs so repeated field names are all shown.
    """
    return "".join(f'{name}="{value}" ' for name, value in pairs)


def _button_pressed(fields: Mapping[str, str], name: str) -> bool:
    if name in fields:
        return True
    return f"{name}.x" in fields and f"{name}.y" in fields
