"""
S3-backed mailbox storage.

Stored messages are raw RFC 822 objects at
``s3://{MAILBOX_BUCKET}/{MAILBOX_KEY_PREFIX}{user_id}/{folder}/{sequence_number}``.
Messages are streamed line by line; the header block is parsed on first
header access without consuming the lines seen by read_line().
"""

import logging
import os
import re
from collections import deque
from email import message_from_string
from typing import Deque, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.errors import MalformedStoredMessage, MessageNotFound

logger = logging.getLogger(__name__)

# Configure S3 client with timeouts to prevent infinite hangs
s3_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=10,  # 10 seconds to establish connection
    read_timeout=60      # 60 seconds max for reading response
)

# Initialize S3 client at module level (thread-safe, reused across invocations)
s3_client = boto3.client('s3', config=s3_config)

# Configuration from environment
MAILBOX_BUCKET = os.environ.get('MAILBOX_BUCKET', '')
MAILBOX_KEY_PREFIX = os.environ.get('MAILBOX_KEY_PREFIX', 'mailboxes/')

_INVALID_FOLDER = re.compile(r'[/\\\x00-\x1f\x7f]')

# Header continuation: line break followed by whitespace
_FOLDED_LINE_BREAK = re.compile(r"\r?\n(?=[ \t])")


class StoredMessage:
    """
    Open stream over one stored message.

    Use as a context manager so the underlying S3 stream is closed on every
    exit path.
    """

    def __init__(self, body, key: str):
        """
        Args:
            body: botocore StreamingBody of the S3 object
            key: S3 object key (for log and error messages)
        """
        self.key = key
        self._body = body
        self._lines = body.iter_lines()
        self._pending: Deque[bytes] = deque()
        self._headers = None
        self.closed = False

    def read_header_field(self, name: str) -> Optional[str]:
        """
        Return the first value of a header field, or None if absent.

        Field names are matched case-insensitively. Folded values are
        unfolded into a single line.

        Raises:
            MalformedStoredMessage: If the header block is not valid UTF-8
        """
        if self._headers is None:
            self._headers = self._parse_headers()
        value = self._headers.get(name)
        if value is None:
            return None
        return _FOLDED_LINE_BREAK.sub('', value)

    def read_line(self) -> Optional[str]:
        """Return the next line without its terminator, or None at end of stream."""
        if self._pending:
            raw = self._pending.popleft()
        else:
            raw = next(self._lines, None)
            if raw is None:
                return None
        return raw.decode('utf-8', errors='replace')

    def close(self) -> None:
        if not self.closed:
            self._body.close()
            self.closed = True
            logger.debug(f"Closed stored message stream: {self.key}")

    def __enter__(self) -> 'StoredMessage':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _parse_headers(self):
        header_lines = []
        for raw in self._lines:
            self._pending.append(raw)
            if raw == b'':
                break
            header_lines.append(raw)

        try:
            header_text = b'\r\n'.join(header_lines).decode('utf-8')
        except UnicodeDecodeError as e:
            logger.error(f"Header block of {self.key} is not valid UTF-8: {e}")
            raise MalformedStoredMessage(f"Undecodable header block in {self.key}") from e

        return message_from_string(header_text + '\r\n\r\n')


class S3MessageStore:
    """Mailbox folders of one account, stored in S3."""

    def __init__(self, user_id: str, bucket: Optional[str] = None, key_prefix: Optional[str] = None):
        self.user_id = user_id
        self.bucket = bucket if bucket is not None else MAILBOX_BUCKET
        self.key_prefix = key_prefix if key_prefix is not None else MAILBOX_KEY_PREFIX

    def message_key(self, folder: str, sequence_number: int) -> str:
        return f"{self.key_prefix}{self.user_id}/{folder}/{sequence_number}"

    def open_message(self, folder: str, sequence_number: int) -> StoredMessage:
        """
        Open a stored message for reading.

        Args:
            folder: Folder name (no path separators)
            sequence_number: Message number within the folder

        Returns:
            StoredMessage: Open message stream (caller must close it)

        Raises:
            ValueError: If MAILBOX_BUCKET is not configured
            MessageNotFound: If the folder or message does not exist
            ClientError: For other S3 errors
        """
        if not self.bucket:
            raise ValueError("MAILBOX_BUCKET is not configured")
        if not folder or _INVALID_FOLDER.search(folder):
            raise MessageNotFound(f"Invalid folder name: {folder!r}")

        key = self.message_key(folder, sequence_number)
        try:
            response = s3_client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code in ('NoSuchKey', 'NoSuchBucket'):
                logger.error(f"Stored message not found: s3://{self.bucket}/{key}")
                raise MessageNotFound(f"Message {sequence_number} not found in {folder}") from e
            logger.error(f"Failed to open stored message s3://{self.bucket}/{key}: {e}")
            raise

        logger.info(f"Opened stored message: s3://{self.bucket}/{key}")
        return StoredMessage(response['Body'], key)
