"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('MAILBOX_BUCKET', 'test-mailboxes')
os.environ.setdefault('MAILBOX_KEY_PREFIX', 'mailboxes/')
os.environ.setdefault('OUTBOX_QUEUE_URL', 'https://sqs.us-west-2.amazonaws.com/123456789012/outbox-test')
os.environ.setdefault('IDENTITY_DIRECTORY_FUNCTION', 'identity-directory-test')

from domain.errors import DirectoryUnavailable, MessageNotFound  # noqa: E402
from domain.models import Identity, SenderAccount  # noqa: E402


class FakeDirectory:
    """In-memory identity directory."""

    def __init__(self, matches=None, identities=None, unavailable=False):
        self.matches = matches or {}
        self.identities = identities or {}
        self.unavailable = unavailable
        self.calls = []

    def match_identities(self, addresses, requester, methods):
        self.calls.append((set(addresses), requester, list(methods)))
        if self.unavailable:
            raise DirectoryUnavailable("WoT plugin not loaded")
        return {a: list(self.matches[a]) for a in addresses if a in self.matches}

    def get_identity(self, identity_id, requester):
        if self.unavailable:
            raise DirectoryUnavailable("WoT plugin not loaded")
        return self.identities.get(identity_id)


class FakeMessage:
    """In-memory stored message handle."""

    def __init__(self, raw, fail_on_line=None):
        self.lines = raw.splitlines()
        self.position = 0
        self.fail_on_line = fail_on_line
        self.closed = False
        self.headers = {}
        for line in self.lines:
            if line == '':
                break
            name, _, value = line.partition(':')
            self.headers.setdefault(name.strip().lower(), value.strip())

    def read_header_field(self, name):
        return self.headers.get(name.lower())

    def read_line(self):
        if self.position == self.fail_on_line:
            raise IOError("stream broken")
        if self.position >= len(self.lines):
            return None
        line = self.lines[self.position]
        self.position += 1
        return line

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FakeStore:
    """In-memory mailbox keyed by (folder, sequence number)."""

    def __init__(self, messages=None, fail_on_line=None):
        self.messages = messages or {}
        self.fail_on_line = fail_on_line
        self.opened = []

    def open_message(self, folder, sequence_number):
        if (folder, sequence_number) not in self.messages:
            raise MessageNotFound(f"Message {sequence_number} not found in {folder}")
        handle = FakeMessage(self.messages[(folder, sequence_number)], self.fail_on_line)
        self.opened.append(handle)
        return handle


class FakeOutbox:
    """Records every delivery handoff."""

    def __init__(self):
        self.sent = []

    def send(self, identities, message):
        self.sent.append((list(identities), message))


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables for all tests."""
    # Environment variables are already set above
    yield


@pytest.fixture
def alice():
    return Identity(nickname="alice", identity_id="AAAA1111")


@pytest.fixture
def bob():
    return Identity(nickname="bob", identity_id="BBBB2222")


@pytest.fixture
def sender():
    return SenderAccount(user_id="user-42", nickname="carol", domain="carol.freemail")


@pytest.fixture
def fake_outbox():
    return FakeOutbox()


@pytest.fixture
def stored_message():
    """Stored message with a header block and a two-line body."""
    return (
        "From: alice <alice@AAAA1111.freemail>\r\n"
        "To: carol <carol@carol.freemail>\r\n"
        "Subject: Lunch\r\n"
        "Message-ID: <1234@AAAA1111.freemail>\r\n"
        "\r\n"
        "x\r\n"
        "y\r\n"
    )
