"""
Error taxonomy for message composition.

Collaborator failures (AWS clients, the directory function) are mapped to
these exceptions at the collaborator boundary so the domain layer never has
to inspect botocore errors.
"""

from typing import List


class ComposeError(Exception):
    """Base error for all composition operations."""
    pass


class DirectoryUnavailable(ComposeError):
    """Raised when the identity directory cannot be reached or is not loaded."""
    pass


class AmbiguousOrUnknownRecipient(ComposeError):
    """
    Raised when one or more recipients did not resolve to exactly one identity.

    Attributes:
        failed_recipients: Recipient strings as the user typed them
    """

    def __init__(self, failed_recipients: List[str]):
        self.failed_recipients = list(failed_recipients)
        super().__init__(
            f"{len(self.failed_recipients)} recipient(s) unknown or ambiguous: "
            f"{', '.join(self.failed_recipients)}"
        )


class UnknownAction(ComposeError):
    """
    Raised when a submitted form carries no recognized action marker.

    Attributes:
        diagnostic: Every submitted field rendered as name="value"
    """

    def __init__(self, diagnostic: str):
        self.diagnostic = diagnostic
        super().__init__(f"Unknown action requested. Set parts: {diagnostic}")


class MalformedStoredMessage(ComposeError):
    """Raised when a stored message cannot be split into header and body."""
    pass


class MessageNotFound(ComposeError):
    """Raised when a folder/sequence number does not name a stored message."""
    pass


class InvalidFormField(ComposeError):
    """Raised when a required form field is missing or has an invalid value."""
    pass
