"""
AWS-backed services used by the compose handler.

This package contains the mailbox store (S3) and the outbound delivery
handoff (SQS).
"""

__all__ = ['message_store', 'delivery']
