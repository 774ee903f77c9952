"""
Outbound delivery handoff via SQS.

Assembled messages are queued on the outbox queue together with the
identities they are addressed to. The delivery worker that consumes the
queue handles encryption, insertion into the distributed store and retries;
its failures are not reported back to the sender's request.
"""

import base64
import json
import logging
import os
from typing import List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.models import Identity

logger = logging.getLogger(__name__)

# Configure SQS client with timeouts
sqs_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=30
)

REGION = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-west-2'))

# Module-level client (reused across invocations)
sqs_client = boto3.client('sqs', region_name=REGION, config=sqs_config)

# Configuration from environment
OUTBOX_QUEUE_URL = os.environ.get('OUTBOX_QUEUE_URL', '')
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'dev')

# SQS message size limit is 256 KiB; base64 grows the message by a third
MAX_MESSAGE_SIZE_BYTES = 180 * 1024


class SqsOutbox:
    """Delivery handoff for one sending account."""

    def __init__(self, user_id: str, queue_url: Optional[str] = None):
        self.user_id = user_id
        self.queue_url = queue_url if queue_url is not None else OUTBOX_QUEUE_URL

    def send(self, identities: List[Identity], message: bytes) -> None:
        """
        Queue a message for delivery to the given identities.

        Args:
            identities: Resolved recipient identities
            message: Complete message (header block followed by body)

        Raises:
            ValueError: If the outbox is not configured or the message is too large
            ClientError: If SQS rejects the message
        """
        if not self.queue_url:
            raise ValueError("OUTBOX_QUEUE_URL is not configured")

        if len(message) > MAX_MESSAGE_SIZE_BYTES:
            logger.warning(
                f"Message too large for outbox: "
                f"{len(message):,} bytes > {MAX_MESSAGE_SIZE_BYTES:,} limit"
            )
            raise ValueError(f"Message exceeds {MAX_MESSAGE_SIZE_BYTES:,} byte limit")

        payload = json.dumps({
            'sender': self.user_id,
            'recipients': [
                {'identityId': i.identity_id, 'nickname': i.nickname}
                for i in identities
            ],
            'message': base64.b64encode(message).decode('ascii'),
        })

        try:
            response = sqs_client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=payload,
                MessageAttributes={
                    'Environment': {'DataType': 'String', 'StringValue': ENVIRONMENT}
                }
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            error_message = e.response.get('Error', {}).get('Message', str(e))
            logger.error(
                f"Failed to queue message: queue={self.queue_url}, "
                f"error_code={error_code}, error_message={error_message}"
            )
            raise

        logger.info(
            f"Queued message for {len(identities)} identity(ies): "
            f"size={len(message):,} bytes, sqs_message_id={response.get('MessageId')}"
        )
