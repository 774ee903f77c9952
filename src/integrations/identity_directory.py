"""
Identity directory client.

The trust-network identity directory runs as its own Lambda function. This
module invokes it synchronously and maps every failure (missing
configuration, AWS errors, function errors, malformed responses) to
DirectoryUnavailable, so a lookup either returns a complete result or fails
as a whole.

Usage:
    from integrations.identity_directory import LambdaIdentityDirectory

    directory = LambdaIdentityDirectory()
    matches = directory.match_identities(
        {"alice@abc.freemail"}, requester="user-1", methods=list(MatchMethod)
    )
"""

import json
import logging
import os
import time
from typing import Any, Dict, Iterable, List, Optional, Set

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from domain.errors import DirectoryUnavailable
from domain.models import Identity
from domain.ports import MatchMethod

logger = logging.getLogger(__name__)


def _initialize_lambda_client():
    """
    Initialize boto3 Lambda client with timeout configuration.

    Returns:
        boto3.client: Configured Lambda client
    """
    # No retries: a slow directory should surface as unavailable, not stall the request
    client_config = Config(
        retries={
            'max_attempts': 0,
            'mode': 'standard'
        },
        connect_timeout=5,
        read_timeout=30
    )

    region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-west-2'))

    client = boto3.client('lambda', region_name=region, config=client_config)

    logger.info(
        f"Identity directory client initialized: region={region}, "
        f"connect_timeout=5s, read_timeout=30s, max_attempts=0 (no retries)"
    )
    return client


# Initialize at module import time (reused across invocations)
lambda_client = _initialize_lambda_client()

IDENTITY_DIRECTORY_FUNCTION = os.environ.get('IDENTITY_DIRECTORY_FUNCTION', '')


class LambdaIdentityDirectory:
    """Identity directory reached through a Lambda function."""

    def __init__(self, function_name: Optional[str] = None):
        self.function_name = function_name if function_name is not None else IDENTITY_DIRECTORY_FUNCTION

    def match_identities(
        self,
        addresses: Set[str],
        requester: str,
        methods: Iterable[MatchMethod]
    ) -> Dict[str, List[Identity]]:
        """
        Find the identities matching each address.

        Args:
            addresses: Normalized recipient addresses
            requester: User ID whose trust view is used
            methods: Match strategies the directory should apply

        Returns:
            Dict mapping each address the directory answered for to its
            candidate identities

        Raises:
            DirectoryUnavailable: If the directory cannot be reached or
                answers with a malformed response
        """
        data = self._invoke({
            'operation': 'matchIdentities',
            'addresses': sorted(addresses),
            'requester': requester,
            'methods': [m.value for m in methods],
        })

        matches = data.get('matches')
        if not isinstance(matches, dict):
            raise DirectoryUnavailable("Identity directory response has no matches")

        return {
            address: [_parse_identity(candidate) for candidate in candidates or []]
            for address, candidates in matches.items()
        }

    def get_identity(self, identity_id: str, requester: str) -> Optional[Identity]:
        """
        Look up a single identity by its ID.

        Returns:
            Identity, or None if the directory does not know the ID

        Raises:
            DirectoryUnavailable: If the directory cannot be reached
        """
        data = self._invoke({
            'operation': 'getIdentity',
            'identityId': identity_id,
            'requester': requester,
        })

        identity = data.get('identity')
        if not identity:
            return None
        return _parse_identity(identity)

    def _invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.function_name:
            raise DirectoryUnavailable("IDENTITY_DIRECTORY_FUNCTION is not configured")

        start_time = time.time()
        logger.info(f"Invoking identity directory: function={self.function_name}, operation={payload['operation']}")

        try:
            response = lambda_client.invoke(
                FunctionName=self.function_name,
                InvocationType='RequestResponse',
                Payload=json.dumps(payload)
            )
            body = response['Payload'].read()
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            error_message = e.response.get('Error', {}).get('Message', str(e))
            logger.error(
                f"Identity directory invocation failed: error_code={error_code}, "
                f"error_message={error_message}, function={self.function_name}"
            )
            raise DirectoryUnavailable(f"Identity directory unavailable: {error_code}") from e
        except BotoCoreError as e:
            logger.error(f"Identity directory unreachable: {e}")
            raise DirectoryUnavailable(f"Identity directory unreachable: {e}") from e

        if response.get('FunctionError'):
            logger.error(f"Identity directory returned error: {body[:200]!r}")
            raise DirectoryUnavailable(f"Identity directory error: {response['FunctionError']}")

        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to parse identity directory response: {e}, body: {body[:200]!r}")
            raise DirectoryUnavailable("Identity directory returned invalid JSON") from e

        if not isinstance(data, dict):
            raise DirectoryUnavailable("Identity directory returned an unexpected response")

        logger.info(f"Identity directory answered in {time.time() - start_time:.3f}s")
        return data


def _parse_identity(record: Dict[str, Any]) -> Identity:
    try:
        return Identity(nickname=record['nickname'], identity_id=record['identityId'])
    except (KeyError, TypeError) as e:
        raise DirectoryUnavailable(f"Identity directory returned a malformed identity: {record!r}") from e
