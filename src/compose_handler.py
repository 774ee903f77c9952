"""
AWS Lambda handler for the compose form.

Thin orchestration layer that delegates to ComposeProcessor.
GET starts a new draft (optionally prefilled from the ``to`` query
parameter); POST processes a submitted compose form. The page itself is
rendered by the front end from the JSON result.
"""

import base64
import binascii
import json
import logging
import os
from typing import Any, Dict, List, Tuple
from urllib.parse import parse_qsl

from domain.compose_processor import ComposeProcessor
from domain.errors import InvalidFormField, MalformedStoredMessage, MessageNotFound
from domain.models import SenderAccount
from integrations.identity_directory import LambdaIdentityDirectory
from services.delivery import SqsOutbox
from services.message_store import S3MessageStore

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter('%(levelname)s - %(name)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

ENVIRONMENT = os.environ.get('ENVIRONMENT', 'dev')

# Initialize processor once at module level (reused across invocations)
compose_processor = ComposeProcessor(
    directory=LambdaIdentityDirectory(),
    outboxes=lambda account: SqsOutbox(account.user_id),
    message_stores=lambda account: S3MessageStore(account.user_id)
)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Handle one compose request.

    Expected event format (API Gateway proxy):
    {
        "httpMethod": "POST",
        "body": "to0=alice%40abc.freemail&subject=Hi&message-text=hello&sendMessage=Send",
        "isBase64Encoded": false,
        "requestContext": {
            "authorizer": {"userId": "...", "nickname": "bob", "domain": "bob.freemail"}
        }
    }

    Returns:
        API Gateway proxy response with the ComposeResult as JSON body
    """
    method = _http_method(event)
    logger.info(f"Environment: {ENVIRONMENT}, compose request: {method}")

    try:
        account = _sender_account(event)

        if method == 'GET':
            params = event.get('queryStringParameters') or {}
            result = compose_processor.new_message(account, params.get('to'))
        else:
            pairs = _form_fields(event)
            result = compose_processor.handle_form(dict(pairs), account, submitted=pairs)

        logger.info(f"Compose request completed: {result!r}")
        return _response(200, result.to_dict())

    except InvalidFormField as e:
        logger.error(f"Invalid form: {e}")
        return _response(400, {'error': str(e)})

    except MessageNotFound as e:
        logger.error(f"Message not found: {e}")
        return _response(404, {'error': str(e)})

    except MalformedStoredMessage as e:
        logger.error(f"Malformed stored message: {e}", exc_info=True)
        return _response(422, {'error': str(e)})

    except Exception as e:
        logger.error(f"Error handling compose request: {str(e)}", exc_info=True)
        return _response(500, {
            'error': 'Internal server error',
            'message': str(e)
        })


def _http_method(event: Dict[str, Any]) -> str:
    method = event.get('httpMethod')
    if not method:
        # HTTP API (payload format 2.0)
        http = (event.get('requestContext') or {}).get('http') or {}
        method = http.get('method') or 'POST'
    return method.upper()


def _sender_account(event: Dict[str, Any]) -> SenderAccount:
    """Read the sending account from the request authorizer context."""
    authorizer = (event.get('requestContext') or {}).get('authorizer') or {}
    try:
        return SenderAccount(
            user_id=authorizer['userId'],
            nickname=authorizer['nickname'],
            domain=authorizer['domain']
        )
    except KeyError as e:
        raise InvalidFormField(f"Request has no account field {e}") from e


def _form_fields(event: Dict[str, Any]) -> List[Tuple[str, str]]:
    """
    Decode the URL-encoded form body into (name, value) pairs, in submission order.

    Blank values and repeated names are kept: an empty recipient row is
    still a row. Bytes that are not UTF-8 become replacement characters.
    """
    body = event.get('body') or ''
    if event.get('isBase64Encoded'):
        try:
            body = base64.b64decode(body, validate=True).decode('utf-8', errors='replace')
        except binascii.Error as e:
            raise InvalidFormField(f"Request body is not valid base64: {e}") from e
    return parse_qsl(body, keep_blank_values=True, errors='replace')


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json'
        },
        'body': json.dumps(body)
    }
