"""
Tests for the compose Lambda handler.
"""

import base64
import json
import pytest
from unittest.mock import Mock, patch, MagicMock
from urllib.parse import urlencode
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

import compose_handler
from conftest import FakeDirectory, FakeOutbox, FakeStore
from domain.compose_processor import ComposeProcessor

AUTHORIZER = {'userId': 'user-42', 'nickname': 'carol', 'domain': 'carol.freemail'}


def form_event(fields, method='POST', base64_encoded=False):
    body = urlencode(fields)
    if base64_encoded:
        body = base64.b64encode(body.encode('utf-8')).decode('ascii')
    return {
        'httpMethod': method,
        'body': body,
        'isBase64Encoded': base64_encoded,
        'requestContext': {'authorizer': dict(AUTHORIZER)},
    }


@pytest.fixture
def mock_context():
    """Mock Lambda context."""
    context = Mock()
    context.request_id = "test-request-id"
    context.function_name = "compose-handler-test"
    return context


@pytest.fixture
def fake_processor(alice, stored_message):
    """Processor wired to in-memory collaborators."""
    outbox = FakeOutbox()
    processor = ComposeProcessor(
        directory=FakeDirectory(matches={'a@dom': [alice]}, identities={'AAAA1111': alice}),
        outboxes=lambda account: outbox,
        message_stores=lambda account: FakeStore({('INBOX', 3): stored_message})
    )
    processor.outbox = outbox
    with patch.object(compose_handler, 'compose_processor', processor):
        yield processor


def response_body(response):
    return json.loads(response['body'])


class TestLambdaHandler:
    """Test request decoding and response mapping."""

    def test_send(self, fake_processor, mock_context):
        event = form_event({'to0': 'a@dom', 'subject': 'Hi', 'message-text': 'hello', 'sendMessage': 'Send'})

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        body = response_body(response)
        assert body['outcome'] == 'queued'
        assert body['messageId'].endswith('@carol.freemail>')
        assert len(fake_processor.outbox.sent) == 1

    def test_base64_body(self, fake_processor, mock_context):
        event = form_event({'to0': 'a@dom', 'addRcpt': ''}, base64_encoded=True)

        response = compose_handler.lambda_handler(event, mock_context)

        assert response_body(response)['draft']['recipients'] == ['a@dom', '']

    def test_blank_fields_kept(self, fake_processor, mock_context):
        event = form_event({'to0': '', 'to1': 'b', 'removeRcpt0.x': '4', 'removeRcpt0.y': '2'})

        response = compose_handler.lambda_handler(event, mock_context)

        assert response_body(response)['draft']['recipients'] == ['b']

    def test_failed_recipients(self, fake_processor, mock_context):
        event = form_event({'to0': 'ghost', 'sendMessage': 'Send'})

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        assert response_body(response) == {
            'outcome': 'recipients_failed',
            'failedRecipients': ['ghost'],
            'failedCount': 1,
        }

    def test_unknown_action(self, fake_processor, mock_context):
        event = form_event({'to0': 'a@dom'})

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        assert response_body(response)['diagnostic'] == 'to0="a@dom" '

    def test_reply(self, fake_processor, mock_context):
        event = form_event({'reply': 'Reply', 'folder': 'INBOX', 'message': '3'})

        response = compose_handler.lambda_handler(event, mock_context)

        draft = response_body(response)['draft']
        assert draft['subject'] == 'Re: Lunch'
        assert draft['body'] == '>x\r\n>y\r\n'

    def test_get_prefills_recipient(self, fake_processor, mock_context):
        event = {
            'httpMethod': 'GET',
            'queryStringParameters': {'to': 'AAAA1111'},
            'requestContext': {'authorizer': dict(AUTHORIZER)},
        }

        response = compose_handler.lambda_handler(event, mock_context)

        assert response_body(response)['draft']['recipients'] == ['alice@AAAA1111.freemail']

    def test_http_api_method(self, fake_processor, mock_context):
        event = {
            'requestContext': {'http': {'method': 'GET'}, 'authorizer': dict(AUTHORIZER)},
        }

        response = compose_handler.lambda_handler(event, mock_context)

        assert response_body(response)['draft']['recipients'] == ['']

    def test_missing_account(self, fake_processor, mock_context):
        event = form_event({'to0': 'a@dom', 'sendMessage': 'Send'})
        event['requestContext'] = {}

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 400

    def test_invalid_reply(self, fake_processor, mock_context):
        event = form_event({'reply': 'Reply', 'folder': 'INBOX', 'message': 'x'})

        assert compose_handler.lambda_handler(event, mock_context)['statusCode'] == 400

    def test_reply_to_superscript_number(self, fake_processor, mock_context):
        event = form_event({'reply': 'Reply', 'folder': 'INBOX', 'message': '\u00b2'})

        assert compose_handler.lambda_handler(event, mock_context)['statusCode'] == 400

    def test_null_request_context(self, fake_processor, mock_context):
        event = {'body': 'to0=a%40dom&sendMessage=Send', 'requestContext': None}

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 400

    def test_null_http_context(self, fake_processor, mock_context):
        event = {'requestContext': {'http': None, 'authorizer': dict(AUTHORIZER)}, 'body': 'to0=a'}

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        assert response_body(response)['outcome'] == 'unknown_action'

    def test_repeated_fields_in_diagnostic(self, fake_processor, mock_context):
        event = form_event([('to0', 'a'), ('to0', 'b')])

        response = compose_handler.lambda_handler(event, mock_context)

        assert response_body(response)['diagnostic'] == 'to0="a" to0="b" '

    def test_base64_body_not_utf8(self, fake_processor, mock_context):
        event = form_event({})
        event['body'] = base64.b64encode(b"to0=a%40dom&subject=\xff&addRcpt=").decode('ascii')
        event['isBase64Encoded'] = True

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        draft = response_body(response)['draft']
        assert draft['recipients'] == ['a@dom', '']
        assert draft['subject'] == '\ufffd'

    def test_invalid_base64_body(self, fake_processor, mock_context):
        event = form_event({})
        event['body'] = 'not base64!'
        event['isBase64Encoded'] = True

        assert compose_handler.lambda_handler(event, mock_context)['statusCode'] == 400

    def test_missing_message(self, fake_processor, mock_context):
        event = form_event({'reply': 'Reply', 'folder': 'INBOX', 'message': '7'})

        assert compose_handler.lambda_handler(event, mock_context)['statusCode'] == 404

    def test_malformed_message(self, mock_context):
        processor = ComposeProcessor(
            directory=FakeDirectory(),
            outboxes=lambda account: FakeOutbox(),
            message_stores=lambda account: FakeStore({('INBOX', 1): "Subject: s\r\n\r\n"})
        )
        event = form_event({'reply': 'Reply', 'folder': 'INBOX', 'message': '1'})

        with patch.object(compose_handler, 'compose_processor', processor):
            response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 422

    def test_unexpected_error(self, mock_context):
        processor = MagicMock()
        processor.handle_form.side_effect = RuntimeError("boom")
        event = form_event({'to0': 'a@dom', 'sendMessage': 'Send'})

        with patch.object(compose_handler, 'compose_processor', processor):
            response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 500
        assert response_body(response)['error'] == 'Internal server error'


class TestLambdaHandlerWithAws:
    """Test the handler against mocked AWS clients."""

    @patch('services.delivery.sqs_client')
    @patch('integrations.identity_directory.lambda_client')
    def test_send_through_aws_clients(self, mock_lambda_client, mock_sqs_client, mock_context):
        stream = MagicMock()
        stream.read.return_value = json.dumps({
            'matches': {'a@dom': [{'nickname': 'alice', 'identityId': 'AAAA1111'}]}
        }).encode('utf-8')
        mock_lambda_client.invoke.return_value = {'StatusCode': 200, 'Payload': stream}
        mock_sqs_client.send_message.return_value = {'MessageId': 'sqs-1'}
        event = form_event({'to0': 'a@dom', 'subject': 'Hi', 'message-text': 'hello', 'sendMessage': 'Send'})

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        assert response_body(response)['outcome'] == 'queued'
        payload = json.loads(mock_sqs_client.send_message.call_args.kwargs['MessageBody'])
        message = base64.b64decode(payload['message'])
        assert b"To: a@dom\r\n" in message
        assert message.endswith(b"\r\n\r\nhello")

    @patch('integrations.identity_directory.lambda_client')
    def test_directory_unavailable_notice(self, mock_lambda_client, mock_context):
        from botocore.exceptions import ClientError
        mock_lambda_client.invoke.side_effect = ClientError(
            {'Error': {'Code': 'ResourceNotFoundException', 'Message': 'Function not found'}},
            'Invoke'
        )
        event = form_event({'to0': 'a@dom', 'sendMessage': 'Send'})

        response = compose_handler.lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        assert response_body(response) == {'outcome': 'directory_unavailable'}


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
