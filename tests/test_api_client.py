"""Tests for the Python API client (requests session mocked)."""

from unittest.mock import MagicMock

import pytest
import requests

from utils.api_client import ApiError, PantryApiClient
from utils.identity import StaticIdentityProvider

OWNER = 'guest_1700000000000_abc123xyz'


def _response(status_code=200, payload=None, reason='OK'):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.reason = reason
    response.content = b'x' if payload is not None else b''
    response.json.return_value = payload
    return response


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(http):
    return PantryApiClient('http://pantry.local/', StaticIdentityProvider(OWNER), session=http, timeout=5)


def test_identity_header_is_attached(client, http):
    http.request.return_value = _response(payload=[{'id': 1, 'name': 'Refrigerator'}])

    categories = client.get_categories()

    assert categories[0]['name'] == 'Refrigerator'
    args, kwargs = http.request.call_args
    assert args == ('GET', 'http://pantry.local/api/categories')
    assert kwargs['headers'] == {'X-User-ID': OWNER}
    assert kwargs['timeout'] == 5


def test_batch_create_sends_items(client, http):
    http.request.return_value = _response(payload={'success': True, 'createdCount': 1, 'items': []})

    client.batch_create([{'name': 'Milk', 'categoryId': 1}])

    assert http.request.call_args.kwargs['json'] == {'items': [{'name': 'Milk', 'categoryId': 1}]}


def test_receipt_upload_is_multipart(client, http):
    http.request.return_value = _response(payload={'extractedItems': [], 'rawText': '', 'receiptId': 1})

    client.analyze_receipt(b'jpeg-bytes')

    files = http.request.call_args.kwargs['files']
    assert files['receipt'] == ('receipt.jpg', b'jpeg-bytes', 'image/jpeg')


def test_error_response_raises_api_error(client, http):
    http.request.return_value = _response(
        429, {'error': 'busy', 'kind': 'rate_limited', 'retryable': True}, reason='Too Many Requests'
    )

    with pytest.raises(ApiError) as excinfo:
        client.analyze_receipt(b'jpeg-bytes')

    assert excinfo.value.status == 429
    assert excinfo.value.kind == 'rate_limited'
    assert excinfo.value.message == 'busy'
    assert excinfo.value.retryable


def test_configuration_error_is_not_retryable(client, http):
    http.request.return_value = _response(
        503, {'error': 'not configured', 'kind': 'configuration_missing', 'retryable': False}
    )

    with pytest.raises(ApiError) as excinfo:
        client.analyze_receipt(b'jpeg-bytes')

    assert not excinfo.value.retryable


def test_network_failure_raises_api_error(client, http):
    http.request.side_effect = requests.ConnectionError('refused')

    with pytest.raises(ApiError) as excinfo:
        client.list_food_items()

    assert excinfo.value.status == 0
    assert excinfo.value.kind == 'network'


def test_empty_body_returns_none(client, http):
    http.request.return_value = _response(204)
    assert client.delete_food_item(3) is None
