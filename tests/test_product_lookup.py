"""Tests for Open Food Facts product lookup (requests mocked)."""

from unittest.mock import MagicMock, patch

import requests

from utils.product_lookup import lookup_product

BARCODE = '4901234567894'


def _response(status_code=200, payload=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError('not json')
    else:
        response.json.return_value = payload
    return response


@patch('utils.product_lookup.requests.get')
def test_found_product(mock_get):
    mock_get.return_value = _response(payload={
        'status': 1,
        'product': {
            'product_name': 'Cola',
            'brands': 'Fizz Co',
            'categories': 'Beverages, Sodas',
            'image_front_url': 'https://images.example/cola.jpg',
        },
    })

    product = lookup_product(BARCODE, base_url='https://off.example/', timeout=3)

    assert product.found
    assert product.name == 'Cola'
    assert product.brand == 'Fizz Co'
    assert product.category == 'Beverages'
    assert product.to_dict()['imageUrl'] == 'https://images.example/cola.jpg'
    mock_get.assert_called_once_with(f'https://off.example/api/v0/product/{BARCODE}.json', timeout=3)


@patch('utils.product_lookup.requests.get')
def test_unknown_barcode_gives_placeholder(mock_get):
    mock_get.return_value = _response(payload={'status': 0, 'status_verbose': 'product not found'})

    product = lookup_product(BARCODE)

    assert not product.found
    assert product.name == f'Item ({BARCODE})'
    assert product.category == 'other'


@patch('utils.product_lookup.requests.get')
def test_network_error_gives_placeholder(mock_get):
    mock_get.side_effect = requests.ConnectionError('offline')
    assert lookup_product(BARCODE).name == f'Item ({BARCODE})'


@patch('utils.product_lookup.requests.get')
def test_server_error_gives_placeholder(mock_get):
    mock_get.return_value = _response(status_code=503)
    assert not lookup_product(BARCODE).found


@patch('utils.product_lookup.requests.get')
def test_non_json_gives_placeholder(mock_get):
    mock_get.return_value = _response(json_error=True)
    assert not lookup_product(BARCODE).found


@patch('utils.product_lookup.requests.get')
def test_non_numeric_barcode_is_not_sent(mock_get):
    product = lookup_product('abc')
    assert product.name == 'Item (abc)'
    mock_get.assert_not_called()
