"""
Small HTTP client for the Pantry Tracker API.

The owner id comes from an injected IdentityProvider and is attached to every
request as the X-User-ID header.
"""

import logging
from typing import Optional

import requests

from utils.identity import USER_ID_HEADER, IdentityProvider, StaticIdentityProvider

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised for any non-2xx response."""

    def __init__(self, status: int, message: str, kind: Optional[str] = None, payload=None):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message
        self.kind = kind
        self.payload = payload

    @property
    def retryable(self) -> bool:
        if isinstance(self.payload, dict) and 'retryable' in self.payload:
            return bool(self.payload['retryable'])
        return self.status >= 500 or self.status == 429


class PantryApiClient:

    def __init__(self, base_url: str, identity_provider: Optional[IdentityProvider] = None,
                 session: Optional[requests.Session] = None, timeout: float = 30):
        self.base_url = base_url.rstrip('/')
        self.identity_provider = identity_provider or StaticIdentityProvider()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop('headers', {}) or {}
        headers[USER_ID_HEADER] = self.identity_provider.get_user_id()
        url = f"{self.base_url}/api{path}"

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ApiError(0, f"Request to {url} failed: {e}", 'network') from e

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            message = payload.get('error') if isinstance(payload, dict) else None
            kind = payload.get('kind') if isinstance(payload, dict) else None
            logger.warning("%s %s -> %s", method, path, response.status_code)
            raise ApiError(response.status_code, message or response.reason or 'Request failed', kind, payload)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------
    # categories & inventory
    # ------------------------------------------------------------

    def get_categories(self) -> list:
        return self._request('GET', '/categories')

    def init_categories(self) -> list:
        return self._request('POST', '/categories/init')

    def list_food_items(self, category_id: Optional[int] = None) -> list:
        params = {'categoryId': category_id} if category_id is not None else None
        return self._request('GET', '/food-items', params=params)

    def create_food_item(self, item: dict) -> dict:
        return self._request('POST', '/food-items', json=item)

    def update_food_item(self, item_id: int, updates: dict) -> dict:
        return self._request('PUT', f'/food-items/{item_id}', json=updates)

    def delete_food_item(self, item_id: int) -> None:
        return self._request('DELETE', f'/food-items/{item_id}')

    def consume_food_item(self, item_id: int, amount: Optional[int] = None) -> dict:
        body = {'amount': amount} if amount is not None else {}
        return self._request('POST', f'/food-items/{item_id}/consume', json=body)

    def expiring_items(self, days: int = 3) -> list:
        return self._request('GET', '/food-items/expiring', params={'days': days})

    def batch_create(self, items: list) -> dict:
        return self._request('POST', '/food-items/batch', json={'items': items})

    # ------------------------------------------------------------
    # receipts
    # ------------------------------------------------------------

    def analyze_receipt(self, image_bytes: bytes, filename: str = 'receipt.jpg',
                        mime_type: str = 'image/jpeg') -> dict:
        files = {'receipt': (filename, image_bytes, mime_type)}
        return self._request('POST', '/receipts/analyze', files=files)

    def reconcile(self, extracted_items: list) -> dict:
        return self._request('POST', '/receipts/reconcile', json={'extractedItems': extracted_items})

    def list_receipts(self, page: int = 0) -> dict:
        return self._request('GET', '/receipts', params={'page': page})

    # ------------------------------------------------------------
    # everything else
    # ------------------------------------------------------------

    def get_user(self) -> dict:
        return self._request('GET', '/auth/user')

    def nutrition_summary(self) -> dict:
        return self._request('GET', '/nutrition/summary')

    def lookup_barcode(self, barcode: str) -> dict:
        return self._request('GET', f'/products/barcode/{barcode}')
