"""
Barcode -> product details via the Open Food Facts public API.

Lookups never raise: an unknown barcode or an unreachable service both give a
placeholder product the user can still add to the inventory.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_OPENFOODFACTS_URL = 'https://world.openfoodfacts.org'
PLACEHOLDER_CATEGORY = 'other'


@dataclass
class ProductInfo:
    barcode: str
    name: str
    brand: Optional[str] = None
    category: str = PLACEHOLDER_CATEGORY
    image_url: Optional[str] = None
    description: Optional[str] = None
    found: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data['imageUrl'] = data.pop('image_url')
        return data


def placeholder_product(barcode: str) -> ProductInfo:
    return ProductInfo(barcode=barcode, name=f"Item ({barcode})", category=PLACEHOLDER_CATEGORY)


def _first_category(product: dict) -> str:
    categories = product.get('categories') or ''
    first = categories.split(',')[0].strip() if isinstance(categories, str) else ''
    return first or PLACEHOLDER_CATEGORY


def lookup_product(barcode: str, *, base_url: str = DEFAULT_OPENFOODFACTS_URL,
                   timeout: float = 10) -> ProductInfo:
    """Fetch product details for a UPC/EAN barcode."""
    barcode = (barcode or '').strip()
    if not barcode.isdigit():
        logger.info("Not a numeric barcode: %r", barcode)
        return placeholder_product(barcode)

    url = f"{base_url.rstrip('/')}/api/v0/product/{barcode}.json"
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.warning("Product lookup failed for %s: %s", barcode, e)
        return placeholder_product(barcode)

    if response.status_code != 200:
        logger.warning("Product lookup for %s returned %s", barcode, response.status_code)
        return placeholder_product(barcode)

    try:
        data = response.json()
    except ValueError:
        logger.warning("Product lookup for %s returned non-JSON body", barcode)
        return placeholder_product(barcode)

    if not isinstance(data, dict) or data.get('status') != 1:
        logger.info("Barcode %s not found", barcode)
        return placeholder_product(barcode)

    product = data.get('product') or {}
    name = product.get('product_name') or product.get('generic_name')
    if not name:
        return placeholder_product(barcode)

    return ProductInfo(
        barcode=barcode,
        name=name,
        brand=product.get('brands') or None,
        category=_first_category(product),
        image_url=product.get('image_front_url') or product.get('image_url'),
        description=product.get('generic_name') or None,
        found=True,
    )
