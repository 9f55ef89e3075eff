from flask import Blueprint, jsonify, current_app
import logging

from utils.product_lookup import lookup_product

logger = logging.getLogger(__name__)

# Create a Blueprint object
product_blueprint = Blueprint('product_blueprint', __name__)


@product_blueprint.route('/api/products/barcode/<barcode>', methods=['GET'])
def lookup_barcode_r(barcode):
    """Product details for a scanned barcode; unknown codes get a placeholder"""
    product = lookup_product(
        barcode,
        base_url=current_app.config['OPENFOODFACTS_URL'],
        timeout=current_app.config['PRODUCT_LOOKUP_TIMEOUT']
    )
    return jsonify(product.to_dict()), 200
