"""
Pantry Tracker API.

Run locally:      python main.py
Run in production: gunicorn "main:create_app()"
"""

import logging

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from config import Settings
from logging_setup import configure_logging
import db_connection

from api_routes.route_helpers import echo_generated_owner, resolve_request_owner
from api_routes.users_handling_routes import users_handling_blueprint
from api_routes.category_routes import category_blueprint
from api_routes.food_item_routes import food_item_blueprint
from api_routes.receipt_routes import receipt_blueprint, EXTRACTION_SERVICE_KEY
from api_routes.shopping_routes import shopping_blueprint
from api_routes.nutrition_routes import nutrition_blueprint
from api_routes.community_routes import community_blueprint
from api_routes.product_routes import product_blueprint
from utils.identity import USER_ID_HEADER
from utils.receipt_extraction import ReceiptExtractionService

logger = logging.getLogger(__name__)

# Multipart framing around the image itself
UPLOAD_OVERHEAD_BYTES = 1024 * 1024


def create_app(settings: Settings = None, extraction_service=None) -> Flask:
    """
    Build the Flask app.

    settings defaults to Settings.from_env(); extraction_service defaults to
    an OpenAI-backed ReceiptExtractionService built from those settings.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    app.config['SETTINGS'] = settings
    app.config['AUTH_REQUIRED'] = settings.auth_required
    app.config['OPENFOODFACTS_URL'] = settings.openfoodfacts_url
    app.config['PRODUCT_LOOKUP_TIMEOUT'] = settings.product_lookup_timeout
    app.config['MAX_CONTENT_LENGTH'] = settings.max_image_bytes + UPLOAD_OVERHEAD_BYTES
    app.json.ensure_ascii = False

    CORS(app, resources={
        r"/api/*": {
            "origins": settings.cors_origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", USER_ID_HEADER],
            "expose_headers": [USER_ID_HEADER]
        }
    })

    # Database
    db_connection.configure_engine(settings.database_url)
    db_connection.init_db()

    app.extensions[EXTRACTION_SERVICE_KEY] = (
        extraction_service or ReceiptExtractionService.from_settings(settings)
    )
    if not settings.openai_api_key and extraction_service is None:
        logger.warning("OPENAI_API_KEY is not set; receipt scanning will report configuration_missing")

    app.before_request(resolve_request_owner)
    app.after_request(echo_generated_owner)

    app.register_blueprint(users_handling_blueprint)
    app.register_blueprint(category_blueprint)
    app.register_blueprint(food_item_blueprint)
    app.register_blueprint(receipt_blueprint)
    app.register_blueprint(shopping_blueprint)
    app.register_blueprint(nutrition_blueprint)
    app.register_blueprint(community_blueprint)
    app.register_blueprint(product_blueprint)

    @app.route('/api/health', methods=['GET'])
    def health_r():
        return jsonify({'status': 'ok'}), 200

    @app.errorhandler(RequestEntityTooLarge)
    def too_large_r(e):
        limit_mb = settings.max_image_bytes / (1024 * 1024)
        return jsonify({
            'error': f'File size exceeds the {limit_mb:g}MB limit',
            'kind': 'invalid_image',
            'retryable': False
        }), 413

    @app.errorhandler(404)
    def not_found_r(e):
        return jsonify({'error': 'Not found'}), 404

    @app.teardown_appcontext
    def remove_session(exception=None):
        db_connection.close_db_session()

    logger.info("Pantry Tracker API ready (auth_required=%s)", settings.auth_required)
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=True)
