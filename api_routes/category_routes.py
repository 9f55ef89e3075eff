from flask import Blueprint, jsonify
import logging

from db_connection import get_session
from utils.inventory_store import create_category, ensure_default_categories, ensure_user
from api_routes.route_helpers import current_owner_id, json_body

logger = logging.getLogger(__name__)

# Create a Blueprint object
category_blueprint = Blueprint('category_blueprint', __name__)


@category_blueprint.route('/api/categories', methods=['GET'])
def list_categories_r():
    """List storage locations; a new owner gets the four defaults on first read"""
    session = get_session()
    try:
        categories = ensure_default_categories(session, current_owner_id())
        session.commit()
        return jsonify([c.to_dict() for c in categories]), 200

    except Exception as e:
        session.rollback()
        logger.exception("Failed to list categories")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@category_blueprint.route('/api/categories/init', methods=['POST'])
def init_categories_r():
    """Idempotent bootstrap of the default categories"""
    session = get_session()
    try:
        categories = ensure_default_categories(session, current_owner_id())
        session.commit()
        return jsonify([c.to_dict() for c in categories]), 200

    except Exception as e:
        session.rollback()
        logger.exception("Failed to initialize categories")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@category_blueprint.route('/api/categories', methods=['POST'])
def create_category_r():
    """Create a custom storage location"""
    session = get_session()
    try:
        data = json_body()
        owner_id = current_owner_id()
        ensure_user(session, owner_id)

        category = create_category(
            session,
            owner_id,
            name=data.get('name'),
            icon=data.get('icon') or 'fas fa-box',
            color=data.get('color') or '#A9A9A9'
        )
        session.commit()
        return jsonify(category.to_dict()), 201

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to create category")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
