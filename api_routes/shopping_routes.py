from flask import Blueprint, jsonify
import logging

from db_connection import get_session
from utils.inventory_store import (
    create_shopping_item, delete_shopping_item, ensure_user, list_shopping_items, update_shopping_item
)
from api_routes.route_helpers import current_owner_id, json_body

logger = logging.getLogger(__name__)

# Create a Blueprint object
shopping_blueprint = Blueprint('shopping_blueprint', __name__)


@shopping_blueprint.route('/api/shopping-items', methods=['GET'])
def list_shopping_items_r():
    session = get_session()
    try:
        items = list_shopping_items(session, current_owner_id())
        return jsonify([item.to_dict() for item in items]), 200

    except Exception as e:
        logger.exception("Failed to list shopping items")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@shopping_blueprint.route('/api/shopping-items', methods=['POST'])
def create_shopping_item_r():
    session = get_session()
    try:
        data = json_body()
        owner_id = current_owner_id()
        ensure_user(session, owner_id)

        item = create_shopping_item(session, owner_id, data.get('name'), data.get('categoryName'))
        session.commit()
        return jsonify(item.to_dict()), 201

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to create shopping item")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@shopping_blueprint.route('/api/shopping-items/<int:item_id>', methods=['PUT'])
def update_shopping_item_r(item_id):
    """Rename, recategorise or tick off a shopping list entry"""
    session = get_session()
    try:
        data = json_body()
        updates = {}
        if 'name' in data:
            updates['name'] = data['name']
        if 'categoryName' in data:
            updates['category_name'] = data['categoryName']
        if 'completed' in data:
            updates['completed'] = data['completed']

        item = update_shopping_item(session, current_owner_id(), item_id, updates)
        if item is None:
            return jsonify({'error': 'Shopping item not found'}), 404

        session.commit()
        return jsonify(item.to_dict()), 200

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to update shopping item %s", item_id)
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@shopping_blueprint.route('/api/shopping-items/<int:item_id>', methods=['DELETE'])
def delete_shopping_item_r(item_id):
    session = get_session()
    try:
        if not delete_shopping_item(session, current_owner_id(), item_id):
            return jsonify({'error': 'Shopping item not found'}), 404

        session.commit()
        return jsonify({'success': True}), 200

    except Exception as e:
        session.rollback()
        logger.exception("Failed to delete shopping item %s", item_id)
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
