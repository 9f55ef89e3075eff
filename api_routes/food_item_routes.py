from flask import Blueprint, jsonify, request
import logging

from db_connection import get_session
from utils.inventory_store import (
    consume_food_item, create_food_item, delete_food_item, ensure_user,
    get_expiring_items, list_food_items, update_food_item
)
from utils.reconciliation import commit_batch
from api_routes.route_helpers import current_owner_id, int_arg, json_body

logger = logging.getLogger(__name__)

# Create a Blueprint object
food_item_blueprint = Blueprint('food_item_blueprint', __name__)

# camelCase request keys -> store field names
_UPDATE_FIELDS = {
    'name': 'name',
    'categoryId': 'category_id',
    'quantity': 'quantity',
    'unit': 'unit',
    'expiryDate': 'expiry_date',
    'imageUrl': 'image_url',
    'protein': 'protein',
    'carbs': 'carbs',
    'fats': 'fats',
    'calories': 'calories',
}


@food_item_blueprint.route('/api/food-items', methods=['GET'])
def list_food_items_r():
    """List the caller's inventory, optionally for one category"""
    session = get_session()
    try:
        category_id = int_arg('categoryId')
        items = list_food_items(session, current_owner_id(), category_id)
        return jsonify([item.to_dict() for item in items]), 200

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Failed to list food items")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@food_item_blueprint.route('/api/food-items', methods=['POST'])
def create_food_item_r():
    """Add a single item to the inventory"""
    session = get_session()
    try:
        data = json_body()
        owner_id = current_owner_id()
        ensure_user(session, owner_id)

        if data.get('categoryId') is None:
            return jsonify({'error': 'categoryId is required'}), 400

        item = create_food_item(
            session,
            owner_id,
            name=data.get('name'),
            category_id=data.get('categoryId'),
            quantity=data.get('quantity', 1),
            unit=data.get('unit'),
            expiry_date=data.get('expiryDate'),
            image_url=data.get('imageUrl'),
            protein=data.get('protein', 0),
            carbs=data.get('carbs', 0),
            fats=data.get('fats', 0),
            calories=data.get('calories', 0)
        )
        session.commit()
        return jsonify(item.to_dict()), 201

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to create food item")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@food_item_blueprint.route('/api/food-items/<int:item_id>', methods=['PUT'])
def update_food_item_r(item_id):
    """Partial update of one of the caller's items"""
    session = get_session()
    try:
        data = json_body()
        updates = {field: data[key] for key, field in _UPDATE_FIELDS.items() if key in data}

        item = update_food_item(session, current_owner_id(), item_id, updates)
        if item is None:
            return jsonify({'error': 'Food item not found'}), 404

        session.commit()
        return jsonify(item.to_dict()), 200

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to update food item %s", item_id)
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@food_item_blueprint.route('/api/food-items/<int:item_id>', methods=['DELETE'])
def delete_food_item_r(item_id):
    session = get_session()
    try:
        if not delete_food_item(session, current_owner_id(), item_id):
            return jsonify({'error': 'Food item not found'}), 404

        session.commit()
        return jsonify({'success': True}), 200

    except Exception as e:
        session.rollback()
        logger.exception("Failed to delete food item %s", item_id)
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@food_item_blueprint.route('/api/food-items/<int:item_id>/consume', methods=['POST'])
def consume_food_item_r(item_id):
    """Use up some (or all, when no amount is given) of an item"""
    session = get_session()
    try:
        amount = json_body().get('amount')

        item, deleted = consume_food_item(session, current_owner_id(), item_id, amount)
        if item is None:
            return jsonify({'error': 'Food item not found'}), 404

        session.commit()
        return jsonify({
            'success': True,
            'deleted': deleted,
            'item': None if deleted else item.to_dict()
        }), 200

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to consume food item %s", item_id)
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@food_item_blueprint.route('/api/food-items/expiring', methods=['GET'])
def expiring_food_items_r():
    """Items expiring within ?days= days (default 3), overdue ones included"""
    session = get_session()
    try:
        days = int_arg('days', default=3, minimum=0)
        items = get_expiring_items(session, current_owner_id(), days)
        return jsonify([item.to_dict() for item in items]), 200

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Failed to list expiring items")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@food_item_blueprint.route('/api/food-items/batch', methods=['POST'])
def batch_create_food_items_r():
    """
    Insert many items at once (the receipt confirmation step).
    Accepts a bare array or {"items": [...]}. Valid items are saved even when
    others fail; the response is a 400 only when nothing was saved.
    """
    session = get_session()
    try:
        data = request.get_json(silent=True)
        items = data.get('items') if isinstance(data, dict) else data
        if not isinstance(items, list):
            return jsonify({'error': 'Expected an array of items'}), 400

        owner_id = current_owner_id()
        ensure_user(session, owner_id)

        result = commit_batch(session, owner_id, items)
        session.commit()

        status = 400 if result.failed else 200
        return jsonify(result.to_dict()), status

    except Exception as e:
        session.rollback()
        logger.exception("Batch insert failed")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
