from flask import Blueprint, jsonify
import logging

from db_connection import get_session
from utils.inventory_store import list_food_items
from utils.nutrition import summarize_nutrition
from api_routes.route_helpers import current_owner_id

logger = logging.getLogger(__name__)

# Create a Blueprint object
nutrition_blueprint = Blueprint('nutrition_blueprint', __name__)


@nutrition_blueprint.route('/api/nutrition/summary', methods=['GET'])
def nutrition_summary_r():
    """Nutrient totals across the whole inventory against daily targets"""
    session = get_session()
    try:
        items = list_food_items(session, current_owner_id())
        return jsonify(summarize_nutrition(items)), 200

    except Exception as e:
        logger.exception("Failed to build nutrition summary")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
