from flask import Blueprint, jsonify
import logging

from db_connection import get_session
from utils.inventory_store import ensure_user
from api_routes.route_helpers import current_owner_id

logger = logging.getLogger(__name__)

# Create a Blueprint object
users_handling_blueprint = Blueprint('users_handling_blueprint', __name__)


@users_handling_blueprint.route('/api/auth/user', methods=['GET'])
def get_user_r():
    """Guest profile for the caller, created on first sight"""
    session = get_session()
    try:
        user = ensure_user(session, current_owner_id())
        session.commit()
        return jsonify(user.to_dict()), 200

    except Exception as e:
        session.rollback()
        logger.exception("Failed to load user")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
