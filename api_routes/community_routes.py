from flask import Blueprint, jsonify
import logging

from db_connection import get_session
from utils.inventory_store import (
    create_community_post, create_feedback_item, list_community_posts, list_feedback_items
)
from api_routes.route_helpers import current_owner_id, int_arg, json_body

logger = logging.getLogger(__name__)

# Create a Blueprint object
community_blueprint = Blueprint('community_blueprint', __name__)

POST_TYPES = {'tip', 'recipe', 'question'}


# ============================================================
# COMMUNITY POSTS
# ============================================================

@community_blueprint.route('/api/community/posts', methods=['GET'])
def list_posts_r():
    session = get_session()
    try:
        limit = int_arg('limit', default=50, minimum=1)
        posts = list_community_posts(session, limit=min(limit, 200))
        return jsonify([p.to_dict() for p in posts]), 200

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Failed to list community posts")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@community_blueprint.route('/api/community/posts', methods=['POST'])
def create_post_r():
    session = get_session()
    try:
        data = json_body()
        post_type = data.get('type') or 'tip'
        if post_type not in POST_TYPES:
            return jsonify({'error': f"type must be one of {', '.join(sorted(POST_TYPES))}"}), 400

        post = create_community_post(
            session,
            current_owner_id(),
            content=data.get('content'),
            post_type=post_type,
            username=data.get('username'),
            tags=data.get('tags') if isinstance(data.get('tags'), list) else None
        )
        session.commit()
        return jsonify(post.to_dict()), 201

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to create community post")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


# ============================================================
# FEEDBACK
# ============================================================

@community_blueprint.route('/api/feedback', methods=['GET'])
def list_feedback_r():
    session = get_session()
    try:
        items = list_feedback_items(session)
        return jsonify([f.to_dict() for f in items]), 200

    except Exception as e:
        logger.exception("Failed to list feedback")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@community_blueprint.route('/api/feedback', methods=['POST'])
def create_feedback_r():
    session = get_session()
    try:
        data = json_body()
        feedback = create_feedback_item(
            session,
            current_owner_id(),
            title=data.get('title'),
            description=data.get('description')
        )
        session.commit()
        return jsonify(feedback.to_dict()), 201

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to submit feedback")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
