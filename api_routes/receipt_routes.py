from flask import Blueprint, request, jsonify, current_app
from werkzeug.utils import secure_filename
import base64
import logging

from db_connection import get_session
from utils.inventory_store import (
    count_receipts, create_receipt, ensure_default_categories, ensure_user, list_receipts
)
from utils.receipt_extraction import ExtractionError, ExtractionErrorKind
from utils.reconciliation import build_drafts, confirm_drafts
from api_routes.route_helpers import current_owner_id, int_arg, json_body

logger = logging.getLogger(__name__)

# Create a Blueprint object
receipt_blueprint = Blueprint('receipt_blueprint', __name__)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg'}
EXTRACTION_SERVICE_KEY = 'receipt_extraction'

EXTRACTION_HTTP_STATUS = {
    ExtractionErrorKind.CONFIGURATION_MISSING: 503,
    ExtractionErrorKind.RATE_LIMITED: 429,
    ExtractionErrorKind.SERVICE_UNAVAILABLE: 502,
    ExtractionErrorKind.INVALID_IMAGE: 400,
}


def allowed_file(filename):
    """Check if the file extension is allowed"""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _mime_type_for(file, filename):
    if file.mimetype and file.mimetype.startswith('image/'):
        return file.mimetype
    return 'image/png' if filename.lower().endswith('.png') else 'image/jpeg'


def extraction_error_response(error: ExtractionError):
    status = EXTRACTION_HTTP_STATUS.get(error.kind, 500)
    if error.kind == ExtractionErrorKind.INVALID_IMAGE and error.status_code == 413:
        status = 413
    return jsonify(error.to_dict()), status


@receipt_blueprint.route('/api/receipts/analyze', methods=['POST'])
def analyze_receipt_r():
    """
    Read a receipt photo and return candidate items for review.
    Every successful read is stored as a receipt record, even when no
    items were recognised.
    """
    file = request.files.get('receipt') or request.files.get('file')
    if file is None:
        return jsonify({'error': 'No receipt image in the request', 'kind': 'invalid_image', 'retryable': False}), 400
    if file.filename == '':
        return jsonify({'error': 'No selected file', 'kind': 'invalid_image', 'retryable': False}), 400

    filename = secure_filename(file.filename) or 'receipt.jpg'
    if not allowed_file(filename):
        return jsonify({
            'error': 'File type not allowed. Only images (png, jpg, jpeg) are accepted.',
            'kind': 'invalid_image',
            'retryable': False
        }), 400

    image_bytes = file.read()
    mime_type = _mime_type_for(file, filename)

    service = current_app.extensions[EXTRACTION_SERVICE_KEY]
    try:
        result = service.extract(image_bytes, mime_type)
    except ExtractionError as e:
        logger.warning("Receipt extraction failed (%s): %s", e.kind.value, e.message)
        return extraction_error_response(e)

    extracted_items = result.items_as_dicts()

    session = get_session()
    try:
        owner_id = current_owner_id()
        ensure_user(session, owner_id)

        image_reference = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('utf-8')}"
        receipt = create_receipt(
            session,
            owner_id,
            image_reference=image_reference,
            raw_text=result.raw_text,
            extracted_items=extracted_items
        )
        session.commit()

        return jsonify({
            'extractedItems': extracted_items,
            'rawText': result.raw_text,
            'receiptId': receipt.id
        }), 200

    except Exception as e:
        session.rollback()
        logger.exception("Failed to store receipt")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


def _apply_decision(draft, decision):
    if not isinstance(decision, dict):
        return
    if decision.get('reject'):
        draft.reject()
        return
    if decision.get('chosenName'):
        draft.choose_name(decision['chosenName'])

    changes = {}
    for key, field in (('name', 'name'), ('categoryId', 'category_id'), ('quantity', 'quantity'),
                       ('unit', 'unit'), ('expiryDate', 'expiry_date')):
        if decision.get(key) is not None:
            changes[field] = decision[key]
    if changes:
        draft.edit(**changes)


@receipt_blueprint.route('/api/receipts/reconcile', methods=['POST'])
def reconcile_receipt_r():
    """
    Turn candidate items into drafts with suggested category and expiry.

    With "decisions" (one per candidate, same order) and "confirm": true, the
    drafts are edited / rejected and the ready-to-commit batch is returned
    instead. Nothing is saved here.
    """
    session = get_session()
    try:
        data = json_body()
        candidates = data.get('extractedItems') or data.get('items') or []
        if not isinstance(candidates, list):
            return jsonify({'error': 'extractedItems must be an array'}), 400

        categories = ensure_default_categories(session, current_owner_id())
        session.commit()

        drafts = build_drafts(candidates, categories)

        decisions = data.get('decisions') or []
        if not isinstance(decisions, list):
            return jsonify({'error': 'decisions must be an array'}), 400
        for draft in drafts:
            if draft.source_index < len(decisions):
                _apply_decision(draft, decisions[draft.source_index])

        if data.get('confirm'):
            confirmed, failures = confirm_drafts(drafts, categories)
            return jsonify({'items': confirmed, 'failures': failures}), 200

        return jsonify({
            'drafts': [d.to_dict() for d in drafts],
            'categories': [c.to_dict() for c in categories]
        }), 200

    except ValueError as e:
        session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        session.rollback()
        logger.exception("Failed to reconcile receipt items")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()


@receipt_blueprint.route('/api/receipts', methods=['GET'])
def list_receipts_r():
    """Receipt history, newest first, 10 per page"""
    session = get_session()
    try:
        page = int_arg('page', default=0, minimum=0)
        owner_id = current_owner_id()
        receipts = list_receipts(session, owner_id, page=page)
        total = count_receipts(session, owner_id)

        return jsonify({
            'receipts': [r.to_dict() for r in receipts],
            'total': total,
            'page': page
        }), 200

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Failed to list receipts")
        return jsonify({'error': str(e)}), 500
    finally:
        session.close()
