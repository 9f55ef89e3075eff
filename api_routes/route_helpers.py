"""
Shared request plumbing for the blueprints: owner resolution and body parsing.
"""

import logging

from flask import current_app, g, jsonify, request

from utils.identity import USER_ID_HEADER, MissingIdentityError, resolve_owner_id

logger = logging.getLogger(__name__)

# Routes that work without an owner
PUBLIC_ENDPOINTS = {'health_r', 'static'}


def resolve_request_owner():
    """
    before_request hook: put the caller's owner id on flask.g.
    Returns a 401 response when identity is required and missing.
    """
    g.owner_id = None
    g.generated_owner_id = False
    if request.method == 'OPTIONS' or (request.endpoint or '').split('.')[-1] in PUBLIC_ENDPOINTS:
        return None

    try:
        owner_id, generated = resolve_owner_id(
            request.headers.get(USER_ID_HEADER),
            auth_required=current_app.config.get('AUTH_REQUIRED', False)
        )
    except MissingIdentityError as e:
        return jsonify({'error': str(e), 'kind': 'unauthorized'}), 401

    g.owner_id = owner_id
    g.generated_owner_id = generated
    return None


def echo_generated_owner(response):
    """after_request hook: tell the client which id it was given."""
    if g.get('generated_owner_id') and g.get('owner_id'):
        response.headers[USER_ID_HEADER] = g.owner_id
    return response


def current_owner_id() -> str:
    return g.owner_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def int_arg(name: str, default=None, minimum=None):
    """Read an integer query parameter. Raises ValueError on junk."""
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer")
    if minimum is not None and number < minimum:
        raise ValueError(f"{name} must be at least {minimum}")
    return number
