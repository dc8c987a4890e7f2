"""Server-to-server user sync from sibling systems."""

import logging
from flask import Blueprint, jsonify, request

from authcenter.services import accounts
from utils.auth_middleware import sync_signature_required
from utils.exceptions import ValidationError
from utils.validation import (
    get_json_body,
    require_fields,
    validate_choice,
    validate_email,
    validate_name,
    validate_uuid,
)

logger = logging.getLogger(__name__)
bp = Blueprint('sync', __name__)

SYNC_ACTIONS = ('created', 'updated', 'activated', 'deactivated')


@bp.route('/internal-sync-user', methods=['POST'])
@sync_signature_required
def internal_sync_user():
    """
    Upsert a user pushed by ccms, jobfinder or solucomp.

    The body is signed with the shared sync secret; an update is
    propagated to every other system that knows the user.
    """
    data = get_json_body(request)
    require_fields(data, 'password', 'role')

    password = data['password']
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("The password field must be at least 8 characters.",
                              errors={'password': ["The password field must be at least 8 characters."]})

    payload = {
        'uuid': validate_uuid(data.get('uuid')),
        'full_name': validate_name(data.get('full_name'), 'full_name'),
        'last_name': validate_name(data.get('last_name'), 'last_name'),
        'role': str(data['role']),
        'personal_email': validate_email(data.get('personal_email'), 'personal_email'),
        'password': password,
        'action': validate_choice(data.get('action'), SYNC_ACTIONS, 'action'),
        'user_origin': validate_choice(data.get('user_origin'), accounts.SYNC_ORIGINS, 'user_origin'),
    }

    logger.info(f"Sync '{payload['action']}' for {payload['uuid']} from {payload['user_origin']}")
    return jsonify(accounts.sync_user(payload))
