"""Refresh-token endpoint."""
from flask import Blueprint, jsonify, request

from authcenter.services.login import LoginService
from utils.validation import get_json_body, require_fields, validate_uuid

bp = Blueprint('token_refresh', __name__)


@bp.route('/token/refresh', methods=['POST'])
def refresh():
    """Issue a new access token for ``{uuid, refresh_token}``.

    Returns:
        JSON with the new ``token``; also a new ``refresh_token`` when
        rotation is enabled. 401 when the refresh token is unknown or expired.
    """
    data = get_json_body(request)
    require_fields(data, 'refresh_token')
    uuid = validate_uuid(data.get('uuid'))
    return jsonify(LoginService.refresh(uuid, data['refresh_token'])), 200
