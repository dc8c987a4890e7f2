"""Access and activation request endpoints."""

import logging
from flask import Blueprint, jsonify, request

from authcenter.services.access_requests import AccessRequestService
from models.access_request import REQUEST_STATUSES, REQUEST_TYPES
from utils.exceptions import ValidationError
from utils.auth_middleware import (
    admin_required,
    auth_required,
    get_current_user,
    sync_signature_required,
)
from utils.validation import (
    get_json_body,
    require_fields,
    validate_choice,
    validate_int,
)

logger = logging.getLogger(__name__)
bp = Blueprint('access_requests', __name__)


def _filters(args):
    filters = {}
    if args.get('status'):
        filters['status'] = validate_choice(args['status'], REQUEST_STATUSES, 'status')
    if args.get('request_type'):
        filters['request_type'] = validate_choice(args['request_type'], REQUEST_TYPES, 'request_type')
    if args.get('domain_id'):
        filters['domain_id'] = validate_int(args['domain_id'], 'domain_id')
    return filters


def _page_args(args):
    return {
        'page': validate_int(args.get('page'), 'page', required=False) or 1,
        'per_page': validate_int(args.get('per_page'), 'per_page', required=False) or 20,
    }


def _create(request_type):
    data = get_json_body(request)
    domain_id = validate_int(data.get('domain_id'), 'domain_id')
    message = data.get('message')
    if message is not None and len(str(message)) > 1000:
        raise ValidationError("The message field must not be greater than 1000 characters.")

    access_request = AccessRequestService().create(
        get_current_user(), domain_id, request_type=request_type, message=message)
    label = 'Activation request' if request_type == 'activation' else 'Access request'
    return jsonify({
        'message': f'{label} submitted successfully',
        'request': access_request.to_dict(),
    }), 201


@bp.route('/access-requests', methods=['GET'])
@auth_required
def index():
    """Own requests for users, all requests for admins; always carries the global pending count."""
    args = request.args
    result = AccessRequestService().list(get_current_user(), _filters(args), **_page_args(args))
    return jsonify(result)


@bp.route('/access-requests', methods=['POST'])
@auth_required
def store():
    return _create('access')


@bp.route('/activation-requests', methods=['POST'])
@auth_required
def store_activation():
    return _create('activation')


@bp.route('/access-requests/search', methods=['GET'])
@auth_required
def search():
    args = request.args
    result = AccessRequestService().search(
        get_current_user(), args.get('search'), _filters(args), **_page_args(args))
    return jsonify(result)


@bp.route('/access-requests/<int:request_id>', methods=['GET'])
@auth_required
def show(request_id):
    access_request = AccessRequestService().get(get_current_user(), request_id)
    return jsonify({'request': access_request.to_dict()})


@bp.route('/access-requests/<int:request_id>', methods=['DELETE'])
@auth_required
def destroy(request_id):
    AccessRequestService().delete(get_current_user(), request_id)
    return jsonify({'message': 'Request deleted successfully'})


@bp.route('/access-requests/<int:request_id>/approve', methods=['POST'])
@admin_required
def approve(request_id):
    data = request.get_json(silent=True) or {}
    access_request = AccessRequestService().approve(
        get_current_user(), request_id,
        enable_user_activation=bool(data.get('enable_user_activation', False)),
    )
    return jsonify({'message': 'Request approved successfully', 'request': access_request.to_dict()})


@bp.route('/access-requests/<int:request_id>/reject', methods=['POST'])
@admin_required
def reject(request_id):
    access_request = AccessRequestService().reject(get_current_user(), request_id)
    return jsonify({'message': 'Request rejected successfully', 'request': access_request.to_dict()})


@bp.route('/access-requests/<int:request_id>/resubmit', methods=['POST'])
@auth_required
def resubmit(request_id):
    access_request = AccessRequestService().resubmit(get_current_user(), request_id)
    return jsonify({'message': 'Request resubmitted successfully', 'request': access_request.to_dict()})


@bp.route('/access-requests/<int:request_id>/external-status', methods=['PATCH'])
@admin_required
def update_external_status(request_id):
    data = get_json_body(request)
    status = validate_choice(data.get('external_active_status'), ('active', 'inactive'),
                             'external_active_status')
    access_request = AccessRequestService().update_external_status(
        get_current_user(), request_id, status)
    return jsonify({'message': 'External status updated successfully',
                    'request': access_request.to_dict()})


@bp.route('/user-activation-status', methods=['POST'])
@sync_signature_required
def user_activation_status():
    """Callback for downstream domains reporting a user's active status there."""
    data = get_json_body(request)
    require_fields(data, 'user_uuid', 'domain_key')
    status = validate_choice(data.get('status'), ('active', 'inactive'), 'status')
    AccessRequestService.record_user_activation_status(data['user_uuid'], data['domain_key'], status)
    return jsonify({
        'message': 'User activation status updated successfully',
        'user_uuid': data['user_uuid'],
        'domain_key': data['domain_key'],
        'status': status,
    })
