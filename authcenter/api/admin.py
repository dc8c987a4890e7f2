"""Administrative endpoints: grants, approval, removal, lockout and 2FA policy."""

import logging
from flask import Blueprint, jsonify, request

from authcenter.services import accounts
from authcenter.services.grants import grant_access, revoke_access
from authcenter.services.lockout import LockoutTracker
from authcenter.services.settings_store import ENFORCE_2FA_LOGIN, enforce_2fa_login, set_setting
from models import db
from models.domain import Domain
from models.user import User
from utils.auth_middleware import admin_required, get_current_user
from utils.exceptions import NotFoundError, ValidationError
from utils.validation import get_json_body, validate_uuid

logger = logging.getLogger(__name__)
bp = Blueprint('admin', __name__, url_prefix='/admin')


def _user_or_404(uuid):
    user = User.query.filter_by(uuid=uuid).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def _domain_or_404(domain_id):
    domain = db.session.get(Domain, domain_id)
    if domain is None:
        raise NotFoundError("Domain not found")
    return domain


@bp.route('/users/<uuid>/domains/<int:domain_id>', methods=['POST'])
@admin_required
def grant(uuid, domain_id):
    """Grant a domain (and its satellites) to a user."""
    user = _user_or_404(uuid)
    domain = _domain_or_404(domain_id)
    added = grant_access(get_current_user(), user, domain)
    return jsonify({
        'message': 'Access granted',
        'granted': [d.key for d in added],
        'domains': user.domain_ids(),
    })


@bp.route('/users/<uuid>/domains/<int:domain_id>', methods=['DELETE'])
@admin_required
def revoke(uuid, domain_id):
    user = _user_or_404(uuid)
    domain = _domain_or_404(domain_id)
    removed = revoke_access(get_current_user(), user, domain)
    return jsonify({
        'message': 'Access revoked' if removed else 'User had no access to this domain',
        'revoked': removed,
        'domains': user.domain_ids(),
    })


@bp.route('/users/approval', methods=['PATCH'])
@admin_required
def approval():
    """Bulk approve or disapprove users by uuid."""
    data = get_json_body(request)
    uuids = data.get('uuids')
    if not isinstance(uuids, list) or not uuids:
        raise ValidationError("The uuids field must be a non-empty list.",
                              errors={'uuids': ["The uuids field must be a non-empty list."]})
    uuids = [validate_uuid(value, 'uuids') for value in uuids]

    approved = data.get('is_approved')
    if not isinstance(approved, bool):
        raise ValidationError("The is_approved field must be true or false.",
                              errors={'is_approved': ["The is_approved field must be true or false."]})

    changed = accounts.set_approval(uuids, approved)
    return jsonify({'message': 'Approval updated', 'users': changed, 'is_approved': approved})


@bp.route('/users/<uuid>', methods=['DELETE'])
@admin_required
def destroy(uuid):
    return jsonify(accounts.destroy_user(uuid, get_current_user()))


@bp.route('/users/<uuid>/unlock', methods=['POST'])
@admin_required
def unlock(uuid):
    user = _user_or_404(uuid)
    LockoutTracker.unlock(user)
    logger.info(f"{get_current_user().uuid} unlocked {uuid}")
    return jsonify({'message': 'Account unlocked', 'uuid': uuid})


@bp.route('/settings/enforce-2fa-login', methods=['GET'])
@admin_required
def get_enforce_2fa():
    return jsonify({'enforce_2fa_login': enforce_2fa_login()})


@bp.route('/settings/enforce-2fa-login', methods=['PUT'])
@admin_required
def put_enforce_2fa():
    data = get_json_body(request)
    value = data.get('enforce_2fa_login')
    if not isinstance(value, bool):
        raise ValidationError("The enforce_2fa_login field must be true or false.",
                              errors={'enforce_2fa_login': ["The enforce_2fa_login field must be true or false."]})

    setting = set_setting(ENFORCE_2FA_LOGIN, value, updated_by=get_current_user().uuid)
    return jsonify({'enforce_2fa_login': bool(setting.value), 'version': setting.version})
