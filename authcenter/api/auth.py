"""Authentication endpoints: signup, login, 2FA, logout, token exchange."""

import logging
from flask import Blueprint, g, jsonify, request

from authcenter.clients.domains import DomainServiceClient
from authcenter.extensions import limiter
from authcenter.services import accounts
from authcenter.services.activity import log_activity
from authcenter.services.login import LoginService
from authcenter.services.principal import is_admin, resolve_principal
from models.domain import Domain
from utils.auth_middleware import auth_required, get_current_claims, get_current_user
from utils.exceptions import (
    AccountNotApproved,
    AuthorizationError,
    InvalidToken,
    NotFoundError,
    ValidationError,
)
from utils.validation import (
    get_json_body,
    require_fields,
    validate_code,
    validate_email,
    validate_key,
    validate_name,
    validate_password,
    validate_uuid,
)

logger = logging.getLogger(__name__)
bp = Blueprint('auth', __name__)


def _signup_fields(data):
    return {
        'first_name': validate_name(data.get('first_name'), 'first_name'),
        'last_name': validate_name(data.get('last_name'), 'last_name'),
        'email': validate_email(data.get('email')),
        'password': validate_password(data.get('password')),
        'key': validate_key(data.get('key')),
    }


@bp.route('/signup', methods=['POST'])
def signup():
    """Create an account and attach the default domain."""
    fields = _signup_fields(get_json_body(request))
    return jsonify(accounts.signup(fields)), 201


@bp.route('/signup/initiate-2fa', methods=['POST'])
def signup_initiate_2fa():
    """Step 1 of a 2FA signup: returns a session id and the enrollment QR code."""
    fields = _signup_fields(get_json_body(request))
    return jsonify(accounts.initiate_signup_2fa(fields))


@bp.route('/signup/complete-2fa', methods=['POST'])
def signup_complete_2fa():
    """Step 2 of a 2FA signup: verify the code and create the account."""
    data = get_json_body(request)
    require_fields(data, 'session_id')
    code = validate_code(data.get('code'))
    return jsonify(accounts.complete_signup_2fa(data['session_id'], code)), 201


@bp.route('/login', methods=['POST'])
def login():
    data = get_json_body(request)
    email = validate_email(data.get('email'))
    require_fields(data, 'password')

    result = LoginService().login(email, data['password'],
                                  admin_panel=bool(data.get('admin_panel')))
    return jsonify(result)


def _optional_uuid(data):
    return validate_uuid(data['uuid']) if data.get('uuid') else None


@bp.route('/login/verify-2fa', methods=['POST'])
def verify_2fa():
    """Complete a login with the ticket returned by /login and a TOTP code."""
    data = get_json_body(request)
    require_fields(data, 'two_factor_ticket')
    code = validate_code(data.get('code'))
    return jsonify(LoginService().verify_two_factor(
        str(data['two_factor_ticket']), code, uuid=_optional_uuid(data)))


@bp.route('/generate-2fa-secret', methods=['POST'])
def generate_2fa_secret():
    data = get_json_body(request)
    require_fields(data, 'two_factor_ticket')
    return jsonify(LoginService().generate_two_factor_secret(
        str(data['two_factor_ticket']), uuid=_optional_uuid(data)))


@bp.route('/logout', methods=['POST'])
@auth_required
def logout():
    """Blacklist the presented token."""
    LoginService.logout(get_current_user(), get_current_claims())
    return jsonify({'message': 'Logged out'})


@bp.route('/validate', methods=['GET'])
@auth_required
def validate():
    user = get_current_user()
    return jsonify({
        'user': {
            'uuid': user.uuid,
            'email': user.email,
            'full_name': user.first_name,
            'last_name': user.last_name,
            'status': user.status,
            'image_full_url': user.image_url,
        }
    })


@bp.route('/domains', methods=['GET'])
@auth_required
def domains():
    """All domains, the ids assigned to the caller and their downstream page permissions."""
    user = get_current_user()
    all_domains = Domain.query.order_by(Domain.id).all()
    assigned = [d.id for d in all_domains] if is_admin(user) else user.domain_ids()

    permissions = DomainServiceClient().fetch_page_permissions(g.bearer_token, user.uuid)
    return jsonify({
        'domains': [{'id': d.id, 'name': d.name, 'url': d.url, 'key': d.key} for d in all_domains],
        'assigned_domains': assigned,
        'page_permissions': permissions,
    })


@bp.route('/token/exchange', methods=['POST'])
@limiter.limit("10 per minute")
def token_exchange():
    """Redeem an AuthCenter token for a profile scoped to one domain."""
    data = get_json_body(request)
    require_fields(data, 'token')

    try:
        principal = resolve_principal(data['token'], check_blacklist=True)
    except InvalidToken as e:
        if e.reason == 'invalid_audience':
            raise AuthorizationError("Invalid audience", error='invalid_audience')
        if e.reason == 'invalid_issuer':
            raise AuthorizationError("Invalid issuer", error='invalid_issuer')
        raise

    user = principal.user
    if not user.is_approved:
        raise AccountNotApproved()

    domain_key = data.get('key')
    if not domain_key:
        raise ValidationError("Domain key is required.", errors={'key': ["Domain key is required."]})

    domain = Domain.query.filter_by(key=domain_key).first()
    if domain is None:
        raise NotFoundError("Invalid domain key.")

    if not is_admin(user) and not user.has_domain(domain.id):
        logger.info(f"Token exchange for {user.uuid} denied on {domain_key}")
        raise AuthorizationError("Forbidden for this domain.", error='domain_forbidden')

    log_activity(user, f"{domain.name} login", domain_id=domain.id)
    return jsonify({
        'user': {
            'uuid': user.uuid,
            'first_name': user.first_name,
            'last_name': user.last_name,
            'email': user.email,
            'roles': user.external_role,
        }
    })
