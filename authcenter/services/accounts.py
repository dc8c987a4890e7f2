"""Account creation, cross-system sync, approval and removal."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from authcenter.services import propagation
from authcenter.services.grants import attach_default_domains
from authcenter.services.token_service import issue_token_pair
from authcenter.services.two_factor import TwoFactorService
from models import atomic, bcrypt, db
from models.access_request import AccessRequest
from models.oauth_client import OAuthClient
from models.refresh_token import RefreshToken
from models.user import User
from models.user_activity import UserActivity
from utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

AUTO_APPROVED_ORIGINS = ('jobfinder',)
SYNC_ORIGINS = ('ccms', 'jobfinder', 'solucomp')


def _hash_password(password: str) -> str:
    return bcrypt.generate_password_hash(password).decode('utf-8')


def _looks_hashed(password: str) -> bool:
    return password.startswith(('$2y$', '$2b$', '$2a$')) and len(password) == 60


def _new_user(fields: Dict[str, Any], password_hash: str) -> User:
    key = fields.get('key')
    user = User(
        first_name=fields['first_name'],
        last_name=fields['last_name'],
        email=fields['email'],
        password_hash=password_hash,
        user_origin=key or 'authcenter',
        is_approved=key in AUTO_APPROVED_ORIGINS,
    )
    db.session.add(user)
    db.session.flush()
    OAuthClient.register_for(user)
    attach_default_domains(user, [current_app.config.get('DEFAULT_DOMAIN_KEY', 'jobfinder')])
    return user


def _ensure_email_free(email: str) -> None:
    if User.query.filter_by(email=email).first() is not None:
        raise ValidationError("The email has already been taken.",
                              errors={'email': ["The email has already been taken."]})


def signup(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Create an account without 2FA and attach the default domain."""
    _ensure_email_free(fields['email'])
    try:
        with atomic():
            user = _new_user(fields, _hash_password(fields['password']))
    except IntegrityError:
        raise ValidationError("The email has already been taken.",
                              errors={'email': ["The email has already been taken."]})

    logger.info(f"New user registered: {user.email} (origin {user.user_origin})")
    if fields.get('key') in SYNC_ORIGINS:
        propagation.dispatch(propagation.sync_new_user_job, user.uuid, fields['key'])

    token, refresh_token = issue_token_pair(user)
    return {'token': token, 'refresh_token': refresh_token, 'uuid': user.uuid}


def initiate_signup_2fa(fields: Dict[str, Any], two_factor: Optional[TwoFactorService] = None) -> Dict[str, Any]:
    _ensure_email_free(fields['email'])
    two_factor = two_factor or TwoFactorService()
    secret = two_factor.generate_secret()

    pending = dict(fields)
    pending['password_hash'] = _hash_password(pending.pop('password'))
    session_id = two_factor.store_signup(pending, secret)

    return {
        'session_id': session_id,
        'qr_code_svg': two_factor.qr_payload('AuthCenter', fields['email'], secret),
        'message': 'Scan the QR code with your Google Authenticator app and enter the '
                   '6-digit code to complete signup.',
    }


def complete_signup_2fa(session_id: str, code: str,
                        two_factor: Optional[TwoFactorService] = None) -> Dict[str, Any]:
    """Finish a 2FA signup. The pending session is consumed whether or not the code is right."""
    two_factor = two_factor or TwoFactorService()
    pending = two_factor.consume_signup(session_id)
    if pending is None:
        raise ValidationError("Session expired or invalid. Please start the signup process again.",
                              error='signup_session_invalid')

    fields, secret = pending['fields'], pending['secret']
    if not two_factor.verify_code(secret, code):
        raise ValidationError("Invalid 2FA code. Please try again.", error='invalid_2fa_code')

    _ensure_email_free(fields['email'])
    try:
        with atomic():
            user = _new_user(fields, fields['password_hash'])
            user.two_factor_secret = secret
            user.is_2fa_enabled = True
            user.is_2fa_verified = True
    except IntegrityError:
        raise ValidationError("Email address is already registered.")

    logger.info(f"User {user.uuid} registered with 2FA ({user.email})")
    token, refresh_token = issue_token_pair(user)
    return {
        'token': token,
        'refresh_token': refresh_token,
        'message': 'Account created successfully with 2FA enabled.',
        'user': {
            'uuid': user.uuid,
            'email': user.email,
            'first_name': user.first_name,
            'last_name': user.last_name,
            'is_2fa_enabled': True,
        },
    }


def sync_user(data: Dict[str, Any]) -> Dict[str, Any]:
    """Upsert a user pushed by a sibling system and propagate updates onward."""
    password = data['password']
    password_hash = password if _looks_hashed(password) else _hash_password(password)

    user = User.query.filter(
        or_(User.uuid == data['uuid'], User.email == data['personal_email'])
    ).first()

    if user is None:
        with atomic():
            user = User(
                uuid=data['uuid'],
                first_name=data['full_name'],
                last_name=data['last_name'],
                external_role=data.get('role'),
                email=data['personal_email'],
                password_hash=password_hash,
                user_origin=data['user_origin'],
                status='inactive' if data['action'] == 'deactivated' else 'active',
            )
            db.session.add(user)
            db.session.flush()
            OAuthClient.register_for(user)
            attached = attach_default_domains(
                user, [data['user_origin'], current_app.config.get('DEFAULT_DOMAIN_KEY', 'jobfinder')])
        logger.info(f"Synced new user {user.uuid} from {data['user_origin']}, "
                    f"domains {[d.key for d in attached]}")
        return {'message': 'Synced', 'created': True}

    with atomic():
        if user.uuid != data['uuid']:
            logger.warning(f"Sync for {data['personal_email']} carries uuid {data['uuid']}; "
                           f"keeping existing uuid {user.uuid}")
        user.first_name = data['full_name']
        user.last_name = data['last_name']
        user.external_role = data.get('role')
        user.email = data['personal_email']
        user.password_hash = password_hash
        if data['action'] == 'deactivated':
            user.status = 'inactive'
        elif data['action'] == 'activated':
            user.status = 'active'

    propagation.dispatch(propagation.propagate_user_update_job, {
        'uuid': user.uuid,
        'email': user.email,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'password': user.password_hash,
    }, data['user_origin'])
    return {'message': 'Synced', 'created': False}


def set_approval(uuids: Iterable[str], approved: bool) -> List[str]:
    users = User.query.filter(User.uuid.in_(list(uuids))).all()
    if not users:
        raise NotFoundError("No matching users found")
    with atomic():
        for user in users:
            user.is_approved = approved
    changed = [user.uuid for user in users]
    logger.info(f"Approval set to {approved} for {changed}")
    return changed


def destroy_user(uuid: str, actor: User) -> Dict[str, Any]:
    """Hard-delete a user and tell the domains they belonged to."""
    user = User.query.filter_by(uuid=uuid).first()
    if user is None:
        raise NotFoundError("User not found")
    if user.id == actor.id:
        raise ConflictError("You cannot delete your own account", error='cannot_delete_self')

    domain_keys = user.domain_keys()
    with atomic():
        AccessRequest.query.filter_by(user_id=user.id).delete(synchronize_session=False)
        UserActivity.query.filter_by(user_id=user.id).delete(synchronize_session=False)
        RefreshToken.query.filter_by(user_uuid=user.uuid).delete(synchronize_session=False)
        db.session.delete(user)

    logger.info(f"User {uuid} deleted by {actor.uuid}; notifying {domain_keys}")
    if domain_keys:
        propagation.dispatch(propagation.sync_user_deletion_job, uuid, domain_keys)
    return {'message': 'User deleted successfully', 'uuid': uuid}
