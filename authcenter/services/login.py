"""Login state machine, 2FA completion, refresh and logout."""
import logging
from typing import Any, Dict, Optional

from flask import current_app

from authcenter.services import settings_store
from authcenter.services.activity import log_activity
from authcenter.services.lockout import LockoutTracker
from authcenter.services.principal import is_admin
from authcenter.services.token_service import TokenService, issue_token_pair
from authcenter.services.two_factor import TwoFactorService
from models import bcrypt, db
from models.access_request import AccessRequest
from models.domain import Domain
from models.user import User
from utils.exceptions import (
    AccountInactive,
    AccountLocked,
    AccountNotApproved,
    AuthenticationError,
    InsufficientPrivileges,
    InvalidCredentials,
    InvalidTwoFactorCode,
    NotFoundError,
    TwoFactorSetupRequired,
    ValidationError,
)
from utils.timestamps import isoformat, utcnow

logger = logging.getLogger(__name__)

# Compared against when the email is unknown so both paths pay for one bcrypt check.
_DUMMY_HASH = None


def _dummy_hash() -> str:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = bcrypt.generate_password_hash('authcenter-timing-guard').decode('utf-8')
    return _DUMMY_HASH


def profile_payload(user: User) -> Dict[str, Any]:
    return {
        'uuid': user.uuid,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'role': user.external_role,
        'email': user.email,
    }


def admin_panel_summary(user: User) -> Dict[str, Any]:
    return {
        'uuid': user.uuid,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'email': user.email,
        'role': user.role,
        'image_full_url': user.image_url,
        'total_users': User.query.count(),
        'total_domains': Domain.query.count(),
        'un_approved_user_count': User.query.filter_by(is_approved=False).count(),
        'un_approved_request_count': AccessRequest.query.filter_by(status='pending').count(),
    }


class LoginService:
    """Evaluates a login attempt strictly in order, stopping at the first failure."""

    def __init__(self, lockout: Optional[LockoutTracker] = None,
                 two_factor: Optional[TwoFactorService] = None):
        self.lockout = lockout or LockoutTracker()
        self.two_factor = two_factor or TwoFactorService()

    def login(self, email: str, password: str, admin_panel: bool = False) -> Dict[str, Any]:
        user = User.query.filter_by(email=email).first()

        if user is None:
            bcrypt.check_password_hash(_dummy_hash(), password)
            logger.info(f"Login failed for unknown email {email}")
            raise InvalidCredentials()

        if self.lockout.is_locked(user):
            logger.warning(f"Login attempt on locked account {user.uuid}")
            raise AccountLocked(locked_until=isoformat(user.locked_until))

        if not user.check_password(password):
            self.lockout.record_failure(user)
            logger.info(f"Invalid password for {user.uuid} ({user.failed_attempts} failures)")
            raise InvalidCredentials()

        self.lockout.clear_failures(user)
        self._check_standing(user)

        enforce_2fa = settings_store.enforce_2fa_login()
        if (enforce_2fa or user.is_2fa_enabled) and not user.is_2fa_verified:
            raise TwoFactorSetupRequired(
                "Please configure Two-Factor Authentication using Google Authenticator.",
                action='trigger_2fa_setup_modal',
                uuid=user.uuid,
                two_factor_ticket=self.two_factor.issue_login_ticket(user.uuid),
            )

        if admin_panel and not is_admin(user):
            raise InsufficientPrivileges(
                "Access Denied: Insufficient privileges to access the administrative panel.")

        token, refresh_token = issue_token_pair(user)
        user.last_login = utcnow()
        db.session.commit()
        log_activity(user, 'login')
        logger.info(f"User {user.uuid} logged in{' (admin panel)' if admin_panel else ''}")

        response = profile_payload(user)
        response.update({
            'token': token,
            'refresh_token': refresh_token,
            'domains': user.domain_ids(),
            'enforce_2fa_login': enforce_2fa,
        })
        if admin_panel:
            response['user'] = admin_panel_summary(user)
        return response

    @staticmethod
    def _check_standing(user: User) -> None:
        if not user.is_approved:
            raise AccountNotApproved()
        if user.status != 'active':
            raise AccountInactive()

    def _ticket_holder(self, ticket: str, uuid: Optional[str] = None) -> User:
        """Resolve the user behind a 2FA login ticket and re-check their standing."""
        owner = self.two_factor.ticket_owner(ticket)
        if owner is None or (uuid and uuid != owner):
            raise AuthenticationError("Two-factor session is invalid or has expired. Please log in again.",
                                      error='invalid_2fa_session')

        user = User.query.filter_by(uuid=owner).first()
        if user is None:
            raise NotFoundError("User not found")

        if self.lockout.is_locked(user):
            logger.warning(f"2FA attempt on locked account {user.uuid}")
            raise AccountLocked(locked_until=isoformat(user.locked_until))
        self._check_standing(user)
        return user

    def verify_two_factor(self, ticket: str, code: str, uuid: Optional[str] = None) -> Dict[str, Any]:
        user = self._ticket_holder(ticket, uuid)
        if not user.two_factor_secret:
            raise ValidationError("2FA is not enabled for this user", status_code=400,
                                  error='2fa_not_enabled')
        if not self.two_factor.verify_code(user.two_factor_secret, code):
            self.lockout.record_failure(user)
            logger.info(f"Invalid 2FA code for {user.uuid} ({user.failed_attempts} failures)")
            raise InvalidTwoFactorCode()

        if not self.two_factor.redeem_login_ticket(ticket):
            raise AuthenticationError("Two-factor session is invalid or has expired. Please log in again.",
                                      error='invalid_2fa_session')
        self.lockout.clear_failures(user)

        if not user.is_2fa_verified:
            user.is_2fa_verified = True
            logger.info(f"User {user.uuid} completed 2FA enrollment")
        user.last_login = utcnow()
        db.session.commit()

        token, refresh_token = issue_token_pair(user)
        log_activity(user, 'login')

        response = profile_payload(user)
        response.update({
            'success': True,
            'message': '2FA verification successful',
            'token': token,
            'refresh_token': refresh_token,
            'domains': user.domain_ids(),
        })
        return response

    def generate_two_factor_secret(self, ticket: str, uuid: Optional[str] = None) -> Dict[str, Any]:
        user = self._ticket_holder(ticket, uuid)

        secret = self.two_factor.generate_secret()
        user.two_factor_secret = secret
        user.is_2fa_enabled = True
        user.is_2fa_verified = False
        db.session.commit()

        return {
            'qr_code_svg': self.two_factor.qr_payload(
                current_app.config.get('TOTP_ISSUER', 'AuthCenter'), user.email, secret),
            'message': 'Scan this QR code with your authenticator app, then verify the code to complete setup.',
        }

    @staticmethod
    def refresh(user_uuid: str, refresh_token: str) -> Dict[str, Any]:
        service = TokenService()
        rotate = current_app.config.get('REFRESH_TOKEN_ROTATION', False)

        if rotate:
            new_refresh = service.rotate_refresh_token(user_uuid, refresh_token)
            valid = new_refresh is not None
        else:
            new_refresh = None
            valid = service.validate_refresh_token(user_uuid, refresh_token)

        if not valid:
            raise AuthenticationError("Invalid refresh token", error='invalid_refresh_token')

        user = User.query.filter_by(uuid=user_uuid).first()
        if user is None:
            raise AuthenticationError("Invalid refresh token", error='invalid_refresh_token')

        response = {'token': service.issue({'sub': user.uuid, 'email': user.email})}
        if new_refresh:
            response['refresh_token'] = new_refresh
        return response

    @staticmethod
    def logout(user: User, claims: Dict[str, Any]) -> None:
        TokenService().blacklist(claims, user_id=user.uuid)
        log_activity(user, 'logout')
        logger.info(f"User {user.uuid} logged out")
