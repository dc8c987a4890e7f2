"""Resolution of the authenticated principal behind a bearer token.

The request gate, the cross-service token exchange and OAuth validation
all go through :func:`resolve_principal`, so the checks applied to a
token only differ by the flags each caller passes.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from authcenter.services.token_service import TokenService
from models.user import User
from utils.exceptions import (
    AccountInactive,
    AccountNotApproved,
    AuthenticationError,
    TokenBlacklisted,
)

logger = logging.getLogger(__name__)

ROLE_ADMIN = 'admin'
ROLE_USER = 'user'
PARTNER_ADMIN_ROLE = 'Admin'
PARTNER_ADMIN_ORIGIN = 'site_access_info'


def effective_role(user: Optional[User]) -> str:
    """Return ``admin`` or ``user``.

    Precedence: the base ``role`` column wins when it is ``admin``;
    otherwise accounts onboarded from ``site_access_info`` are admins when
    their partner role is ``Admin``.
    """
    if user is None:
        return ROLE_USER
    if user.role == ROLE_ADMIN:
        return ROLE_ADMIN
    if user.user_origin == PARTNER_ADMIN_ORIGIN and user.external_role == PARTNER_ADMIN_ROLE:
        return ROLE_ADMIN
    return ROLE_USER


def is_admin(user: Optional[User]) -> bool:
    return effective_role(user) == ROLE_ADMIN


@dataclass
class Principal:
    user: User
    claims: Dict[str, Any]

    @property
    def jti(self):
        return self.claims.get('jti')


def resolve_principal(token: str,
                      check_blacklist: bool = True,
                      require_standing: bool = False) -> Principal:
    """Decode ``token`` and load the user it was issued to.

    Args:
        token: compact JWT
        check_blacklist: reject tokens whose jti was revoked at logout
        require_standing: also require the user to be approved and active

    Raises:
        TokenExpired, InvalidToken: from decoding
        TokenBlacklisted: the jti was revoked
        AuthenticationError: the subject no longer exists
        AccountNotApproved, AccountInactive: with ``require_standing``
    """
    service = TokenService()
    claims = service.decode(token)

    if check_blacklist and service.is_blacklisted(claims.get('jti')):
        raise TokenBlacklisted("Token is blacklisted")

    user = User.query.filter_by(uuid=str(claims.get('sub'))).first()
    if user is None:
        logger.warning(f"Valid token for unknown subject {claims.get('sub')}")
        raise AuthenticationError("User not found")

    if require_standing:
        if not user.is_approved:
            raise AccountNotApproved()
        if user.status != 'active':
            raise AccountInactive()

    return Principal(user=user, claims=claims)
