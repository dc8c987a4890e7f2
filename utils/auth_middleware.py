"""
Authentication middleware.

``auth_required`` is the request gate for bearer-token endpoints: it
decodes the token, rejects blacklisted identifiers and attaches the user
to ``g``. ``sync_signature_required`` guards the server-to-server
endpoints signed with the shared sync secret.
"""

from functools import wraps
from flask import current_app, g, request
import logging

from utils.exceptions import AuthenticationError, AuthorizationError, TokenMissing

logger = logging.getLogger(__name__)


def get_bearer_token():
    """Return the bearer token from the Authorization header, or None."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    token = auth_header[len('Bearer '):].strip()
    return token or None


def auth_required(f):
    """
    Gate for endpoints that need an authenticated user.

    Sets g.current_user, g.jwt_claims and g.bearer_token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from authcenter.services.principal import resolve_principal

        token = get_bearer_token()
        if token is None:
            raise TokenMissing("Token not provided")

        try:
            principal = resolve_principal(token, check_blacklist=True)
        except AuthenticationError as e:
            logger.warning(f"Authentication failed for {request.endpoint} from {request.remote_addr}: {e.error}")
            raise

        g.current_user = principal.user
        g.jwt_claims = principal.claims
        g.bearer_token = token

        logger.debug(f"User {principal.user.uuid} authenticated for {request.endpoint}")
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    """Gate for admin endpoints; implies auth_required."""
    @wraps(f)
    @auth_required
    def decorated_function(*args, **kwargs):
        from authcenter.services.principal import is_admin

        user = get_current_user()
        if not is_admin(user):
            logger.warning(f"Non-admin {user.uuid} attempted {request.endpoint}")
            raise AuthorizationError("Unauthorized")
        return f(*args, **kwargs)

    return decorated_function


def sync_signature_required(f):
    """
    Verify ``X-Auth-Signature``: hex HMAC-SHA256 of the raw body keyed with SYNC_SECRET.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from authcenter.clients.domains import verify_signature

        secret = current_app.config.get('SYNC_SECRET')
        if not secret:
            logger.critical("SYNC_SECRET is not configured; rejecting signed request")
            raise AuthenticationError("Unauthorized")

        body = request.get_data(cache=True)
        if not verify_signature(body, request.headers.get('X-Auth-Signature'), secret):
            logger.warning(f"Invalid sync signature on {request.endpoint} from {request.remote_addr}")
            raise AuthenticationError("Unauthorized", error='invalid_signature')
        return f(*args, **kwargs)

    return decorated_function


def get_current_user():
    """
    Helper function to get the current authenticated user from Flask's g object.
    Returns None if no user is authenticated.
    """
    return getattr(g, 'current_user', None)


def get_current_claims():
    return getattr(g, 'jwt_claims', None)
