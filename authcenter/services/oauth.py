"""OAuth2 authorization-code grant with mandatory PKCE (S256)."""
import base64
import hashlib
import hmac
import logging
import secrets
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from flask import current_app

from authcenter.extensions import cache
from authcenter.services.ephemeral import EphemeralStore
from authcenter.services.principal import PARTNER_ADMIN_ROLE, resolve_principal
from authcenter.services.token_service import TokenService
from models import db
from models.oauth_client import OAuthClient
from models.user import User
from utils.exceptions import (
    AccountInactive,
    AccountNotApproved,
    AuthenticationError,
    OAuthError,
)

logger = logging.getLogger(__name__)

AUTH_CODE_TTL = 600
ADMIN_SCOPE = 'admin:access'
PASSTHROUGH_PARAMS = ('code_verifier', 'admin_client_id')


def pkce_challenge(code_verifier: str) -> str:
    """base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')


def pkce_matches(code_verifier: Optional[str], code_challenge: Optional[str]) -> bool:
    if not code_verifier or not code_challenge:
        return False
    try:
        computed = pkce_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(computed.encode('ascii'), code_challenge.encode('utf-8'))


def is_valid_redirect_uri(uri: Optional[str]) -> bool:
    if not uri or not isinstance(uri, str):
        return False
    parts = urlsplit(uri)
    return parts.scheme in ('http', 'https') and bool(parts.netloc)


def build_redirect(uri: str, params: Mapping[str, Any]) -> str:
    """Append ``params`` to ``uri``, keeping any query it already has."""
    parts = urlsplit(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class AuthorizationRedirect(Exception):
    """An authorize failure that is reported to the client via its redirect_uri."""

    def __init__(self, redirect_uri, error, description, state):
        super().__init__(description)
        self.location = build_redirect(redirect_uri, {
            'error': error,
            'error_description': description,
            'state': state,
        })


class OAuthService:

    def __init__(self, store: Optional[EphemeralStore] = None):
        self.store = store or EphemeralStore(cache, 'oauth_code', AUTH_CODE_TTL)

    def authorize(self, params: Mapping[str, Any]) -> str:
        """Validate an authorization request and return the redirect location.

        Raises:
            OAuthError: ``redirect_uri`` is missing or not an absolute URL,
                so there is nowhere to send the error
            AuthorizationRedirect: any other failure
        """
        redirect_uri = params.get('redirect_uri')
        if not is_valid_redirect_uri(redirect_uri):
            raise OAuthError('invalid_request', 'Missing or invalid redirect_uri')

        state = params.get('state')

        def fail(error, description):
            logger.info(f"Authorization denied ({error}): {description}")
            raise AuthorizationRedirect(redirect_uri, error, description, state)

        client_id = params.get('client_id')
        if not client_id:
            fail('invalid_request', 'Invalid request parameters')

        client = OAuthClient.query.filter_by(client_id=client_id).first()
        if client is None or client.user is None:
            fail('invalid_client', 'Invalid client ID')
        user = client.user

        if params.get('response_type') != 'code':
            fail('unsupported_response_type', 'Only the authorization code flow is supported')
        scope = params.get('scope')
        if not scope or not state:
            fail('invalid_request', 'Invalid request parameters')
        if not params.get('code_challenge') or params.get('code_challenge_method') != 'S256':
            fail('invalid_request', 'PKCE with code_challenge_method=S256 is required')

        if not user.is_approved or user.status != 'active':
            fail('access_denied', 'User account not approved or inactive')

        if ADMIN_SCOPE in scope.split() and user.external_role != PARTNER_ADMIN_ROLE:
            fail('access_denied', 'Insufficient privileges for admin access')

        code = secrets.token_urlsafe(32)
        self.store.put(code, {
            'user_id': user.id,
            'user_uuid': user.uuid,
            'client_id': client_id,
            'redirect_uri': redirect_uri,
            'scope': scope,
            'code_challenge': params['code_challenge'],
            'code_challenge_method': 'S256',
            'state': state,
        })
        logger.info(f"Authorization code issued to client {client_id}")

        redirect_params = {'code': code, 'state': state}
        for name in PASSTHROUGH_PARAMS:
            if params.get(name) is not None:
                redirect_params[name] = params[name]
        return build_redirect(redirect_uri, redirect_params)

    def token(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Exchange an authorization code for tokens.

        The code is consumed before any check runs, so it can be presented
        at most once whether or not the exchange succeeds.
        """
        if params.get('grant_type') != 'authorization_code':
            raise OAuthError('unsupported_grant_type', 'Only authorization_code is supported')
        for name in ('code', 'redirect_uri', 'client_id', 'code_verifier'):
            if not params.get(name):
                raise OAuthError('invalid_request', 'Invalid request parameters')

        record = self.store.consume(params['code'])
        if record is None:
            logger.warning("Authorization code not found or expired")
            raise OAuthError('invalid_grant', 'Authorization code not found or expired')
        stored = record.payload

        if not hmac.compare_digest(str(stored['client_id']), str(params['client_id'])):
            raise OAuthError('invalid_client', 'Client ID mismatch')
        if stored['redirect_uri'] != params['redirect_uri']:
            raise OAuthError('invalid_grant', 'Redirect URI mismatch')
        if not pkce_matches(params['code_verifier'], stored['code_challenge']):
            logger.warning(f"PKCE verification failed for client {stored['client_id']}")
            raise OAuthError('invalid_grant', 'Invalid code verifier')

        user = db.session.get(User, stored['user_id'])
        if user is None:
            raise OAuthError('invalid_grant', 'User not found')

        service = TokenService()
        access_token = service.issue({
            'sub': user.uuid,
            'email': user.email,
            'scope': stored['scope'],
            'client_id': stored['client_id'],
        })
        logger.info(f"Authorization code exchanged by client {stored['client_id']}")
        return {
            'access_token': access_token,
            'token_type': 'Bearer',
            'expires_in': service.ttl,
            'refresh_token': service.issue_refresh_token(user.uuid),
            'scope': stored['scope'],
        }

    @staticmethod
    def validate(token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise OAuthError('invalid_request', 'Authorization header missing or invalid', status_code=401)
        check_blacklist = current_app.config.get('OAUTH_VALIDATE_CHECKS_BLACKLIST', True)
        try:
            principal = resolve_principal(token, check_blacklist=check_blacklist, require_standing=True)
        except (AccountNotApproved, AccountInactive):
            raise OAuthError('access_denied', 'User account not approved or inactive', status_code=403)
        except AuthenticationError as e:
            logger.info(f"OAuth token rejected: {e.message}")
            raise OAuthError('invalid_token', 'Token is invalid or expired', status_code=401)

        user = principal.user
        return {
            'valid': True,
            'user': {
                'uuid': user.uuid,
                'email': user.email,
                'first_name': user.first_name,
                'last_name': user.last_name,
                'role': user.role,
                'external_role': user.external_role,
                'status': user.status,
                'scope': principal.claims.get('scope'),
                'client_id': principal.claims.get('client_id'),
            },
        }
