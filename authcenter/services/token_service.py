"""Access token and refresh token lifecycle."""
import hashlib
import logging
import os
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import jwt as pyjwt
from flask import current_app
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from sqlalchemy.exc import IntegrityError

from models import db
from models.refresh_token import RefreshToken
from models.token_blacklist import BlacklistedToken
from utils.exceptions import ConfigurationError, InvalidToken, TokenExpired
from utils.timestamps import from_epoch, utcnow

logger = logging.getLogger(__name__)

# 96 random bytes encode to 128 url-safe characters.
REFRESH_TOKEN_BYTES = 96


def hash_token(value: str) -> str:
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


def load_signing_keys(app) -> None:
    """Populate ``JWT_PRIVATE_KEY``/``JWT_PUBLIC_KEY`` from the configured PEM paths.

    Inline keys passed through ``config_override`` win over the paths.
    """
    for config_key, path_key in (('JWT_PRIVATE_KEY', 'JWT_PRIVATE_KEY_PATH'),
                                 ('JWT_PUBLIC_KEY', 'JWT_PUBLIC_KEY_PATH')):
        if app.config.get(config_key):
            continue
        path = app.config.get(path_key)
        if not path or not os.path.exists(path):
            raise ConfigurationError(
                f"{config_key} is not configured and {path_key} ({path!r}) does not exist. "
                "Run scripts/generate_keys.py or set the key paths."
            )
        with open(path, 'r', encoding='utf-8') as handle:
            app.config[config_key] = handle.read()
        logger.info(f"Loaded {config_key} from {path}")


class TokenService:
    """Sole issuer and verifier of access and refresh tokens."""

    def __init__(self, ttl: Optional[int] = None, refresh_ttl: Optional[int] = None):
        config = current_app.config
        self.ttl = ttl or config['JWT_TTL']
        self.refresh_ttl = refresh_ttl or config['JWT_REFRESH_TTL']

    def issue(self, claims: Dict[str, Any]) -> str:
        """Sign an RS256 access token.

        ``claims`` must carry ``sub`` (the user uuid); anything else
        (``email``, ``scope``, ``client_id``) is merged into the payload
        next to the standard ``iss``/``aud``/``iat``/``exp``/``jti`` claims.
        """
        extra = dict(claims)
        subject = extra.pop('sub')
        return create_access_token(
            identity=str(subject),
            additional_claims=extra,
            expires_delta=timedelta(seconds=self.ttl),
        )

    def decode(self, token: str) -> Dict[str, Any]:
        """Verify signature, issuer, audience and expiry and return the claims.

        Raises:
            TokenExpired: the token is past ``exp`` (beyond the leeway)
            InvalidToken: anything else; ``reason`` says what failed
        """
        if not token or not isinstance(token, str):
            raise InvalidToken("Invalid token", reason='malformed')
        try:
            return decode_token(token)
        except pyjwt.ExpiredSignatureError:
            raise TokenExpired("Token expired")
        except pyjwt.InvalidAudienceError:
            raise InvalidToken("Invalid audience", reason='invalid_audience')
        except pyjwt.InvalidIssuerError:
            raise InvalidToken("Invalid issuer", reason='invalid_issuer')
        except pyjwt.InvalidSignatureError:
            raise InvalidToken("Invalid token", reason='invalid_signature')
        except (pyjwt.InvalidTokenError, JWTExtendedException, ValueError) as e:
            logger.debug(f"Token decode failed: {e}")
            raise InvalidToken("Invalid token", reason='malformed')

    def issue_refresh_token(self, user_uuid: str) -> str:
        """Create a refresh token; only its hash is persisted, the plaintext is returned once."""
        plaintext = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        db.session.add(RefreshToken(
            user_uuid=user_uuid,
            token_hash=hash_token(plaintext),
            expires_at=utcnow() + timedelta(seconds=self.refresh_ttl),
        ))
        db.session.commit()
        return plaintext

    def _find_refresh_token(self, user_uuid: str, candidate: str) -> Optional[RefreshToken]:
        if not user_uuid or not candidate:
            return None
        return RefreshToken.query.filter(
            RefreshToken.user_uuid == user_uuid,
            RefreshToken.token_hash == hash_token(candidate),
            RefreshToken.expires_at > utcnow(),
        ).first()

    def validate_refresh_token(self, user_uuid: str, candidate: str) -> bool:
        return self._find_refresh_token(user_uuid, candidate) is not None

    def rotate_refresh_token(self, user_uuid: str, candidate: str) -> Optional[str]:
        """Consume ``candidate`` and return a replacement, or None when it is not valid."""
        record = self._find_refresh_token(user_uuid, candidate)
        if record is None:
            return None
        db.session.delete(record)
        db.session.commit()
        return self.issue_refresh_token(user_uuid)

    def blacklist(self, claims: Dict[str, Any], user_id: Optional[str] = None) -> BlacklistedToken:
        jti = claims['jti']
        existing = BlacklistedToken.query.filter_by(jti=jti).first()
        if existing:
            return existing

        entry = BlacklistedToken(
            jti=jti,
            token_type=claims.get('type', 'access'),
            user_id=user_id or claims.get('sub', 'unknown'),
            expires_at=from_epoch(claims['exp']),
        )
        db.session.add(entry)
        try:
            db.session.commit()
        except IntegrityError:
            # Another request revoked the same jti first.
            db.session.rollback()
            return BlacklistedToken.query.filter_by(jti=jti).one()
        logger.info(f"Token {jti} blacklisted for user {entry.user_id}")
        return entry

    @staticmethod
    def is_blacklisted(jti: Optional[str]) -> bool:
        if not jti:
            return False
        return db.session.query(BlacklistedToken.id).filter_by(jti=jti).first() is not None

    @staticmethod
    def purge_expired() -> Tuple[int, int]:
        """Delete refresh tokens and blacklist entries whose expiry has passed."""
        now = utcnow()
        refresh_count = RefreshToken.query.filter(RefreshToken.expires_at <= now).delete(
            synchronize_session=False)
        blacklist_count = BlacklistedToken.query.filter(BlacklistedToken.expires_at <= now).delete(
            synchronize_session=False)
        db.session.commit()
        logger.info(f"Purged {refresh_count} refresh tokens and {blacklist_count} blacklist entries")
        return refresh_count, blacklist_count


def issue_token_pair(user) -> Tuple[str, str]:
    """Access token plus refresh token for a user that just authenticated."""
    service = TokenService()
    token = service.issue({'sub': user.uuid, 'email': user.email})
    return token, service.issue_refresh_token(user.uuid)
