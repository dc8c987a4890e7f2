"""Revoked access tokens."""
from models import db
from utils.timestamps import utcnow


class BlacklistedToken(db.Model):
    """A revoked token identifier; kept until the token itself would expire."""

    __tablename__ = 'token_blacklist'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True, index=True)
    token_type = db.Column(db.String(10), nullable=False, default='access')
    user_id = db.Column(db.String(36), nullable=False, index=True)  # user uuid
    revoked_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self):
        return f'<BlacklistedToken {self.jti}>'
