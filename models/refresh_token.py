"""Opaque refresh tokens, stored as SHA-256 hashes only."""
from models import db
from utils.timestamps import utcnow


class RefreshToken(db.Model):

    __tablename__ = 'refresh_tokens'

    id = db.Column(db.Integer, primary_key=True)
    user_uuid = db.Column(db.String(36), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f'<RefreshToken {self.user_uuid} exp={self.expires_at}>'
