"""Versioned key/value settings shared by every instance."""
from models import db
from utils.timestamps import utcnow


class SystemSetting(db.Model):

    __tablename__ = 'system_settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.JSON, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    updated_by = db.Column(db.String(36), nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'version': self.version,
            'updated_by': self.updated_by,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<SystemSetting {self.key}={self.value!r} v{self.version}>'
