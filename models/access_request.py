"""Access request ledger."""

from . import db
from utils.timestamps import utcnow, isoformat

REQUEST_TYPES = ('access', 'activation')
REQUEST_STATUSES = ('pending', 'approved', 'rejected')


class AccessRequest(db.Model):
    """A user's ask to be granted, or reactivated on, a domain."""

    __tablename__ = 'access_requests'
    __table_args__ = (
        # At most one pending request per (user, domain, type).
        db.Index(
            'uq_access_requests_pending',
            'user_uuid', 'domain_id', 'request_type',
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_uuid = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    domain_id = db.Column(db.Integer, db.ForeignKey('domains.id', ondelete='CASCADE'), nullable=False)
    domain_name = db.Column(db.String(100), nullable=True)
    request_type = db.Column(db.String(20), nullable=False, default='access')
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    message = db.Column(db.Text, nullable=True)
    acted_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    acted_at = db.Column(db.DateTime, nullable=True)
    external_active_status = db.Column(db.String(20), nullable=True)  # active, inactive
    deactivate_info = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User', foreign_keys=[user_id])
    domain = db.relationship('Domain')
    actor = db.relationship('User', foreign_keys=[acted_by])

    @property
    def is_pending(self):
        return self.status == 'pending'

    def to_dict(self):
        return {
            'id': self.id,
            'user_uuid': self.user_uuid,
            'user_id': self.user_id,
            'domain_id': self.domain_id,
            'domain_name': self.domain_name,
            'request_type': self.request_type,
            'status': self.status,
            'message': self.message,
            'acted_by': self.acted_by,
            'acted_at': isoformat(self.acted_at),
            'external_active_status': self.external_active_status,
            'deactivate_info': self.deactivate_info,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
            'user': {
                'uuid': self.user.uuid,
                'first_name': self.user.first_name,
                'last_name': self.user.last_name,
                'email': self.user.email,
            } if self.user else None,
            'domain': self.domain.to_dict() if self.domain else None,
        }

    def __repr__(self):
        return f'<AccessRequest {self.id} {self.request_type}:{self.status}>'
