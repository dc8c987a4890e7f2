"""User model and the user/domain grant join table."""

import uuid
from . import db, bcrypt
from utils.timestamps import utcnow, isoformat

USER_ORIGINS = ('ccms', 'jobfinder', 'solucomp', 'authcenter', 'site_access_info', 'ets')
USER_STATUSES = ('active', 'inactive', 'suspended')

# Grant: "user may authenticate into domain X". The composite primary key
# keeps attachment idempotent.
user_domain_access = db.Table(
    'user_domain_access',
    db.Column('user_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    db.Column('domain_id', db.Integer, db.ForeignKey('domains.id', ondelete='CASCADE'), primary_key=True),
    db.Column('created_at', db.DateTime, default=utcnow),
)


class User(db.Model):
    """Identity record shared by every downstream domain."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, index=True,
                     default=lambda: str(uuid.uuid4()))
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    image_url = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(20), nullable=False, default='user')  # user, admin
    external_role = db.Column(db.String(50), nullable=True)  # partner role label, e.g. "Admin"
    status = db.Column(db.String(20), nullable=False, default='active')
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    user_origin = db.Column(db.String(30), nullable=False, default='authcenter')

    # Lockout
    failed_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime, nullable=True)

    # Two-factor
    two_factor_secret = db.Column(db.String(64), nullable=True)
    is_2fa_enabled = db.Column(db.Boolean, nullable=False, default=False)
    is_2fa_verified = db.Column(db.Boolean, nullable=False, default=False)

    # domain_key -> active|inactive as reported by the downstream systems
    external_active_status = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    last_login = db.Column(db.DateTime, nullable=True)

    domains = db.relationship('Domain', secondary=user_domain_access, lazy='select',
                              order_by='Domain.id')

    def set_password(self, password):
        """Set encrypted password."""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check password against hash."""
        return bcrypt.check_password_hash(self.password_hash, password)

    def is_locked(self, now=None):
        now = now or utcnow()
        return self.locked_until is not None and self.locked_until > now

    def domain_ids(self):
        return [domain.id for domain in self.domains]

    def domain_keys(self):
        return [domain.key for domain in self.domains]

    def has_domain(self, domain_id):
        return any(domain.id == domain_id for domain in self.domains)

    def external_status_for(self, domain_key):
        return (self.external_active_status or {}).get(domain_key)

    def set_external_status(self, domain_key, status):
        # Reassign so the JSON column is flagged dirty.
        statuses = dict(self.external_active_status or {})
        statuses[domain_key] = status
        self.external_active_status = statuses

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        """Convert user to dictionary."""
        return {
            'id': self.id,
            'uuid': self.uuid,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'role': self.role,
            'external_role': self.external_role,
            'status': self.status,
            'is_approved': self.is_approved,
            'user_origin': self.user_origin,
            'is_2fa_enabled': self.is_2fa_enabled,
            'is_2fa_verified': self.is_2fa_verified,
            'image_full_url': self.image_url,
            'domains': self.domain_ids(),
            'created_at': isoformat(self.created_at),
            'last_login': isoformat(self.last_login),
        }

    def __repr__(self):
        return f'<User {self.uuid} {self.email}>'
