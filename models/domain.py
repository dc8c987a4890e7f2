"""Downstream tenant application ("domain") model."""

from . import db
from utils.timestamps import utcnow

# Satellite domain key -> parent domain key. A grant on a satellite
# implies a grant on its parent.
SATELLITE_PARENTS = {
    'solucomp_cop': 'solucomp',
    'solucomp_compare': 'solucomp',
}

# Page permission pushed to the parent when a satellite grant changes.
SATELLITE_PAGE_PERMISSIONS = {
    'solucomp_cop': '/Admin/cop',
    'solucomp_compare': '/Admin/compare',
}


class Domain(db.Model):
    """A downstream application users may be granted access to."""

    __tablename__ = 'domains'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    url = db.Column(db.String(255), nullable=True)
    image_url = db.Column(db.String(255), nullable=True)
    detail = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def parent_key(self):
        return SATELLITE_PARENTS.get(self.key)

    @property
    def is_satellite(self):
        return self.key in SATELLITE_PARENTS

    def to_dict(self):
        return {
            'id': self.id,
            'key': self.key,
            'name': self.name,
            'url': self.url,
            'image_url': self.image_url,
            'detail': self.detail,
        }

    def __repr__(self):
        return f'<Domain {self.key}>'
