"""Login/logout activity log."""
from models import db
from utils.timestamps import utcnow, isoformat


class UserActivity(db.Model):

    __tablename__ = 'user_activities'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    domain_id = db.Column(db.Integer, db.ForeignKey('domains.id', ondelete='SET NULL'), nullable=True)
    event_type = db.Column(db.String(50), nullable=False)  # login, logout, "<domain> login"
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    event_time = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'domain_id': self.domain_id,
            'event_type': self.event_type,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'event_time': isoformat(self.event_time),
        }
