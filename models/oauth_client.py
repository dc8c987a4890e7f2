"""OAuth client registrations."""
from models import db
from utils.timestamps import utcnow


class OAuthClient(db.Model):
    """Maps an OAuth ``client_id`` to the user it acts for.

    Every user currently gets exactly one client whose id equals the user's
    uuid; keeping the mapping in its own table lets the two identities
    diverge later.
    """

    __tablename__ = 'oauth_clients'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', backref=db.backref('oauth_clients', cascade='all, delete-orphan'))

    @classmethod
    def register_for(cls, user):
        client = cls(client_id=user.uuid, user=user)
        db.session.add(client)
        return client

    def __repr__(self):
        return f'<OAuthClient {self.client_id}>'
