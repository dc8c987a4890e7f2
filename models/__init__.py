"""Database models and Flask extension singletons."""

from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate

db = SQLAlchemy()
bcrypt = Bcrypt()
jwt = JWTManager()
migrate = Migrate()


def init_db(app):
    """Initialize database extensions and register every model on the metadata."""
    db.init_app(app)
    bcrypt.init_app(app)
    jwt.init_app(app)
    migrate.init_app(app, db)

    # Imported for their side effect of registering tables.
    from models import (  # noqa: F401
        user, domain, access_request, refresh_token, token_blacklist,
        oauth_client, user_activity, system_setting,
    )


@contextmanager
def atomic():
    """Commit the enclosed work as one unit, rolling back on any exception."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
