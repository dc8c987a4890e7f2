"""AuthCenter Flask application factory."""
import os
from datetime import timedelta
from flask import Flask, jsonify
import logging
from typing import Optional

from utils.config import get_app_config
from utils.logging import configure_logging


def create_app(config_override: Optional[dict] = None) -> Flask:
    """Create and configure the AuthCenter application.

    Args:
        config_override: Optional configuration overrides, applied last (tests)

    Returns:
        Flask app instance
    """
    app = Flask(__name__)

    config = get_app_config()
    app.config['APP_CONFIG'] = config
    apply_config(app, config)

    if config_override:
        for key, value in config_override.items():
            app.config[key] = value

    configure_logging()

    from authcenter.services.token_service import load_signing_keys
    load_signing_keys(app)

    init_database(app)

    from authcenter.extensions import init_extensions
    init_extensions(app)

    from authcenter.celery_app import celery_init_app
    celery_init_app(app)

    register_blueprints(app)
    register_error_handlers(app)

    logging.info(f"AuthCenter started (lockout={app.config['LOCKOUT_POLICY']}, "
                 f"propagation={app.config['PROPAGATION_MODE']})")
    return app


def apply_config(app: Flask, config) -> None:
    """Map the frozen AppConfig onto Flask and extension settings."""
    app.config['SECRET_KEY'] = config.secret_key

    # Database
    app.config['SQLALCHEMY_DATABASE_URI'] = config.database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # JWT (RS256, keys loaded from PEM files by load_signing_keys)
    app.config['JWT_ALGORITHM'] = 'RS256'
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(seconds=config.jwt.ttl)
    app.config['JWT_ENCODE_ISSUER'] = config.jwt.issuer
    app.config['JWT_DECODE_ISSUER'] = config.jwt.issuer
    app.config['JWT_ENCODE_AUDIENCE'] = config.jwt.audience
    app.config['JWT_DECODE_AUDIENCE'] = config.jwt.audience
    app.config['JWT_DECODE_LEEWAY'] = config.jwt.leeway
    app.config['JWT_TTL'] = config.jwt.ttl
    app.config['JWT_REFRESH_TTL'] = config.jwt.refresh_ttl
    app.config['JWT_PRIVATE_KEY_PATH'] = config.jwt.private_key_path
    app.config['JWT_PUBLIC_KEY_PATH'] = config.jwt.public_key_path
    if os.getenv('JWT_PRIVATE_KEY') and os.getenv('JWT_PUBLIC_KEY'):
        app.config['JWT_PRIVATE_KEY'] = os.getenv('JWT_PRIVATE_KEY')
        app.config['JWT_PUBLIC_KEY'] = os.getenv('JWT_PUBLIC_KEY')
    app.config['REFRESH_TOKEN_ROTATION'] = config.jwt.refresh_rotation

    # Downstream domains
    app.config['DOMAIN_SERVICES'] = config.domains
    app.config['SYNC_SECRET'] = config.sync_secret
    app.config['SSO_SHARED_TOKEN'] = os.getenv('SSO_SHARED_TOKEN')

    # Login policy
    app.config['LOCKOUT_POLICY'] = config.lockout_policy
    app.config['MAX_PENDING_REQUESTS'] = config.max_pending_requests
    app.config['DEFAULT_DOMAIN_KEY'] = config.default_domain_key
    app.config['TOTP_ISSUER'] = config.totp_issuer
    app.config['TOTP_VALID_WINDOW'] = config.totp_valid_window
    app.config['ENFORCE_2FA_LOGIN_DEFAULT'] = config.enforce_2fa_login_default
    app.config['OAUTH_VALIDATE_CHECKS_BLACKLIST'] = config.oauth_validate_checks_blacklist
    app.config['PROPAGATION_MODE'] = config.propagation_mode
    app.config['CELERY'] = {
        'broker_url': config.celery_broker_url,
        'result_backend': config.celery_result_backend,
    }

    # Extensions
    app.config['CACHE_TYPE'] = config.cache_type
    app.config['CACHE_REDIS_URL'] = os.getenv('CACHE_REDIS_URL')
    app.config['RATELIMIT_STORAGE_URI'] = config.ratelimit_storage_uri
    app.config['ALLOWED_ORIGINS'] = config.allowed_origins


def init_database(app: Flask) -> None:
    """Initialize database extensions and create tables."""
    from models import db, init_db
    init_db(app)

    with app.app_context():
        db.create_all()

    logging.info("Database initialized successfully")


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    # Import blueprints here to avoid circular imports
    from authcenter.api.health import bp as health_bp
    from authcenter.api.auth import bp as auth_bp
    from authcenter.api.token_refresh import bp as token_refresh_bp
    from authcenter.api.oauth import bp as oauth_bp
    from authcenter.api.access_requests import bp as access_requests_bp
    from authcenter.api.sync import bp as sync_bp
    from authcenter.api.admin import bp as admin_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(token_refresh_bp)
    app.register_blueprint(oauth_bp)
    app.register_blueprint(access_requests_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(admin_bp)


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""
    from werkzeug.exceptions import HTTPException
    from utils.exceptions import ServiceError

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        status = error.status_code or 500
        if status >= 500:
            app.logger.error(f"{type(error).__name__}: {error}")
        return jsonify(error.to_dict()), status

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.name.lower().replace(' ', '_'),
                        'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        app.logger.exception(f"Internal server error: {error}")
        return jsonify({'error': 'internal_error', 'message': 'Internal server error'}), 500
