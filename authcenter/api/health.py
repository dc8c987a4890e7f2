"""Health check API blueprint."""
from flask import Blueprint, jsonify
from sqlalchemy import text
import logging

from models import db

bp = Blueprint('health', __name__)
logger = logging.getLogger(__name__)

SERVICE_NAME = "AuthCenter"
SERVICE_VERSION = "1.0.0"


@bp.route('/health', methods=['GET'])
def health_check():
    """Liveness plus a database round trip."""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'ok'
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        db.session.rollback()
        database = 'unavailable'

    status = 'healthy' if database == 'ok' else 'degraded'
    return jsonify({
        "status": status,
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "database": database,
    }), 200 if status == 'healthy' else 503


@bp.route('/', methods=['GET'])
def root():
    """Root endpoint with API information."""
    return jsonify({
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "auth": {
                "signup": "/auth/signup",
                "login": "/auth/login",
                "logout": "/auth/logout",
                "token_exchange": "/auth/token/exchange",
                "domains": "/auth/domains"
            },
            "oauth": {
                "authorize": "/authorize",
                "token": "/oauth/token",
                "validate": "/oauth/validate"
            },
            "access_requests": "/access-requests",
            "sync": "/internal-sync-user"
        }
    })
