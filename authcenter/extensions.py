"""
Flask extension instances.

Import these objects in blueprints and services; they are bound to the
application in init_extensions(app).
"""

import logging

from flask_caching import Cache
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

cache = Cache()
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def init_extensions(app):
    """Initialize cache, rate limiter and CORS with the app instance."""
    CORS(app, origins=list(app.config.get('ALLOWED_ORIGINS', ('*',))),
         supports_credentials=True)

    cache.init_app(app, config={
        'CACHE_TYPE': app.config.get('CACHE_TYPE', 'SimpleCache'),
        'CACHE_DEFAULT_TIMEOUT': app.config.get('CACHE_DEFAULT_TIMEOUT', 600),
        'CACHE_REDIS_URL': app.config.get('CACHE_REDIS_URL'),
    })

    app.config.setdefault('RATELIMIT_STORAGE_URI', 'memory://')
    limiter.init_app(app)

    logger.info(
        "Extensions initialized (cache=%s, ratelimit=%s)",
        app.config.get('CACHE_TYPE', 'SimpleCache'),
        app.config['RATELIMIT_STORAGE_URI'],
    )
