"""Celery worker entry point for the propagation tasks.

    celery -A celery_worker worker --loglevel=INFO
"""

from authcenter import create_app

flask_app = create_app()

# Export for the celery CLI
celery_app = flask_app.extensions['celery']
