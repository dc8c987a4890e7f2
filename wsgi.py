"""WSGI entry point for production deployment with gunicorn."""

from authcenter import create_app

app = create_app()

# Export app for gunicorn
application = app
