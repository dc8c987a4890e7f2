"""Main application entry point using Flask application factory pattern."""

import os
from authcenter import create_app

app = create_app()

if __name__ == '__main__':
    # Get port from environment variable or default to 5000
    port = int(os.environ.get('PORT', 5000))

    # Development server only; production runs wsgi:application under gunicorn
    app.run(
        host='0.0.0.0',
        port=port,
        debug=os.environ.get('FLASK_ENV') != 'production',
    )
