"""Business services behind the HTTP blueprints."""
