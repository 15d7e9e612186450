"""WSGI entrypoint used by Gunicorn."""
import os

from trio_tracker.app import create_app

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

if not app.config.get('DISCORD_WEBHOOK_URL'):
    print('DISCORD_WEBHOOK_URL is not set; session posts will skip Discord')
