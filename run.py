#!/usr/bin/env python3
"""Entry point for the Trio Tracker server."""
import os
from trio_tracker.app import create_app, socketio

config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5001))
    print(f"🎯 Trio Tracker starting on http://localhost:{port}")
    if not app.config.get('SITE_ACCESS_PIN'):
        print("⚠️  SITE_ACCESS_PIN is not set; the site is open to anyone")
    socketio.run(
        app, host='0.0.0.0', port=port,
        debug=(config_name == 'development'),
        allow_unsafe_werkzeug=True,
    )
