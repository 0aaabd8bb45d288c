#!/usr/bin/env python3
"""
Run script for Zeropad.

This is a convenience script for development.
For production, use gunicorn directly:
    gunicorn 'zeropad:create_app()' --bind 0.0.0.0:8000

Note: the rate limiter keeps its counters in process memory, so every
gunicorn worker enforces its own limits.

Usage:
    python run.py
"""
import os
from zeropad import create_app

if __name__ == '__main__':
    app = create_app()

    # In production, set FLASK_ENV=production and use gunicorn
    app.run(
        host='127.0.0.1',  # Only allow localhost connections
        port=int(os.environ.get('PORT', 5001)),
        debug=os.environ.get('FLASK_ENV') == 'development'
    )
