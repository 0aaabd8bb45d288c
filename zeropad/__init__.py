"""
Flask Application Factory for Zeropad.

Zeropad stores documents that were encrypted in the browser. The server only
ever sees ciphertext; the key travels in the URL fragment and never reaches
it. This module wires the pieces together:

- storage backend (chosen by STORAGE_BACKEND)
- rate limiter (one per application)
- document service
- JSON API blueprint
- security headers and access logging
"""

import os
import time
import logging
from flask import Flask, g
from config import get_config
from zeropad.models import db
from zeropad.rate_limit import (
    CREATE_DOCUMENT, GET_DOCUMENT, UPDATE_DOCUMENT,
    MemoryRateLimitStore, RateLimitPolicy, RateLimiter
)
from zeropad.service import DocumentService
from zeropad.storage import build_store

# Room for the JSON envelope around encryptedContent
REQUEST_OVERHEAD_BYTES = 64 * 1024


def build_rate_limiter(config):
    """Create the application's rate limiter, or None when disabled."""
    if not config.get('RATE_LIMIT_ENABLED', True):
        return None

    policies = {
        CREATE_DOCUMENT: RateLimitPolicy(*config['RATE_LIMIT_CREATE']),
        UPDATE_DOCUMENT: RateLimitPolicy(*config['RATE_LIMIT_UPDATE']),
        GET_DOCUMENT: RateLimitPolicy(*config['RATE_LIMIT_GET']),
    }
    return RateLimiter(
        MemoryRateLimitStore(),
        policies,
        sweep_interval=config.get('RATE_LIMIT_SWEEP_SECONDS', 600),
    )


def create_app(config_class=None, store=None, rate_limiter=None):
    """
    Application factory function.

    Args:
        config_class: Configuration class to use (optional)
        store: DocumentStore to use instead of the configured backend
        rate_limiter: RateLimiter to use instead of building one from config

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    if config_class is None:
        config_class = get_config()
    app.config.from_object(config_class)

    if app.config.get('MAX_CONTENT_LENGTH') is None:
        app.config['MAX_CONTENT_LENGTH'] = (
            app.config['MAX_DOCUMENT_SIZE'] + REQUEST_OVERHEAD_BYTES)

    # Ensure instance folder exists and fix database path
    instance_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'instance')
    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    if db_uri == 'sqlite:///instance/zeropad.db':
        os.makedirs(instance_path, exist_ok=True)
        app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{instance_path}/zeropad.db'

    # Initialize database
    db.init_app(app)

    if store is None:
        store = build_store(app.config['STORAGE_BACKEND'])
    if app.config['STORAGE_BACKEND'] == 'sql':
        with app.app_context():
            db.create_all()

    if rate_limiter is None:
        rate_limiter = build_rate_limiter(app.config)

    app.extensions['zeropad.documents'] = DocumentService(
        store,
        rate_limiter=rate_limiter,
        max_document_size=app.config['MAX_DOCUMENT_SIZE'],
        allow_legacy_writes=app.config['ALLOW_LEGACY_WRITES'],
        require_write_token=app.config['REQUIRE_WRITE_TOKEN'],
    )

    # Register blueprints
    from zeropad.routes import api
    app.register_blueprint(api)

    # Add security headers to all responses
    @app.after_request
    def add_security_headers(response):
        """
        Add security headers to every response.

        The API only serves JSON, so the policy forbids everything else.
        Reference: OWASP Secure Headers Project
        """
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        # Links carry keys in the fragment; send no referrer at all
        response.headers['Referrer-Policy'] = 'no-referrer'
        response.headers['Content-Security-Policy'] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        response.headers['Cache-Control'] = 'no-store'
        response.headers['Permissions-Policy'] = (
            'geolocation=(), microphone=(), camera=()'
        )
        return response

    # Record request start time for response time calculation
    @app.before_request
    def record_start_time():
        g.start_time = time.time()

    # Enhanced access logging
    @app.after_request
    def log_access_request(response):
        from zeropad.audit_log import log_access
        log_access(response)
        return response

    # Disable default Werkzeug logger if access logging is enabled
    if app.config.get('ACCESS_LOG_ENABLED', True):
        werkzeug_logger = logging.getLogger('werkzeug')
        werkzeug_logger.setLevel(logging.ERROR)  # Only show errors, not access logs

    return app
