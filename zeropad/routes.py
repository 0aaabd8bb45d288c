"""
HTTP API for Zeropad.

    POST /documents        {encryptedContent, writeTokenHash?}  -> 201 {id}
    GET  /documents/<id>                                        -> 200 {id, encryptedContent, createdAt}
    PUT  /documents/<id>   {encryptedContent, writeToken?}      -> 200 {id, updated: true}

All bodies are JSON. Errors are {"error": "<short message>"} with the status
taken from the exception class (see zeropad.errors). Successful responses
carry X-RateLimit-* headers; 429 responses add Retry-After.
"""

import logging
import math
from datetime import timezone
from email.utils import formatdate

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from zeropad.audit_log import get_client_ip
from zeropad.errors import RateLimitedError, ZeropadError
from zeropad.models import db

logger = logging.getLogger(__name__)

# Create blueprint for the document API
api = Blueprint('api', __name__)


def _service():
    return current_app.extensions['zeropad.documents']


def _json_body():
    """
    Request body as a dict. Anything else becomes {} so the service rejects
    it after rate limiting, the same as a body without encryptedContent.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return {}
    return body


def _add_rate_limit_headers(response, rate_limit):
    if rate_limit is None:
        return response
    response.headers['X-RateLimit-Limit'] = str(rate_limit.limit)
    response.headers['X-RateLimit-Remaining'] = str(rate_limit.remaining)
    response.headers['X-RateLimit-Reset'] = str(math.ceil(rate_limit.reset))
    return response


def _isoformat(value):
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


# ============================================================================
# DOCUMENT ROUTES
# ============================================================================

@api.route('/documents', methods=['POST'])
def create_document():
    """Store a new encrypted document. Rate limit: per client IP."""
    body = _json_body()

    receipt = _service().create(
        body.get('encryptedContent'),
        write_token_hash=body.get('writeTokenHash'),
        client_id=get_client_ip(),
    )

    response = jsonify({'id': receipt.id})
    response.status_code = 201
    return _add_rate_limit_headers(response, receipt.rate_limit)


@api.route('/documents/<document_id>', methods=['GET'])
def get_document(document_id):
    """Return a document's ciphertext. Rate limit: per client IP."""
    document = _service().get(document_id, client_id=get_client_ip())

    response = jsonify({
        'id': document.id,
        'encryptedContent': document.encrypted_content,
        'createdAt': _isoformat(document.created_at),
    })
    return _add_rate_limit_headers(response, document.rate_limit)


@api.route('/documents/<document_id>', methods=['PUT'])
def update_document(document_id):
    """Replace a document's ciphertext. Rate limit: per document id."""
    body = _json_body()

    receipt = _service().update(
        document_id,
        body.get('encryptedContent'),
        write_token=body.get('writeToken'),
        client_id=get_client_ip(),
    )

    response = jsonify({'id': receipt.id, 'updated': True})
    return _add_rate_limit_headers(response, receipt.rate_limit)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@api.app_errorhandler(RateLimitedError)
def rate_limited_error(error):
    """429 with the standard rate limit headers."""
    result = error.result
    body = {'error': 'Rate limit exceeded', 'message': error.message}
    if result is not None:
        body.update({
            'limit': result.limit,
            'remaining': 0,
            'reset': formatdate(result.reset, usegmt=True),
        })

    response = jsonify(body)
    response.status_code = error.status_code

    if result is not None:
        response.headers['X-RateLimit-Limit'] = str(result.limit)
        response.headers['X-RateLimit-Remaining'] = '0'
        response.headers['X-RateLimit-Reset'] = str(math.ceil(result.reset))

    if error.retry_after is not None:
        response.headers['Retry-After'] = str(error.retry_after)

    return response


@api.app_errorhandler(ZeropadError)
def zeropad_error(error):
    response = jsonify({'error': error.message})
    response.status_code = error.status_code
    return response


@api.app_errorhandler(HTTPException)
def http_error(error):
    """Werkzeug errors (404 route, 405, 413 body too large) as JSON."""
    messages = {
        404: 'Not found',
        405: 'Method not allowed',
        413: 'Document too large',
    }
    response = jsonify({'error': messages.get(error.code, error.name)})
    response.status_code = error.code or 500
    return response


@api.app_errorhandler(Exception)
def internal_error(error):
    """Anything unexpected - roll back and hide the details."""
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    db.session.rollback()
    response = jsonify({'error': 'An internal error occurred'})
    response.status_code = 500
    return response
