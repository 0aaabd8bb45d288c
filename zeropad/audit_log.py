"""
Audit logging module for Zeropad.

Provides structured logging of security events for monitoring: document
creation and updates, rejected writes, unknown ids and rate limiting.
Also provides the HTTP access log.

Nothing logged here may contain document content, encryption keys, write
tokens or token hashes. Keys travel in URL fragments, which never reach the
server, so request paths are safe to log.

Reference: OWASP A09:2021 - Security Logging and Monitoring Failures
"""

import os
import logging
import time
from datetime import datetime
from flask import current_app, request, has_app_context, has_request_context, g


WARNING_EVENTS = {'RATE_LIMIT_EXCEEDED', 'UNAUTHORIZED_WRITE', 'DOCUMENT_NOT_FOUND'}


def _setting(name, default):
    """Read a logging setting from app config, falling back to the environment."""
    if has_app_context():
        return current_app.config.get(name, default)
    return os.environ.get(name, default)


def _add_file_handler(logger, log_file, log_level, formatter):
    # Create logs directory if it doesn't exist
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def setup_audit_logger():
    """
    Set up the audit logger with file handler.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger('security_audit')
    logger.setLevel(logging.INFO)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    _add_file_handler(
        logger,
        _setting('AUDIT_LOG_FILE', 'logs/security_audit.log'),
        _setting('AUDIT_LOG_LEVEL', 'INFO'),
        formatter,
    )

    return logger


def setup_access_logger():
    """
    Set up the access logger with file handler for HTTP access logs.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger('access')
    logger.setLevel(logging.INFO)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter('%(message)s')
    _add_file_handler(
        logger,
        _setting('ACCESS_LOG_FILE', 'logs/access.log'),
        _setting('ACCESS_LOG_LEVEL', 'INFO'),
        formatter,
    )

    # Also add console handler for development
    if has_app_context() and current_app.config.get('DEBUG', False):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_client_ip():
    """
    Get client IP address from request, handling proxy headers.

    Order: first hop of X-Forwarded-For, then X-Real-IP, then the socket
    address. Returns 'unknown' when none is available.
    """
    if not has_request_context():
        return 'unknown'

    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        first = forwarded_for.split(',')[0].strip()
        if first:
            return first

    real_ip = request.headers.get('X-Real-IP')
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return request.remote_addr or 'unknown'


def _is_enabled(name):
    value = _setting(name, True)
    if isinstance(value, str):
        return value.lower() == 'true'
    return bool(value)


def log_security_event(event_type, details=None, ip=None):
    """
    Log a security event.

    Args:
        event_type: Type of event (e.g., 'DOCUMENT_CREATED', 'RATE_LIMIT_EXCEEDED')
        details: Dictionary with additional event details
        ip: IP address (if not provided, will try to get from request context)

    Event types:
        - DOCUMENT_CREATED: Document stored
        - DOCUMENT_UPDATED: Document content replaced
        - DOCUMENT_NOT_FOUND: Read or write for an unknown id
        - UNAUTHORIZED_WRITE: Update with a missing or wrong write token
        - RATE_LIMIT_EXCEEDED: Request rejected by the rate limiter
    """
    if not _is_enabled('AUDIT_LOG_ENABLED'):
        return

    logger = setup_audit_logger()

    # Get IP if not provided
    if ip is None:
        ip = get_client_ip()

    message_parts = [f"EVENT={event_type}", f"IP={ip}"]

    if details:
        # Format details as key=value pairs
        detail_str = " | ".join([f"{k}={v}" for k, v in details.items()])
        if detail_str:
            message_parts.append(f"DETAILS={detail_str}")

    log_message = " | ".join(message_parts)

    if event_type in WARNING_EVENTS:
        logger.warning(log_message)
    else:
        logger.info(log_message)


def log_access(response=None):
    """
    Log HTTP access with enhanced details.

    Format: IP [TIMESTAMP] "METHOD PATH?QUERY HTTP/VERSION" STATUS SIZE
    RESPONSE_TIME "REFERER" "USER_AGENT", close to the Apache/Nginx
    combined log format.

    Args:
        response: Flask response object (optional, for after_request hook)
    """
    if not has_request_context():
        return response

    if not _is_enabled('ACCESS_LOG_ENABLED'):
        return response

    logger = setup_access_logger()

    # Get request start time (set in before_request)
    start_time = getattr(g, 'start_time', None)
    if start_time:
        response_time = (time.time() - start_time) * 1000  # milliseconds
    else:
        response_time = 0

    ip = get_client_ip()

    method = request.method
    path = request.path
    query_string = request.query_string.decode('utf-8', 'replace') if request.query_string else ''
    http_version = request.environ.get('SERVER_PROTOCOL', 'HTTP/1.1')

    if response is not None:
        status_code = response.status_code
        response_size = response.content_length
        if response_size is None:
            response_size = '-'
    else:
        status_code = '-'
        response_size = '-'

    user_agent = request.headers.get('User-Agent', '-')
    if len(user_agent) > 150:
        user_agent = user_agent[:147] + '...'

    referer = request.headers.get('Referer', '-')
    if referer != '-' and len(referer) > 100:
        referer = referer[:97] + '...'

    if query_string:
        if len(query_string) > 200:
            query_string = query_string[:197] + '...'
        path_with_query = f"{path}?{query_string}"
    else:
        path_with_query = path

    timestamp = datetime.now().strftime('%d/%b/%Y:%H:%M:%S')

    log_parts = [
        ip,
        f'[{timestamp}]',
        f'"{method} {path_with_query} {http_version}"',
        str(status_code),
        str(response_size),
        f'{response_time:.2f}ms' if response_time > 0 else '-',
        f'"{referer}"',
        f'"{user_agent}"'
    ]

    log_message = ' '.join(log_parts)

    # Log at appropriate level based on status code
    if response is not None and status_code >= 500:
        logger.error(log_message)
    elif response is not None and status_code >= 400:
        logger.warning(log_message)
    else:
        logger.info(log_message)

    return response
