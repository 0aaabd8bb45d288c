"""
Shared pytest configuration for tests.

Every test gets its own application, with its own in-memory database and its
own rate limiter, so rate limiting stays active and testable without tests
interfering with each other.

`http_session` wraps the Flask test client in the small slice of the
requests.Session API that the client library and the fuzzer use, so both
can be exercised without a running server.
"""

import json
import os
import tempfile
from urllib.parse import urlsplit

import pytest
import requests

from zeropad import create_app
from zeropad.models import db
from config import TestingConfig


BASE_URL = 'http://zeropad.test'


@pytest.fixture(scope='session', autouse=True)
def _log_to_temp_dir():
    """Keep audit and access logs out of the working tree."""
    log_dir = tempfile.mkdtemp(prefix='zeropad-logs-')
    os.environ['AUDIT_LOG_FILE'] = os.path.join(log_dir, 'security_audit.log')
    os.environ['ACCESS_LOG_FILE'] = os.path.join(log_dir, 'access.log')
    TestingConfig.AUDIT_LOG_FILE = os.environ['AUDIT_LOG_FILE']
    TestingConfig.ACCESS_LOG_FILE = os.environ['ACCESS_LOG_FILE']
    yield


class FakeClock:
    """Manually advanced clock for rate limiter tests."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app():
    """Create and configure test application instance."""
    application = create_app(TestingConfig)

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions['zeropad.documents']


class _Response:
    """The parts of requests.Response that our code reads."""

    def __init__(self, flask_response, url):
        self.status_code = flask_response.status_code
        self.headers = flask_response.headers
        self.text = flask_response.get_data(as_text=True)
        self.url = url

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for url {self.url}", response=None)


class FlaskSession:
    """requests.Session look-alike backed by a Flask test client."""

    def __init__(self, test_client):
        self._client = test_client

    def request(self, method, url, json=None, data=None, headers=None, timeout=None):
        parts = urlsplit(url)
        path = parts.path + (f'?{parts.query}' if parts.query else '')
        response = self._client.open(path, method=method, json=json,
                                     data=data, headers=headers)
        return _Response(response, url)

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self.request('POST', url, **kwargs)

    def put(self, url, **kwargs):
        return self.request('PUT', url, **kwargs)


@pytest.fixture
def http_session(client):
    return FlaskSession(client)
