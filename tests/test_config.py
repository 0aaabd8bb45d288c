"""Tests for configuration loading and the application factory wiring."""

import pytest

from config import (
    DevelopmentConfig, ProductionConfig, TestingConfig, get_config,
    normalize_database_url
)
from zeropad import REQUEST_OVERHEAD_BYTES, build_rate_limiter, create_app
from zeropad.rate_limit import CREATE_DOCUMENT, RateLimitPolicy
from zeropad.storage import MemoryDocumentStore, SqlDocumentStore


@pytest.mark.parametrize('url, expected', [
    (None, 'sqlite:///instance/zeropad.db'),
    ('', 'sqlite:///instance/zeropad.db'),
    ('file:./sqlite.db', 'sqlite:///./sqlite.db'),
    ('postgres://u:p@db/zeropad', 'postgresql://u:p@db/zeropad'),
    ('postgresql://u:p@db/zeropad', 'postgresql://u:p@db/zeropad'),
    ('sqlite:////tmp/x.db', 'sqlite:////tmp/x.db'),
])
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected


@pytest.mark.parametrize('env, expected', [
    ('production', ProductionConfig),
    ('testing', TestingConfig),
    ('development', DevelopmentConfig),
    ('something-else', DevelopmentConfig),
])
def test_get_config(monkeypatch, env, expected):
    monkeypatch.setenv('FLASK_ENV', env)
    assert get_config() is expected


def test_production_requires_write_tokens():
    assert ProductionConfig.REQUIRE_WRITE_TOKEN is True
    assert ProductionConfig.DEBUG is False


def test_max_content_length_derived(app):
    assert app.config['MAX_CONTENT_LENGTH'] == 4096 + REQUEST_OVERHEAD_BYTES


def test_service_wiring(app):
    service = app.extensions['zeropad.documents']

    assert isinstance(service.store, SqlDocumentStore)
    assert service.max_document_size == 4096
    assert service.allow_legacy_writes is True
    assert service.rate_limiter.policies[CREATE_DOCUMENT] == RateLimitPolicy(3600, 10)


def test_injected_store():
    store = MemoryDocumentStore()
    app = create_app(TestingConfig, store=store)
    assert app.extensions['zeropad.documents'].store is store


def test_rate_limiter_from_config():
    limiter = build_rate_limiter({
        'RATE_LIMIT_ENABLED': True,
        'RATE_LIMIT_CREATE': (60, 1),
        'RATE_LIMIT_UPDATE': (60, 2),
        'RATE_LIMIT_GET': (60, 3),
        'RATE_LIMIT_SWEEP_SECONDS': 30,
    })

    assert limiter.policies[CREATE_DOCUMENT] == RateLimitPolicy(60, 1)
    assert limiter.sweep_interval == 30


def test_rate_limiter_disabled():
    assert build_rate_limiter({'RATE_LIMIT_ENABLED': False}) is None
