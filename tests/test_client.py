"""
Tests for the Python client, run against the app through http_session.
"""

from dataclasses import replace

import pytest

from zeropad.capability import decode_fragment, edit_url, view_url
from zeropad.client import ZeropadClient
from zeropad.crypto import export_key, generate_key
from zeropad.errors import (
    DecryptionError, MalformedCapabilityError, NotFoundError,
    PayloadTooLargeError, RateLimitedError, UnauthorizedError
)
from zeropad.history import DocumentHistory
from conftest import BASE_URL


@pytest.fixture
def history(tmp_path):
    return DocumentHistory(str(tmp_path / 'history.json'))


@pytest.fixture
def pad(http_session, history):
    return ZeropadClient(BASE_URL, session=http_session, history=history)


class TestShareAndOpen:

    def test_roundtrip(self, pad):
        capability = pad.share("# Hello")

        assert capability.is_writable
        assert pad.open(capability) == "# Hello"

    def test_server_never_sees_plaintext_or_key(self, pad, service):
        capability = pad.share("# Top secret")

        stored = service.store.get(capability.document_id)

        assert "secret" not in stored.encrypted_content
        assert capability.key not in stored.encrypted_content
        assert stored.write_token_hash != capability.write_token

    def test_open_through_view_link(self, pad):
        capability = pad.share("# Hello")
        link = view_url(BASE_URL, capability)

        path, key = link.split("#", 1)
        read_only = decode_fragment(f"{path.rsplit('/', 1)[1]}#{key}")

        assert not read_only.is_writable
        assert pad.open(read_only) == "# Hello"

    def test_open_through_edit_link(self, pad):
        capability = pad.share("# Hello")
        fragment = edit_url(BASE_URL, capability).split('#', 1)[1]

        assert pad.open(decode_fragment(fragment)) == "# Hello"

    def test_wrong_key(self, pad):
        capability = pad.share("# Hello")
        wrong = replace(capability, key=export_key(generate_key()))

        with pytest.raises(DecryptionError):
            pad.open(wrong)

    def test_malformed_key(self, pad):
        capability = pad.share("# Hello")

        with pytest.raises(MalformedCapabilityError):
            pad.open(replace(capability, key='not-a-key'))

    def test_unknown_document(self, pad):
        capability = pad.share("# Hello")

        with pytest.raises(NotFoundError):
            pad.open(replace(capability, document_id='0' * 32))

    def test_too_large(self, pad):
        with pytest.raises(PayloadTooLargeError):
            pad.share("x" * 5000)

    def test_rate_limited(self, pad):
        for _ in range(10):
            pad.share("spam")

        with pytest.raises(RateLimitedError) as excinfo:
            pad.share("spam")

        assert excinfo.value.retry_after > 0
        assert excinfo.value.message == 'Rate limit exceeded'


class TestSave:

    def test_save_and_reopen(self, pad):
        capability = pad.share("# Draft")

        pad.save(capability, "# Final")

        assert pad.open(capability) == "# Final"

    def test_read_only_capability_cannot_save(self, pad):
        capability = pad.share("# Draft")

        with pytest.raises(UnauthorizedError):
            pad.save(capability.read_only(), "# Vandalised")
        assert pad.open(capability) == "# Draft"

    def test_forged_token_cannot_save(self, pad):
        capability = pad.share("# Draft")

        with pytest.raises(UnauthorizedError):
            pad.save(replace(capability, write_token='forged'), "# Vandalised")


class TestHistory:

    def test_share_is_recorded(self, pad, history):
        capability = pad.share("# Meeting notes\n\nbody")

        entry = history.get(capability.document_id)

        assert entry.title == "Meeting notes"
        assert entry.encryption_key == capability.key
        assert entry.write_token == capability.write_token
        assert entry.created_at == entry.last_modified

    def test_save_keeps_created_at(self, pad, history):
        capability = pad.share("# First")
        created = history.get(capability.document_id).created_at

        pad.save(capability, "# Second")
        entry = history.get(capability.document_id)

        assert entry.title == "Second"
        assert entry.created_at == created
        assert entry.last_modified >= created
        assert len(history.entries()) == 1

    def test_most_recent_first(self, pad, history):
        first = pad.share("# One")
        second = pad.share("# Two")

        assert [e.id for e in history.entries()] == [second.document_id, first.document_id]

    def test_failed_save_not_recorded(self, pad, history):
        capability = pad.share("# Draft")

        with pytest.raises(UnauthorizedError):
            pad.save(capability.read_only(), "# Vandalised")

        assert history.get(capability.document_id).title == "Draft"

    def test_history_is_optional(self, http_session):
        pad = ZeropadClient(BASE_URL, session=http_session)
        capability = pad.share("# Hello")
        assert pad.open(capability) == "# Hello"

    def test_open_read_only_is_recorded(self, http_session, history):
        writer = ZeropadClient(BASE_URL, session=http_session)
        capability = writer.share("# Shared notes\n\nbody")
        reader = ZeropadClient(BASE_URL, session=http_session, history=history)

        reader.open(capability.read_only())
        entry = history.get(capability.document_id)

        assert entry.title == "Shared notes"
        assert entry.encryption_key == capability.key
        assert entry.write_token == ''
        assert entry.created_at == entry.last_modified

    def test_open_keeps_created_at(self, pad, history):
        capability = pad.share("# Hello")
        created = history.get(capability.document_id).created_at

        pad.open(capability)

        assert history.get(capability.document_id).created_at == created
        assert len(history.entries()) == 1

    def test_open_read_only_keeps_write_token(self, pad, history):
        capability = pad.share("# Hello")

        pad.open(capability.read_only())

        assert history.get(capability.document_id).write_token == capability.write_token

    def test_failed_open_not_recorded(self, http_session, history):
        writer = ZeropadClient(BASE_URL, session=http_session)
        capability = writer.share("# Hello")
        reader = ZeropadClient(BASE_URL, session=http_session, history=history)

        with pytest.raises(DecryptionError):
            reader.open(replace(capability, key=export_key(generate_key())))

        assert history.get(capability.document_id) is None
