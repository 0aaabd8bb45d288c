"""
Document access service.

Stores and returns opaque ciphertext by id, gates writes on the write token,
and applies the per-endpoint rate limits. It never decrypts anything and
never sees an encryption key or a raw write token outside of update().

Check order for every operation: rate limit, input validation, existence,
write authorization. Reads are never authorized: secrecy comes from the key
in the link fragment, not from access control.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from zeropad.audit_log import log_security_event
from zeropad.crypto import generate_id, verify_write_token
from zeropad.errors import (
    NotFoundError, PayloadTooLargeError, RateLimitedError, UnauthorizedError,
    ValidationError
)
from zeropad.rate_limit import (
    CREATE_DOCUMENT, GET_DOCUMENT, UPDATE_DOCUMENT, RateLimitResult
)
from zeropad.storage import DocumentRecord
from zeropad.utils import (
    format_size, is_valid_document_id, is_within_size_limit,
    validate_encrypted_content, validate_write_token_hash
)


# 10 MiB is what the API has always enforced. See DESIGN.md.
DEFAULT_MAX_DOCUMENT_SIZE = 10 * 1024 * 1024


@dataclass(frozen=True)
class DocumentReceipt:
    id: str
    rate_limit: Optional[RateLimitResult]


@dataclass(frozen=True)
class DocumentView:
    id: str
    encrypted_content: str
    created_at: datetime
    rate_limit: Optional[RateLimitResult]


class DocumentService:
    """
    Args:
        store: DocumentStore implementation
        rate_limiter: RateLimiter, or None to disable rate limiting
        max_document_size: Maximum length of encryptedContent in characters
        allow_legacy_writes: Allow updates to documents stored without a
            write token hash. When False such documents are read-only.
        require_write_token: Reject creation without a write token hash
    """

    def __init__(self, store, rate_limiter=None,
                 max_document_size=DEFAULT_MAX_DOCUMENT_SIZE,
                 allow_legacy_writes=True, require_write_token=False):
        self.store = store
        self.rate_limiter = rate_limiter
        self.max_document_size = max_document_size
        self.allow_legacy_writes = allow_legacy_writes
        self.require_write_token = require_write_token

    def create(self, encrypted_content, write_token_hash=None, client_id='unknown'):
        """
        Store a new encrypted document.

        Returns:
            DocumentReceipt with the new id

        Raises:
            RateLimitedError, ValidationError, PayloadTooLargeError
        """
        rate_limit = self._enforce(client_id, CREATE_DOCUMENT)

        self._validate_content(encrypted_content)

        is_valid, error = validate_write_token_hash(write_token_hash)
        if not is_valid:
            raise ValidationError(error)
        if write_token_hash is None and self.require_write_token:
            raise ValidationError("A write token hash is required")

        record = DocumentRecord(
            id=generate_id(),
            encrypted_content=encrypted_content,
            write_token_hash=write_token_hash,
            created_at=datetime.now(timezone.utc),
        )
        self.store.create(record)

        log_security_event(
            'DOCUMENT_CREATED',
            {'document_id': record.id,
             'size': len(encrypted_content),
             'writable': write_token_hash is not None},
            ip=client_id
        )

        return DocumentReceipt(record.id, rate_limit)

    def get(self, document_id, client_id='unknown'):
        """
        Fetch a document's ciphertext.

        Raises:
            RateLimitedError, NotFoundError
        """
        rate_limit = self._enforce(client_id, GET_DOCUMENT)

        record = None
        if is_valid_document_id(document_id):
            record = self.store.get(document_id)

        if record is None:
            log_security_event('DOCUMENT_NOT_FOUND',
                               {'action': 'read'}, ip=client_id)
            raise NotFoundError()

        return DocumentView(
            id=record.id,
            encrypted_content=record.encrypted_content,
            created_at=record.created_at,
            rate_limit=rate_limit,
        )

    def update(self, document_id, encrypted_content, write_token=None,
               client_id='unknown'):
        """
        Replace a document's ciphertext.

        Rate limited per document id rather than per client.

        Raises:
            NotFoundError, RateLimitedError, ValidationError,
            PayloadTooLargeError, UnauthorizedError
        """
        # Ids that cannot exist never get a rate limit window
        if not is_valid_document_id(document_id):
            log_security_event('DOCUMENT_NOT_FOUND',
                               {'action': 'update'}, ip=client_id)
            raise NotFoundError()

        rate_limit = self._enforce(document_id, UPDATE_DOCUMENT)

        self._validate_content(encrypted_content)

        if write_token is not None and not isinstance(write_token, str):
            raise ValidationError("Invalid write token")

        record = self.store.get(document_id)
        if record is None:
            log_security_event('DOCUMENT_NOT_FOUND',
                               {'action': 'update'}, ip=client_id)
            raise NotFoundError()

        self._authorize_write(record, write_token, client_id)

        # The row can vanish between get and update only if something
        # outside this service deletes it
        if not self.store.update_content(document_id, encrypted_content):
            raise NotFoundError()

        log_security_event(
            'DOCUMENT_UPDATED',
            {'document_id': document_id, 'size': len(encrypted_content)},
            ip=client_id
        )

        return DocumentReceipt(document_id, rate_limit)

    def _enforce(self, identifier, endpoint):
        if self.rate_limiter is None:
            return None
        try:
            return self.rate_limiter.enforce(identifier, endpoint)
        except RateLimitedError:
            log_security_event('RATE_LIMIT_EXCEEDED', {'endpoint': endpoint})
            raise

    def _validate_content(self, encrypted_content):
        is_valid, error = validate_encrypted_content(encrypted_content)
        if not is_valid:
            raise ValidationError(error)

        if not is_within_size_limit(encrypted_content, self.max_document_size):
            raise PayloadTooLargeError(
                f"Document too large (max {format_size(self.max_document_size)})")

    def _authorize_write(self, record, write_token, client_id):
        if record.write_token_hash is None:
            if self.allow_legacy_writes:
                return
            log_security_event('UNAUTHORIZED_WRITE',
                               {'document_id': record.id, 'reason': 'read_only'},
                               ip=client_id)
            raise UnauthorizedError("Document is read-only")

        if not write_token or not verify_write_token(write_token, record.write_token_hash):
            log_security_event('UNAUTHORIZED_WRITE',
                               {'document_id': record.id,
                                'reason': 'missing' if not write_token else 'mismatch'},
                               ip=client_id)
            raise UnauthorizedError()
