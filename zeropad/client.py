"""
Python client for a Zeropad server.

Does on the client everything the server must never do: generates keys and
write tokens, encrypts before upload and decrypts after download. Only
ciphertext and the write token hash (on create) or the write token itself
(on update) are sent.

Usage:
    client = ZeropadClient('http://localhost:5001')
    capability = client.share('# Hello')
    link = edit_url('http://localhost:5001', capability)
    text = client.open(decode_fragment(fragment))
"""

import requests

from zeropad.capability import Capability
from zeropad.crypto import (
    decrypt, encrypt, export_key, generate_key, generate_write_token,
    hash_write_token, import_key
)
from zeropad.errors import (
    NotFoundError, PayloadTooLargeError, RateLimitedError, UnauthorizedError,
    ValidationError
)
from zeropad.history import HistoryEntry, extract_title, now_millis


STATUS_ERRORS = {
    400: ValidationError,
    401: UnauthorizedError,
    404: NotFoundError,
    413: PayloadTooLargeError,
}


class ZeropadClient:
    """
    Args:
        base_url: Server root, e.g. 'https://pad.example.com'
        session: requests.Session (or compatible) to send requests with
        history: Optional DocumentHistory to record shared, opened and saved documents
        timeout: Per-request timeout in seconds
    """

    def __init__(self, base_url, session=None, history=None, timeout=10):
        self.base_url = base_url.rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.history = history
        self.timeout = timeout

    def share(self, plaintext: str) -> Capability:
        """
        Encrypt and upload a new document.

        Returns:
            Writable Capability (id, exported key, write token)
        """
        key = generate_key()
        write_token = generate_write_token()

        response = self.session.post(
            f"{self.base_url}/documents",
            json={
                'encryptedContent': encrypt(plaintext, key),
                'writeTokenHash': hash_write_token(write_token),
            },
            timeout=self.timeout,
        )
        self._raise_for_status(response)

        capability = Capability(response.json()['id'], export_key(key), write_token)
        self._remember(capability, plaintext, created=True)
        return capability

    def open(self, capability: Capability) -> str:
        """
        Download and decrypt a document, and record it in history.

        Raises:
            MalformedCapabilityError: The key in the capability is invalid
            DecryptionError: Wrong key or corrupted ciphertext
        """
        key = import_key(capability.key)

        response = self.session.get(
            f"{self.base_url}/documents/{capability.document_id}",
            timeout=self.timeout,
        )
        self._raise_for_status(response)

        plaintext = decrypt(response.json()['encryptedContent'], key)
        self._remember(capability, plaintext, created=False)
        return plaintext

    def save(self, capability: Capability, plaintext: str) -> None:
        """Re-encrypt under a fresh IV and replace the stored document."""
        key = import_key(capability.key)

        body = {'encryptedContent': encrypt(plaintext, key)}
        if capability.write_token:
            body['writeToken'] = capability.write_token

        response = self.session.put(
            f"{self.base_url}/documents/{capability.document_id}",
            json=body,
            timeout=self.timeout,
        )
        self._raise_for_status(response)

        self._remember(capability, plaintext, created=False)

    def _raise_for_status(self, response):
        if response.status_code < 400:
            return

        try:
            body = response.json()
        except ValueError:
            body = None
        message = body.get('error') if isinstance(body, dict) else None

        if response.status_code == 429:
            retry_after = response.headers.get('Retry-After')
            raise RateLimitedError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                message=message,
            )

        error_class = STATUS_ERRORS.get(response.status_code)
        if error_class is not None:
            raise error_class(message)

        response.raise_for_status()

    def _remember(self, capability, plaintext, created):
        if self.history is None:
            return

        now = now_millis()
        existing = self.history.get(capability.document_id)
        created_at = now if created or existing is None else existing.created_at
        # Opening a read-only link keeps a previously remembered write token
        write_token = capability.write_token or (existing.write_token if existing else '')

        self.history.save(HistoryEntry(
            id=capability.document_id,
            encryption_key=capability.key,
            write_token=write_token,
            title=extract_title(plaintext),
            created_at=created_at,
            last_modified=now,
        ))
