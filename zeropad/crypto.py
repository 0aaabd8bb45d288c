"""
Key and token primitives for Zeropad.

Documents are encrypted client-side with AES-256-GCM. The key never leaves
the client: it is exported as URL-safe base64 and carried in the URL
fragment. Write access is a separate random bearer token; the server only
ever stores its SHA-256 hash.

Wire formats:
    key          b64url(32 raw key bytes), unpadded
    ciphertext   b64url(IV (12 bytes) || ciphertext || GCM tag (16 bytes)), unpadded
    write token  b64url(32 random bytes), unpadded
    token hash   b64url(SHA-256(token)), unpadded

Reference: OWASP Cryptographic Storage Cheat Sheet
"""

import os
import base64
import binascii
import hashlib
import hmac
import secrets
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from zeropad.errors import DecryptionError, MalformedCapabilityError


KEY_LENGTH = 32     # AES-256
IV_LENGTH = 12      # 96-bit nonce recommended for GCM
TAG_LENGTH = 16
ID_BYTES = 16
WRITE_TOKEN_BYTES = 32


def b64url_encode(data: bytes) -> str:
    """Encode bytes as URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def b64url_decode(value: str) -> bytes:
    """
    Decode unpadded URL-safe base64.

    Only the canonical encoding is accepted: the decoded bytes must encode
    back to exactly `value`. This rejects standard-alphabet characters,
    padding and altered trailing bits.

    Raises:
        ValueError: If `value` is not canonical unpadded URL-safe base64
    """
    if not isinstance(value, str):
        raise ValueError("Expected a base64 string")

    try:
        padded = value.encode('ascii') + b'=' * (-len(value) % 4)
        data = base64.urlsafe_b64decode(padded)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise ValueError(f"Invalid base64: {e}")

    if b64url_encode(data) != value:
        raise ValueError("Non-canonical base64 encoding")

    return data


# ----------------------------------------------------------------------------
# Encryption keys
# ----------------------------------------------------------------------------

def generate_key() -> bytes:
    """Generate a random 256-bit AES-GCM key for one document."""
    return AESGCM.generate_key(bit_length=KEY_LENGTH * 8)


def export_key(key: bytes) -> str:
    """Export a key as URL-safe base64 for embedding in a link fragment."""
    return b64url_encode(key)


def import_key(key_string: str) -> bytes:
    """
    Import a key previously produced by export_key.

    Raises:
        MalformedCapabilityError: If the string is not a valid 256-bit key
    """
    try:
        key = b64url_decode(key_string)
    except ValueError:
        raise MalformedCapabilityError("Invalid encryption key")

    if len(key) != KEY_LENGTH:
        raise MalformedCapabilityError("Invalid encryption key")

    return key


# ----------------------------------------------------------------------------
# Authenticated encryption
# ----------------------------------------------------------------------------

def encrypt(plaintext: str, key: bytes) -> str:
    """
    Encrypt text with AES-GCM under a fresh random IV.

    Args:
        plaintext: Text to encrypt (encoded as UTF-8)
        key: 32-byte key from generate_key or import_key

    Returns:
        b64url(IV || ciphertext || tag). Two calls with the same arguments
        return different strings.
    """
    iv = os.urandom(IV_LENGTH)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(iv, plaintext.encode('utf-8'), None)
    return b64url_encode(iv + ciphertext)


def decrypt(ciphertext: str, key: bytes) -> str:
    """
    Decrypt a blob produced by encrypt.

    Raises:
        DecryptionError: Wrong key, corrupted or truncated blob, or a
            plaintext that is not UTF-8. No partial plaintext is returned.
    """
    try:
        blob = b64url_decode(ciphertext)
    except ValueError:
        raise DecryptionError()

    if len(blob) < IV_LENGTH + TAG_LENGTH:
        raise DecryptionError()

    iv, body = blob[:IV_LENGTH], blob[IV_LENGTH:]

    try:
        plaintext_bytes = AESGCM(key).decrypt(iv, body, None)
        return plaintext_bytes.decode('utf-8')
    except (InvalidTag, UnicodeDecodeError, ValueError):
        # ValueError covers keys of the wrong length
        raise DecryptionError()


# ----------------------------------------------------------------------------
# Identifiers and write tokens
# ----------------------------------------------------------------------------

def generate_id() -> str:
    """Random 128-bit document id as 32 lowercase hex characters."""
    return secrets.token_hex(ID_BYTES)


def generate_write_token() -> str:
    """Random 256-bit bearer token granting write access to one document."""
    return b64url_encode(os.urandom(WRITE_TOKEN_BYTES))


def hash_write_token(token: str) -> str:
    """SHA-256 of the token, URL-safe base64. This is all the server stores."""
    digest = hashlib.sha256(token.encode('utf-8')).digest()
    return b64url_encode(digest)


def verify_write_token(token, stored_hash) -> bool:
    """
    Check a write token against a stored hash.

    Uses hmac.compare_digest so the comparison time does not depend on where
    the hashes first differ.

    Returns:
        True if the token hashes to stored_hash, False otherwise (including
        for non-string input)
    """
    if not isinstance(token, str) or not isinstance(stored_hash, str):
        return False

    computed = hash_write_token(token)
    return hmac.compare_digest(computed.encode('utf-8'), stored_hash.encode('utf-8'))
