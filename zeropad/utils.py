"""
Input validation helpers for Zeropad.

The server cannot inspect document content (it is ciphertext), so validation
is limited to shape: type, alphabet, length.
"""

import re


# URL-safe base64 as produced by the client. The standard alphabet and
# padding are tolerated for older clients.
ENCRYPTED_CONTENT_PATTERN = re.compile(r'^[A-Za-z0-9_\-+/]+={0,2}$')

# 128-bit ids rendered as lowercase hex
DOCUMENT_ID_PATTERN = re.compile(r'^[0-9a-f]{32}$')

# SHA-256 or longer digests, URL-safe base64 without padding
WRITE_TOKEN_HASH_PATTERN = re.compile(r'^[A-Za-z0-9_\-]{43,128}$')


def validate_encrypted_content(content):
    """
    Validate the encryptedContent field of a request body.

    Size is checked separately (see is_within_size_limit) because it maps to
    a different status code.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not content or not isinstance(content, str):
        return False, "Invalid encrypted content"

    if not ENCRYPTED_CONTENT_PATTERN.fullmatch(content):
        return False, "Encrypted content must be base64"

    return True, None


def is_within_size_limit(content, max_size):
    """Content length in characters (base64 is ASCII, so also bytes)."""
    return len(content) <= max_size


def validate_write_token_hash(token_hash):
    """
    Validate an optional writeTokenHash field.

    Returns:
        Tuple of (is_valid, error_message). None is valid (no write token).
    """
    if token_hash is None:
        return True, None

    if not isinstance(token_hash, str) or not WRITE_TOKEN_HASH_PATTERN.fullmatch(token_hash):
        return False, "Invalid write token hash"

    return True, None


def is_valid_document_id(document_id):
    return isinstance(document_id, str) and bool(DOCUMENT_ID_PATTERN.fullmatch(document_id))


def format_size(num_bytes):
    """Human readable size for error messages, e.g. 10485760 -> '10 MiB'."""
    for unit in ('bytes', 'KiB', 'MiB', 'GiB'):
        if num_bytes < 1024 or unit == 'GiB':
            if unit == 'bytes':
                return f"{num_bytes} bytes"
            return f"{num_bytes:g} {unit}"
        num_bytes /= 1024
