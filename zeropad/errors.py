"""
Error taxonomy for Zeropad.

Every failure a caller can act on has its own class. Server-side errors carry
the HTTP status the API answers with and a short public message; the route
layer turns them into JSON responses. Client-side errors (decryption, bad
links) subclass ValueError so callers that only know about ValueError still
catch them.
"""


class ZeropadError(Exception):
    """Base class for all Zeropad errors."""

    status_code = 500
    message = 'An internal error occurred'

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(ZeropadError):
    """Missing, malformed or oversized input. Resend corrected input."""

    status_code = 400
    message = 'Invalid encrypted content'


class PayloadTooLargeError(ValidationError):
    """Encrypted content exceeds the configured maximum size."""

    status_code = 413
    message = 'Document too large'


class NotFoundError(ZeropadError):
    status_code = 404
    message = 'Document not found'


class UnauthorizedError(ZeropadError):
    """Write token missing or mismatched. Retrying with the same token is pointless."""

    status_code = 401
    message = 'Invalid or missing write token'


class RateLimitedError(ZeropadError):
    """
    Too many requests for one (identifier, endpoint) window.

    Transient: the caller may retry after `retry_after` seconds.
    """

    status_code = 429
    message = 'Too many requests. Please try again later.'

    def __init__(self, result=None, retry_after=None, message=None):
        super().__init__(message)
        self.result = result
        self.retry_after = retry_after


class DecryptionError(ZeropadError, ValueError):
    """Wrong key or corrupted ciphertext. No plaintext is ever returned."""

    status_code = 400
    message = 'Cannot decrypt document'


class MalformedCapabilityError(ZeropadError, ValueError):
    """The link fragment (or the key inside it) could not be parsed."""

    status_code = 400
    message = 'Invalid link'
