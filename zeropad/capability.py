"""
URL fragment codec for document capabilities.

A capability is everything needed to reach a document: its id, the
encryption key and, for editors, the write token. It travels in the URL
fragment, which browsers never send to the server.

Fragment grammar:
    <documentId>#<encryptionKey>                       read-only
    <documentId>#<encryptionKey>&write=<writeToken>    read-write

This module is purely syntactic. It does not validate keys or tokens
cryptographically and never touches the network.
"""

from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import parse_qsl

from zeropad.errors import MalformedCapabilityError


WRITE_PARAM = 'write'


@dataclass(frozen=True)
class Capability:
    document_id: str
    key: str
    write_token: Optional[str] = None

    @property
    def is_writable(self):
        return bool(self.write_token)

    def read_only(self):
        """Same document and key, without write access."""
        return replace(self, write_token=None)


def encode_fragment(capability: Capability) -> str:
    """
    Encode a capability into a fragment string (without the leading '#').

    Raises:
        MalformedCapabilityError: If the id or key is missing
    """
    if not capability.document_id or not capability.key:
        raise MalformedCapabilityError()

    fragment = f"{capability.document_id}#{capability.key}"
    if capability.write_token:
        fragment += f"&{WRITE_PARAM}={capability.write_token}"
    return fragment


def decode_fragment(fragment: str) -> Capability:
    """
    Parse a fragment produced by encode_fragment.

    A single leading '#' is ignored, so the value of `location.hash` can be
    passed as-is. An empty `write=` parameter yields a read-only capability.

    Raises:
        MalformedCapabilityError: Missing id, missing key, or not a string
    """
    if not isinstance(fragment, str):
        raise MalformedCapabilityError()

    if fragment.startswith('#'):
        fragment = fragment[1:]

    document_id, sep, remainder = fragment.partition('#')
    if not sep or not document_id:
        raise MalformedCapabilityError()

    key, _, params = remainder.partition('&')
    if not key:
        raise MalformedCapabilityError()

    write_token = None
    for name, value in parse_qsl(params, keep_blank_values=True):
        if name == WRITE_PARAM:
            write_token = value or None
            break

    return Capability(document_id, key, write_token)


def edit_url(base_url: str, capability: Capability) -> str:
    """
    Link that opens the document in the editor with write access.

    Raises:
        MalformedCapabilityError: If the capability has no write token
    """
    if not capability.is_writable:
        raise MalformedCapabilityError("Capability has no write token")
    return f"{base_url.rstrip('/')}/#{encode_fragment(capability)}"


def view_url(base_url: str, capability: Capability) -> str:
    """Read-only link. Never carries the write token."""
    if not capability.document_id or not capability.key:
        raise MalformedCapabilityError()
    return f"{base_url.rstrip('/')}/view/{capability.document_id}#{capability.key}"
