"""
Security module: digests and tokens used by connection codes.

Nothing here authenticates a peer. The short signature only makes small edits
to a code (a changed port, say) visibly change the shareable string.
"""

import base64
import logging
import os

from cryptography.hazmat.primitives import hashes

logger = logging.getLogger(__name__)

# Truncated digest length for the code signature (16 base64url chars)
SIGNATURE_SIZE = 12
# Random bytes behind a generated shared secret
SECRET_SIZE = 9


def sha256(data: bytes) -> bytes:
    """Return the SHA-256 digest of ``data``."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize()


def b64url_encode(data: bytes) -> str:
    """base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def short_signature(payload: str) -> str:
    """
    Sign a code payload: SHA-256 over the UTF-8 payload, truncated to
    12 bytes, base64url-encoded without padding.
    """
    return b64url_encode(sha256(payload.encode("utf-8"))[:SIGNATURE_SIZE])


def generate_secret() -> str:
    """
    Generate a random shared secret for plain connection strings.

    The alphabet is base64url, so the result never contains ``:``.
    """
    return b64url_encode(os.urandom(SECRET_SIZE))
