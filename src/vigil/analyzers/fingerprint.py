"""Content fingerprinting for the analysis cache.

The digest is a change-detection token, not a security control.
"""

import hashlib


def fingerprint(content: bytes) -> str:
    """Return the SHA-1 hex digest of raw file bytes.

    Args:
        content: Raw file content

    Returns:
        40-character lowercase hex digest
    """
    return hashlib.sha1(content, usedforsecurity=False).hexdigest()
