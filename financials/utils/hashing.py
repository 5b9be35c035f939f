"""Content fingerprints used as extraction cache keys."""

import hashlib

FINGERPRINT_LENGTH = 16


def hash_content(content: bytes) -> str:
    """Return a stable fingerprint of a file's bytes.

    Only the bytes participate; two files with identical content but
    different names share one fingerprint.

    Args:
        content: Raw file bytes

    Returns:
        str: Truncated SHA-256 hex digest
    """
    return hashlib.sha256(content).hexdigest()[:FINGERPRINT_LENGTH]
