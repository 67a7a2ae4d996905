"""Content digests for distributed artifacts."""

import hashlib


def sha256_hex(data: bytes) -> str:
    """Return the lowercase hex SHA-256 of ``data``."""
    return hashlib.sha256(data).hexdigest()


def normalize_digest(value: str) -> str:
    """Normalize a claimed digest for comparison.

    Args:
        value: Hex digest, optionally prefixed with ``sha256:``

    Returns:
        Lowercase hex without prefix or surrounding whitespace
    """
    normalized = value.strip().lower()
    if normalized.startswith("sha256:"):
        normalized = normalized[len("sha256:"):]
    return normalized
