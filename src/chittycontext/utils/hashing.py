"""Hashing utilities for client provenance."""

import hashlib
from typing import Optional

IP_HASH_LENGTH = 16


def calculate_content_hash(content: str | bytes) -> str:
    """
    Calculate SHA-256 hash of content.

    Args:
        content: String or bytes content to hash

    Returns:
        Hexadecimal string representation of the SHA-256 hash (64 characters)
    """
    if isinstance(content, str):
        content = content.encode("utf-8")

    return hashlib.sha256(content).hexdigest()


def hash_ip(ip: Optional[str]) -> Optional[str]:
    """
    One-way hash of a client address.

    The raw address is never stored; only a truncated SHA-256 digest that is
    stable for the same address.

    Args:
        ip: Client address as reported by the edge, or None

    Returns:
        First 16 hex characters of the digest, or None when no address is given
    """
    if not ip:
        return None
    return calculate_content_hash(ip.strip())[:IP_HASH_LENGTH]
