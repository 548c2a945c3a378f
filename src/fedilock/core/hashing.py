"""
Deterministic hashing of lock keys.

The semaphore driver maps an arbitrary lock key onto a fixed-length file
name; the same key must always yield the same name on a host, whatever
process computes it.

Examples:
    >>> compute_hash("poller:contact-7") == compute_hash("poller:contact-7")
    True
    >>> len(compute_hash("poller:contact-7", length=16))
    16

Tags:
    hashing, locking, fedilock
"""

import hashlib
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute a deterministic SHA-256 hex digest from values.

    Values are converted to strings and joined with ``|``, so the hash is
    order-dependent: ``compute_hash("a", "b") != compute_hash("b", "a")``.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits, max 64)

    Returns:
        Lowercase hex string of ``length`` characters
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:length]


__all__ = ["compute_hash"]
