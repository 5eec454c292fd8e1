"""Content fingerprints for image bytes.

Two images with the same fingerprint are treated as the same picture by
the equivalence check and the image cache. MD5 is used for speed; the
digests are never used for anything security related.
"""

from __future__ import annotations

import hashlib


def fingerprint(data: bytes) -> str:
    """Return the hex-encoded MD5 digest of *data*.

    Examples
    --------
    >>> fingerprint(b"hello")
    '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.md5(data).hexdigest()
