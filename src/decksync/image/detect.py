"""Image type sniffing and public URL detection."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse

SUPPORTED_MIMES: frozenset[str] = frozenset({"image/png", "image/jpeg", "image/gif"})

# Magic bytes of the formats a slide image may use.
_MAGIC_BYTES: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]


def sniff_mime(data: bytes) -> str | None:
    """Return the MIME type of *data* from its leading bytes, or ``None``."""
    for magic, mime in _MAGIC_BYTES:
        if data[: len(magic)] == magic:
            return mime
    return None


def is_public_url(url: str) -> bool:
    """Return ``True`` when *url* can be handed to the remote API as-is.

    A public URL is ``http``/``https`` with no credentials, no explicit
    port and a registrable host name: not an IP literal, not
    ``localhost`` and with an alphabetic top-level label. Images with a
    public source URL are never uploaded to storage.
    """
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    if parsed.username is not None or parsed.password is not None or port is not None:
        return False
    host = (parsed.hostname or "").rstrip(".")
    if not host:
        return False
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return False
    labels = host.split(".")
    if len(labels) < 2 or host == "localhost" or labels[-1] in ("localhost", "local", "internal"):
        return False
    tld = labels[-1]
    return len(tld) >= 2 and tld.isalpha()
