"""Small helpers shared across decksync."""

from .hashing import fingerprint

__all__ = ["fingerprint"]
