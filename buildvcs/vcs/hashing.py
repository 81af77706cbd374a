"""Content hashing utilities using stdlib hashlib (SHA-256)."""

from __future__ import annotations

import hashlib

# Separates hashed fields so ("ab", "c") and ("a", "bc") never collide
_FIELD_SEP = "\x1f"


class Hasher:
    """SHA-256 hashing for strings and ordered field tuples."""

    @staticmethod
    def hash_string(text: str) -> str:
        """Return the SHA-256 hex digest of *text*."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    @staticmethod
    def hash_fields(*fields: str) -> str:
        """Return a SHA-256 digest covering *fields* in order."""
        h = hashlib.sha256()
        for index, value in enumerate(fields):
            if index:
                h.update(_FIELD_SEP.encode("utf-8"))
            h.update(value.encode("utf-8"))
        return h.hexdigest()
