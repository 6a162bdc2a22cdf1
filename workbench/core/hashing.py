from __future__ import annotations

import hashlib


def sha256_bytes(payload: bytes) -> str:
    """Hex SHA-256 digest of the exact bytes that will be uploaded."""

    return hashlib.sha256(payload).hexdigest()


def sha256_text(text: str, encoding: str = "utf-8") -> str:
    return sha256_bytes(text.encode(encoding))
