"""sha3-512 helpers for account ids and migration checksums."""

from __future__ import annotations

import hashlib
from pathlib import Path


def sha3_512_hex(value: str | bytes, iterations: int = 1) -> str:
    """Hex sha3-512 digest, re-hashing the hex output ``iterations`` times in total."""
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")

    data = value.encode("utf-8") if isinstance(value, str) else value
    digest = hashlib.sha3_512(data).hexdigest()
    for _ in range(iterations - 1):
        digest = hashlib.sha3_512(digest.encode("utf-8")).hexdigest()
    return digest


def file_checksum(path: str | Path) -> str:
    return sha3_512_hex(Path(path).read_bytes())
