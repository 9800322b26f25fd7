"""Content digests used to detect drift between the catalog and the files."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Union

from blake3 import blake3

DIGEST_SIZE = 32
CHUNK_SIZE = 1024 * 1024

# Signature of the file digest collaborator held by a Library
FileDigest = Callable[[Path], bytes]


def content_digest(data: bytes) -> bytes:
    """32-byte blake3 digest of ``data``."""
    return blake3(data).digest()


def file_digest(path: Union[str, Path], chunk: int = CHUNK_SIZE) -> bytes:
    """Stream ``path`` through blake3; same result as content_digest(bytes)."""
    h = blake3()
    with open(path, "rb") as f:
        while True:
            b = f.read(chunk)
            if not b:
                break
            h.update(b)
    return h.digest()
