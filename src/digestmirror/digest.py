"""SHA-512 content digests for local files."""

from __future__ import annotations

import hashlib
from pathlib import Path

from digestmirror.errors import LocalIOError

ALGORITHM = "sha512"
DEFAULT_CHUNK_SIZE = 64 * 1024


def compute_digest(content: bytes) -> str:
    """SHA-512 hex digest of in-memory content."""
    return hashlib.sha512(content).hexdigest()


def compute_file_digest(path: Path | str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Stream *path* in fixed-size chunks and return its SHA-512 hex digest.

    Memory use is bounded by *chunk_size* regardless of file size. Any
    failure to open or read the file surfaces as LocalIOError.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    sha = hashlib.sha512()
    try:
        with open(path, "rb") as f:
            while chunk := f.read(chunk_size):
                sha.update(chunk)
    except OSError as e:
        raise LocalIOError("digest", path, e) from e
    return sha.hexdigest()
