"""Archive digests recorded in the source cache marker and the run log."""

from __future__ import annotations

import hashlib
from typing import Final

from ort_builder.utils.fs import PathLike

_CHUNK_BYTES: Final[int] = 1 << 20


def sha256_file(path: PathLike, *, chunk_size: int = _CHUNK_BYTES) -> str:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with open(path, "rb") as stream:
        for chunk in iter(lambda: stream.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


__all__ = ["sha256_file"]
