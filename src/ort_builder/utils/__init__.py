"""Utility exports for filesystem and hashing helpers."""

from ort_builder.utils.fs import atomic_write, is_within
from ort_builder.utils.hashing import sha256_file

__all__ = [
    "atomic_write",
    "is_within",
    "sha256_file",
]
