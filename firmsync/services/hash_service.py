"""Git blob hashing of local firmware files."""

from __future__ import annotations

import asyncio
import hashlib
import os
from typing import TYPE_CHECKING, NamedTuple

from firmsync.exceptions import LocalFileError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

_CHUNK_SIZE = 64 * 1024


class BlobDigest(NamedTuple):
    """Git blob object id of a file and the byte length it was computed over."""

    sha: str
    size: int


def _blob_header(size: int) -> bytes:
    return b"blob %d\x00" % size


def git_blob_hash_bytes(data: bytes) -> str:
    """Compute the git blob object id of an in-memory buffer."""
    sha = hashlib.sha1(usedforsecurity=False)
    sha.update(_blob_header(len(data)))
    sha.update(data)
    return sha.hexdigest()


def git_blob_digest(path: Path) -> BlobDigest:
    """Hash a file with git blob framing, returning the digest and the size it framed.

    The size is taken from ``fstat`` on the open handle, so both values
    describe the same file even if ``path`` is replaced concurrently.
    Raises LocalFileError if the file cannot be read.
    """
    sha = hashlib.sha1(usedforsecurity=False)
    try:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            sha.update(_blob_header(size))
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                sha.update(chunk)
    except OSError as exc:
        raise LocalFileError(path, exc) from exc
    return BlobDigest(sha.hexdigest(), size)


def git_blob_hash(path: Path) -> str:
    """Compute the git blob object id of a file.

    The digest equals the ``sha`` GitHub reports for the same content in a
    contents listing. Raises LocalFileError if the file cannot be read.
    """
    return git_blob_digest(path).sha


async def hash_files(paths: Sequence[Path]) -> list[BlobDigest]:
    """Hash files concurrently, returning digests in the order of ``paths``.

    The first failure cancels the remaining workers and is re-raised.
    """
    digests: list[BlobDigest | None] = [None] * len(paths)

    async def _hash_into(index: int, path: Path) -> None:
        digests[index] = await asyncio.to_thread(git_blob_digest, path)

    try:
        async with asyncio.TaskGroup() as tg:
            for index, path in enumerate(paths):
                tg.create_task(_hash_into(index, path))
    except ExceptionGroup as group:
        raise group.exceptions[0] from None
    return [digest for digest in digests if digest is not None]
