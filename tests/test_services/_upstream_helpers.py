"""In-memory stand-in for the GitHub contents API used by reconciler tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from firmsync.exceptions import DownloadError
from firmsync.schemas.manifest import RemoteEntry
from firmsync.services.hash_service import git_blob_hash_bytes

if TYPE_CHECKING:
    from pathlib import Path

BLOB_URL = "https://api.github.com/repos/raspberrypi/firmware/git/blobs/"


def make_entry(name: str, content: bytes, entry_type: str = "file") -> RemoteEntry:
    sha = git_blob_hash_bytes(content)
    return RemoteEntry(
        name=name,
        sha=sha,
        size=len(content),
        git_url=BLOB_URL + sha,
        type=entry_type,
    )


def listing_json(entries: list[RemoteEntry]) -> list[dict[str, object]]:
    return [entry.model_dump() for entry in entries]


class FakeUpstream:
    """Serves listings and blobs from dicts and records what was requested."""

    def __init__(self, listings: dict[str, list[tuple[str, bytes]]]) -> None:
        self.listings: dict[str, dict[str, RemoteEntry]] = {}
        self.blobs: dict[str, bytes] = {}
        for path, files in listings.items():
            entries = {name: make_entry(name, content) for name, content in files}
            self.listings[path] = entries
            for (_name, content), entry in zip(files, entries.values(), strict=True):
                self.blobs[entry.git_url] = content
        self.listing_calls: list[str] = []
        self.download_calls: list[str] = []
        self.delays: dict[str, float] = {}
        self.failures: set[str] = set()
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_listing(self, path: str) -> dict[str, RemoteEntry]:
        self.listing_calls.append(path)
        return dict(self.listings[path])

    async def download(self, entry: RemoteEntry, dest: Path) -> None:
        self.download_calls.append(entry.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(entry.name, 0.01))
            if entry.name in self.failures:
                msg = f"Downloading {entry.name} failed: connection reset"
                raise DownloadError(msg)
            dest.write_bytes(self.blobs[entry.git_url])
        finally:
            self.in_flight -= 1

    async def __aenter__(self) -> FakeUpstream:
        return self

    async def __aexit__(self, *args: object) -> None:
        return None
