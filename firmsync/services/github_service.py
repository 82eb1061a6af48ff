"""GitHub contents API client: pinned-revision listings and raw blob downloads."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable

import httpx
from pydantic import ValidationError

from firmsync.exceptions import DownloadError, ManifestDecodeError, RemoteError
from firmsync.schemas.manifest import ListingAdapter, RemoteEntry

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

RAW_MEDIA_TYPE = "application/vnd.github.v3.raw"
_BODY_PREVIEW_CHARS = 500


@runtime_checkable
class ManifestSource(Protocol):
    """Anything that can list a directory at the pinned revision."""

    async def fetch_listing(self, path: str) -> dict[str, RemoteEntry]:
        """Return the listing of ``path`` keyed by entry name."""
        ...


@runtime_checkable
class ContentFetcher(Protocol):
    """Anything that can write a remote entry's raw content to a local file."""

    async def download(self, entry: RemoteEntry, dest: Path) -> None:
        """Fetch ``entry`` and overwrite ``dest`` with its bytes."""
        ...


def listing_url(api_url: str, repo: str, path: str, ref: str) -> str:
    """Build the contents URL of ``path`` in ``repo`` at ``ref``."""
    return f"{api_url.rstrip('/')}/repos/{repo}/contents/{path.strip('/')}?ref={ref}"


def decode_listing(payload: bytes | str) -> dict[str, RemoteEntry]:
    """Decode a contents listing into a mapping keyed by name.

    Later entries replace earlier ones with the same name.
    """
    try:
        entries = ListingAdapter.validate_json(payload)
    except ValidationError as exc:
        msg = f"Malformed contents listing: {exc.error_count()} validation error(s): {exc}"
        raise ManifestDecodeError(msg) from exc
    return {entry.name: entry for entry in entries}


class GitHubClient:
    """Talks to the GitHub contents API for one repository at one revision."""

    def __init__(
        self,
        repo: str,
        ref: str,
        *,
        api_url: str = "https://api.github.com",
        auth: httpx.Auth | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.repo = repo
        self.ref = ref
        self.api_url = api_url.rstrip("/")
        self.client = httpx.AsyncClient(
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": "firmsync"},
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def fetch_listing(self, path: str) -> dict[str, RemoteEntry]:
        """Fetch the contents listing of ``path`` at the pinned revision."""
        url = listing_url(self.api_url, self.repo, path, self.ref)
        logger.debug("Listing %s", url)
        try:
            resp = await self.client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise RemoteError(url, None, str(exc)) from exc
        if resp.status_code != httpx.codes.OK:
            raise RemoteError(url, resp.status_code, resp.text[:_BODY_PREVIEW_CHARS])
        return decode_listing(resp.content)

    async def download(self, entry: RemoteEntry, dest: Path) -> None:
        """Stream the raw blob of ``entry`` into ``dest``, truncating it first."""
        url = entry.git_url
        try:
            async with self.client.stream(
                "GET", url, headers={"Accept": RAW_MEDIA_TYPE}
            ) as resp:
                if resp.status_code != httpx.codes.OK:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise RemoteError(url, resp.status_code, body[:_BODY_PREVIEW_CHARS])
                with open(dest, "wb") as f:
                    async for chunk in resp.aiter_bytes():
                        f.write(chunk)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            msg = f"Downloading {entry.name} from {url} failed: {exc}"
            raise DownloadError(msg) from exc
        except OSError as exc:
            msg = f"Writing {dest} failed: {exc}"
            raise DownloadError(msg) from exc
