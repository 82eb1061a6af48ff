"""Error types raised by the firmware sync services.

Convention:
- Every error that aborts a run derives from ``FirmwareSyncError``. The CLI
  catches this base class, logs the message at CRITICAL and exits non-zero.
- ``ValueError`` is reserved for invalid user input (malformed credentials,
  bad configuration values) and is reported the same way by the CLI.
- Obsolete local files are not errors; they are logged as warnings.
"""

from __future__ import annotations


class FirmwareSyncError(Exception):
    """Base class for errors that abort a sync run."""


class LocalFileError(FirmwareSyncError):
    """Raised when a local firmware file cannot be opened, stat'd or read."""

    def __init__(self, path: object, cause: OSError) -> None:
        self.path = str(path)
        self.cause = cause
        super().__init__(f"Cannot read {self.path}: {cause}")


class RemoteError(FirmwareSyncError):
    """Raised when the upstream API answers with a non-OK status or is unreachable.

    ``status_code`` is None when no response was received at all.
    """

    def __init__(self, url: str, status_code: int | None, body: str = "") -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        if status_code is None:
            msg = f"Request to {url} failed: {body}"
        else:
            msg = f"Unexpected status code from {url}: got {status_code}, want 200 (body: {body})"
        super().__init__(msg)


class ManifestDecodeError(FirmwareSyncError):
    """Raised when a contents listing is not a well-formed JSON array of entries."""


class DownloadError(FirmwareSyncError):
    """Raised when fetching or writing a firmware file fails."""


class SyncTimeoutError(FirmwareSyncError, TimeoutError):
    """Raised when the download phase exceeds its shared deadline."""
