"""Firmware sync configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from firmsync.services.sync_service import SyncConfig

# Git commit of https://github.com/raspberrypi/firmware to take firmware files from.
DEFAULT_FIRMWARE_REF = "72b44d850dc8c2307cf0dccea00928702e16bc12"


class Settings(BaseSettings):
    """firmsync settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    debug: bool = False

    # Upstream
    api_url: str = "https://api.github.com"
    firmware_repo: str = "raspberrypi/firmware"
    firmware_ref: str = DEFAULT_FIRMWARE_REF
    firmware_path: str = "boot"

    # Local mirror
    firmware_dir: Path = Path(".")
    patterns: list[str] = Field(default_factory=lambda: ["*.elf", "*.bin", "*.dat"])
    overlays_dir: str = "overlays"
    overlay_patterns: list[str] = Field(default_factory=lambda: ["*.dtbo"])
    mirror_overlays: bool = False

    # Download phase
    max_concurrent_downloads: int = Field(default=5, ge=1)
    download_deadline_seconds: float = Field(default=60.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Credentials
    github_user: str = Field(
        default="", validation_alias=AliasChoices("github_user", "gh_user")
    )
    github_auth_token: str = Field(
        default="", validation_alias=AliasChoices("github_auth_token", "gh_auth_token")
    )
    github_token: str = ""

    def sync_config(self) -> SyncConfig:
        """Build the reconciler configuration from these settings."""
        return SyncConfig(
            firmware_dir=self.firmware_dir,
            listing_path=self.firmware_path.strip("/"),
            patterns=tuple(self.patterns),
            overlays_dir=self.overlays_dir,
            overlay_patterns=tuple(self.overlay_patterns),
            mirror_overlays=self.mirror_overlays,
            max_concurrent_downloads=self.max_concurrent_downloads,
            download_deadline_seconds=self.download_deadline_seconds,
        )
