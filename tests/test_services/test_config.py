"""Tests for firmsync configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from firmsync.config import DEFAULT_FIRMWARE_REF, Settings
from firmsync.services.sync_service import SyncConfig


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.firmware_ref == DEFAULT_FIRMWARE_REF
        assert s.firmware_repo == "raspberrypi/firmware"
        assert s.firmware_path == "boot"
        assert s.patterns == ["*.elf", "*.bin", "*.dat"]
        assert s.max_concurrent_downloads == 5
        assert s.download_deadline_seconds == 60.0
        assert s.mirror_overlays is False
        assert s.github_user == ""

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("FIRMWARE_DIR", str(tmp_path))
        monkeypatch.setenv("MIRROR_OVERLAYS", "true")
        monkeypatch.setenv("PATTERNS", '["*.elf"]')
        s = Settings(_env_file=None)
        assert s.firmware_dir == tmp_path
        assert s.mirror_overlays is True
        assert s.patterns == ["*.elf"]

    def test_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("FIRMWARE_REF=abc123\nGITHUB_TOKEN=ghp_x\n")
        s = Settings(_env_file=env_file)
        assert s.firmware_ref == "abc123"
        assert s.github_token == "ghp_x"

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_concurrent_downloads=0)

    def test_rejects_non_positive_deadline(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, download_deadline_seconds=0)


class TestSyncConfig:
    def test_sync_config_from_settings(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            firmware_dir=tmp_path,
            firmware_path="/boot/",
            mirror_overlays=True,
            max_concurrent_downloads=2,
        )
        config = s.sync_config()
        assert config == SyncConfig(
            firmware_dir=tmp_path,
            listing_path="boot",
            patterns=("*.elf", "*.bin", "*.dat"),
            overlays_dir="overlays",
            overlay_patterns=("*.dtbo",),
            mirror_overlays=True,
            max_concurrent_downloads=2,
            download_deadline_seconds=60.0,
        )

    def test_sync_config_validates_limits(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="max_concurrent_downloads"):
            SyncConfig(firmware_dir=tmp_path, max_concurrent_downloads=0)
        with pytest.raises(ValueError, match="download_deadline_seconds"):
            SyncConfig(firmware_dir=tmp_path, download_deadline_seconds=0)
