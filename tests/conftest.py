"""Shared test fixtures for firmsync."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from firmsync.services.sync_service import SyncConfig

if TYPE_CHECKING:
    from pathlib import Path

_CREDENTIAL_ENV_VARS = (
    "GITHUB_USER",
    "GITHUB_AUTH_TOKEN",
    "GITHUB_TOKEN",
    "GH_USER",
    "GH_AUTH_TOKEN",
    "FIRMWARE_DIR",
    "FIRMWARE_REF",
    "MIRROR_OVERLAYS",
    "DEBUG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's environment and .env file out of every test."""
    for name in _CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def firmware_dir(tmp_path: Path) -> Path:
    path = tmp_path / "firmware"
    path.mkdir()
    return path


@pytest.fixture
def sync_config(firmware_dir: Path) -> SyncConfig:
    return SyncConfig(firmware_dir=firmware_dir, download_deadline_seconds=5.0)
