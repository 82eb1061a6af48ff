"""Sync service: local scan, plan computation against the upstream listing, and downloads."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from firmsync.exceptions import DownloadError, SyncTimeoutError
from firmsync.services.hash_service import hash_files

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from pathlib import Path

    from firmsync.schemas.manifest import RemoteEntry
    from firmsync.services.github_service import ContentFetcher, ManifestSource

logger = logging.getLogger(__name__)


class DownloadState(StrEnum):
    """Lifecycle of a single download task. The last three states are final."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class SyncConfig:
    """Everything the reconciler needs to know about one deployment."""

    firmware_dir: Path
    listing_path: str = "boot"
    patterns: tuple[str, ...] = ("*.elf", "*.bin", "*.dat")
    overlays_dir: str = "overlays"
    overlay_patterns: tuple[str, ...] = ("*.dtbo",)
    mirror_overlays: bool = False
    max_concurrent_downloads: int = 5
    download_deadline_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_concurrent_downloads < 1:
            msg = f"max_concurrent_downloads must be >= 1, got {self.max_concurrent_downloads}"
            raise ValueError(msg)
        if self.download_deadline_seconds <= 0:
            msg = f"download_deadline_seconds must be > 0, got {self.download_deadline_seconds}"
            raise ValueError(msg)


@dataclass(frozen=True)
class LocalFile:
    """A firmware file found on disk, with its git blob digest."""

    rel_path: str
    path: Path
    size: int
    digest: str


@dataclass(frozen=True)
class DownloadTask:
    """Fetch ``entry`` and overwrite ``dest`` with it."""

    rel_path: str
    dest: Path
    entry: RemoteEntry
    local_digest: str | None = None


@dataclass
class SyncPlan:
    """The computed sync plan. Each path lands in exactly one bucket."""

    to_download: list[DownloadTask] = field(default_factory=list)
    obsolete: list[str] = field(default_factory=list)
    no_change: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    _seen: set[str] = field(default_factory=set, repr=False, compare=False)

    def _claim(self, rel_path: str) -> None:
        if rel_path in self._seen:
            msg = f"Path planned twice: {rel_path}"
            raise ValueError(msg)
        self._seen.add(rel_path)

    def __contains__(self, rel_path: object) -> bool:
        return rel_path in self._seen

    def add_download(self, task: DownloadTask) -> None:
        self._claim(task.rel_path)
        self.to_download.append(task)

    def add_obsolete(self, rel_path: str) -> None:
        self._claim(rel_path)
        self.obsolete.append(rel_path)

    def add_no_change(self, rel_path: str) -> None:
        self._claim(rel_path)
        self.no_change.append(rel_path)

    def add_skipped(self, rel_path: str) -> None:
        self._claim(rel_path)
        self.skipped.append(rel_path)

    def sort(self) -> None:
        self.to_download.sort(key=lambda task: task.rel_path)
        self.obsolete.sort()
        self.no_change.sort()
        self.skipped.sort()


@dataclass
class SyncResult:
    """Outcome of a completed download phase."""

    plan: SyncPlan
    downloaded: list[str] = field(default_factory=list)
    states: dict[str, DownloadState] = field(default_factory=dict)


def scan_local_files(
    root: Path,
    patterns: Iterable[str],
    subdir: str | None = None,
) -> list[Path]:
    """Expand glob patterns in ``root`` (or ``root/subdir``), returning regular files."""
    base = root / subdir if subdir else root
    found: set[Path] = set()
    for pattern in patterns:
        found.update(path for path in base.glob(pattern) if path.is_file())
    return sorted(found)


async def collect_local_files(root: Path, paths: Sequence[Path]) -> dict[str, LocalFile]:
    """Hash ``paths`` concurrently and key the results by POSIX path relative to ``root``."""
    digests = await hash_files(paths)
    entries: dict[str, LocalFile] = {}
    for path, (digest, size) in zip(paths, digests, strict=True):
        rel_path = path.relative_to(root).as_posix()
        entries[rel_path] = LocalFile(rel_path=rel_path, path=path, size=size, digest=digest)
        logger.debug("%s: %d bytes, blob %s", rel_path, size, digest)
    return entries


def _is_safe_name(name: str) -> bool:
    """Return True when a remote entry name is a plain file name."""
    return bool(name) and name not in {".", ".."} and "/" not in name and "\\" not in name


def compute_sync_plan(
    local: Mapping[str, LocalFile],
    remote: Mapping[str, RemoteEntry],
    plan: SyncPlan | None = None,
) -> SyncPlan:
    """Plan updates for files already present locally.

    Each local file is looked up by base name. Files missing upstream are
    reported as obsolete and left on disk.
    """
    if plan is None:
        plan = SyncPlan()

    for rel_path in sorted(local):
        local_file = local[rel_path]
        entry = remote.get(PurePosixPath(rel_path).name)
        if entry is None:
            logger.warning("File %r not found upstream, obsolete?", rel_path)
            plan.add_obsolete(rel_path)
        elif local_file.digest == entry.sha:
            plan.add_no_change(rel_path)
        else:
            plan.add_download(
                DownloadTask(
                    rel_path=rel_path,
                    dest=local_file.path,
                    entry=entry,
                    local_digest=local_file.digest,
                )
            )

    plan.sort()
    return plan


def compute_mirror_plan(
    local: Mapping[str, LocalFile],
    remote: Mapping[str, RemoteEntry],
    root: Path,
    subdir: str,
    plan: SyncPlan | None = None,
) -> SyncPlan:
    """Plan a full mirror of the upstream ``subdir`` listing.

    Unlike compute_sync_plan this walks the remote listing, so files that
    exist only upstream are downloaded too.
    """
    if plan is None:
        plan = SyncPlan()

    for name in sorted(remote):
        entry = remote[name]
        if entry.type != "file":
            logger.debug("Skipping %s entry %r in %s", entry.type, name, subdir)
            continue
        rel_path = f"{subdir}/{name}"
        if not _is_safe_name(name):
            logger.warning("Skipping unsafe upstream name %r in %s", name, subdir)
            plan.add_skipped(rel_path)
            continue
        local_file = local.get(rel_path)
        if local_file is not None and local_file.digest == entry.sha:
            plan.add_no_change(rel_path)
            continue
        plan.add_download(
            DownloadTask(
                rel_path=rel_path,
                dest=root / subdir / name,
                entry=entry,
                local_digest=local_file.digest if local_file is not None else None,
            )
        )

    for rel_path in sorted(local):
        if rel_path not in plan:
            logger.warning("File %r not found upstream, obsolete?", rel_path)
            plan.add_obsolete(rel_path)

    plan.sort()
    return plan


def compute_missing_plan(
    remote: Mapping[str, RemoteEntry],
    root: Path,
    patterns: Iterable[str],
    plan: SyncPlan | None = None,
) -> SyncPlan:
    """Plan downloads of upstream files that match ``patterns`` and are not planned yet.

    Run after compute_sync_plan and compute_mirror_plan so that every name
    already present locally is in the plan; what remains exists only upstream.
    """
    if plan is None:
        plan = SyncPlan()
    patterns = tuple(patterns)

    for name in sorted(remote):
        entry = remote[name]
        if entry.type != "file" or name in plan:
            continue
        if not any(fnmatchcase(name, pattern) for pattern in patterns):
            continue
        if not _is_safe_name(name):
            logger.warning("Skipping unsafe upstream name %r", name)
            plan.add_skipped(name)
            continue
        plan.add_download(DownloadTask(rel_path=name, dest=root / name, entry=entry))

    plan.sort()
    return plan


class Reconciler:
    """Brings a local firmware directory in line with the pinned upstream revision."""

    def __init__(
        self,
        config: SyncConfig,
        manifests: ManifestSource,
        fetcher: ContentFetcher,
    ) -> None:
        self.config = config
        self.manifests = manifests
        self.fetcher = fetcher
        self.states: dict[str, DownloadState] = {}

    async def plan(self) -> SyncPlan:
        """Scan and hash local files, fetch the listing(s), and compute the plan.

        Without mirroring only files already on disk are considered. With
        mirroring, top-level upstream files matching ``patterns`` and every
        file in the upstream overlays listing are fetched when missing too.
        """
        config = self.config
        root = config.firmware_dir

        paths = scan_local_files(root, config.patterns)
        if config.mirror_overlays:
            paths += scan_local_files(root, config.overlay_patterns, config.overlays_dir)
        local = await collect_local_files(root, paths)
        logger.info("Hashed %d local firmware file(s) in %s", len(local), root)

        remote = await self.manifests.fetch_listing(config.listing_path)
        top_level = {rel: f for rel, f in local.items() if "/" not in rel}
        plan = compute_sync_plan(top_level, remote)
        if not config.mirror_overlays:
            return plan

        subdir = config.overlays_dir
        nested_remote = await self.manifests.fetch_listing(f"{config.listing_path}/{subdir}")
        nested_local = {rel: f for rel, f in local.items() if rel.startswith(f"{subdir}/")}
        # Upstream files outside overlay_patterns are compared with what is on disk as well.
        unscanned = [
            root / subdir / name
            for name, entry in sorted(nested_remote.items())
            if entry.type == "file"
            and _is_safe_name(name)
            and f"{subdir}/{name}" not in nested_local
            and (root / subdir / name).is_file()
        ]
        if unscanned:
            nested_local.update(await collect_local_files(root, unscanned))
        compute_mirror_plan(nested_local, nested_remote, root, subdir, plan)
        compute_missing_plan(remote, root, config.patterns, plan)
        return plan

    async def _download(
        self,
        task: DownloadTask,
        semaphore: asyncio.Semaphore,
        abort: asyncio.Event,
    ) -> None:
        async with semaphore:
            # A sibling may have failed while this task waited for a slot.
            if abort.is_set():
                self.states[task.rel_path] = DownloadState.CANCELED
                return
            self.states[task.rel_path] = DownloadState.IN_FLIGHT
            logger.info(
                "Getting %s (local %s, upstream %s)",
                task.rel_path,
                task.local_digest or "missing",
                task.entry.sha,
            )
            try:
                try:
                    task.dest.parent.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    msg = f"Cannot create directory {task.dest.parent}: {exc}"
                    raise DownloadError(msg) from exc
                await self.fetcher.download(task.entry, task.dest)
            except asyncio.CancelledError:
                self.states[task.rel_path] = DownloadState.CANCELED
                raise
            except Exception:
                self.states[task.rel_path] = DownloadState.FAILED
                abort.set()
                raise
            self.states[task.rel_path] = DownloadState.COMPLETED

    def _cancel_pending(self) -> None:
        for rel_path, state in self.states.items():
            if state in (DownloadState.PENDING, DownloadState.IN_FLIGHT):
                self.states[rel_path] = DownloadState.CANCELED

    async def execute(self, plan: SyncPlan) -> SyncResult:
        """Run every planned download under one deadline and a concurrency cap.

        The first failure cancels all sibling downloads and is re-raised.
        Files written before the failure are kept.
        """
        config = self.config
        self.states = {task.rel_path: DownloadState.PENDING for task in plan.to_download}
        semaphore = asyncio.Semaphore(config.max_concurrent_downloads)
        abort = asyncio.Event()

        try:
            async with asyncio.timeout(config.download_deadline_seconds):
                async with asyncio.TaskGroup() as tg:
                    for task in plan.to_download:
                        tg.create_task(self._download(task, semaphore, abort))
        except TimeoutError as exc:
            self._cancel_pending()
            msg = (
                f"Downloads did not finish within {config.download_deadline_seconds:g}s "
                f"({self._count(DownloadState.COMPLETED)} of {len(plan.to_download)} completed)"
            )
            raise SyncTimeoutError(msg) from exc
        except ExceptionGroup as group:
            self._cancel_pending()
            raise group.exceptions[0] from None

        downloaded = [task.rel_path for task in plan.to_download]
        logger.info(
            "Sync complete: %d downloaded, %d up to date, %d obsolete",
            len(downloaded),
            len(plan.no_change),
            len(plan.obsolete),
        )
        return SyncResult(plan=plan, downloaded=downloaded, states=dict(self.states))

    def _count(self, state: DownloadState) -> int:
        return sum(1 for s in self.states.values() if s is state)

    async def run(self) -> SyncResult:
        """Plan and execute one reconciliation."""
        plan = await self.plan()
        return await self.execute(plan)
