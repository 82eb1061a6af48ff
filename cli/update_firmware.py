"""CLI for mirroring bootloader firmware files from a pinned upstream revision."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from firmsync.config import Settings
from firmsync.exceptions import FirmwareSyncError
from firmsync.services.auth_service import describe_auth, resolve_auth
from firmsync.services.github_service import GitHubClient
from firmsync.services.sync_service import Reconciler

if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from firmsync.services.sync_service import SyncPlan

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure line-oriented logging with timestamp and source location."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s %(filename)s:%(lineno)d: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stderr,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.INFO if debug else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="firmsync",
        description="Update local firmware files to a pinned upstream revision",
    )
    parser.add_argument("--dir", "-d", help="Firmware directory (default: FIRMWARE_DIR or current)")
    parser.add_argument(
        "--github-user-pass",
        default="",
        help="user:password for HTTP basic authentication (default: from environment)",
    )
    parser.add_argument(
        "--github-token",
        default="",
        help="Personal access token sent as a bearer token (default: from environment)",
    )
    parser.add_argument("--ref", help="Upstream revision to mirror (default: pinned revision)")
    parser.add_argument(
        "--mirror-overlays",
        action="store_true",
        default=None,
        help="Also fetch upstream files missing locally, including the overlays directory",
    )
    parser.add_argument("--debug", action="store_true", default=None, help="Verbose logging")
    parser.add_argument(
        "command",
        nargs="?",
        default="sync",
        choices=("sync", "status"),
        help="sync (default) downloads mismatches; status only shows the plan",
    )
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with explicitly given command-line values applied."""
    overrides: dict[str, object] = {}
    if args.dir is not None:
        overrides["firmware_dir"] = Path(args.dir)
    if args.ref is not None:
        overrides["firmware_ref"] = args.ref
    if args.mirror_overlays is not None:
        overrides["mirror_overlays"] = args.mirror_overlays
    if args.debug is not None:
        overrides["debug"] = args.debug
    if not overrides:
        return settings
    return settings.model_copy(update=overrides)


def print_plan(plan: SyncPlan) -> None:
    print("Sync Status:")
    print(f"  To download: {len(plan.to_download)}")
    print(f"  Up to date:  {len(plan.no_change)}")
    print(f"  Obsolete:    {len(plan.obsolete)}")
    print(f"  Skipped:     {len(plan.skipped)}")

    for task in plan.to_download:
        state = "missing" if task.local_digest is None else "changed"
        print(f"    < {task.rel_path} ({state})")
    for rel_path in plan.obsolete:
        print(f"    ? {rel_path} (obsolete)")
    for rel_path in plan.skipped:
        print(f"    ! {rel_path} (unsafe name)")


async def run(settings: Settings, auth: httpx.Auth | None, command: str) -> None:
    async with GitHubClient(
        settings.firmware_repo,
        settings.firmware_ref,
        api_url=settings.api_url,
        auth=auth,
        timeout=settings.request_timeout_seconds,
    ) as client:
        reconciler = Reconciler(settings.sync_config(), client, client)
        plan = await reconciler.plan()
        if command == "status":
            print_plan(plan)
            return
        await reconciler.execute(plan)


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = apply_overrides(Settings(), args)
        configure_logging(settings.debug)
        auth = resolve_auth(settings, args.github_user_pass, args.github_token)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger.info(
        "Mirroring %s/%s at %s into %s (auth: %s)",
        settings.firmware_repo,
        settings.firmware_path,
        settings.firmware_ref,
        settings.firmware_dir.resolve(),
        describe_auth(auth),
    )

    try:
        asyncio.run(run(settings, auth, args.command))
    except FirmwareSyncError as exc:
        logger.critical("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
