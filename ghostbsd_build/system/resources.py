"""Storage pool and mount point lifecycle.

This module handles:
- Resetting the workspace left behind by a previous (possibly crashed) run
- Creating the ZFS pool that backs the release root
- Mounting and unmounting package caches and devfs beneath the release root
- Exporting the pool once the image no longer needs it

Acquire/release order: the pool exists before any mount beneath the
release root is created, every such mount is released before the pool is
exported, and the pool is only destroyed by the next run's reset.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.errors import ResourceStateError
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.types import MountKind

logger = logging.getLogger(__name__)

# umount(8) diagnostics meaning the target is already detached
NOT_MOUNTED_MARKERS = (
    "not a file system root directory",
    "not currently mounted",
    "not mounted",
    "no such file or directory",
)

POOL_COMPRESSION = "zstd-9"


def is_not_mounted_diagnostic(diagnostic: str) -> bool:
    """Check whether an umount error only says the target is not mounted."""
    lowered = diagnostic.lower()
    return any(marker in lowered for marker in NOT_MOUNTED_MARKERS)


class ResourceManager:
    """Owns the storage pool and every mount point used by a build."""

    def __init__(self, config: BuildConfig, runner: CommandRunner) -> None:
        self.config = config
        self.paths = config.paths
        self.runner = runner

    def reset(self) -> None:
        """Clear state left by a previous run and recreate the workspace.

        Every cleanup step tolerates the resource being absent. Package
        cache contents and published ISOs are kept.

        Raises:
            ResourceStateError: If a mount beneath the release root is still
                attached after cleanup; the release tree is left untouched.
        """
        paths = self.paths
        logger.info("Resetting workspace %s", paths.workspace)

        for target in (
            paths.release_pkg_cache,
            paths.software_packages,
            paths.base_packages,
            paths.release_dev,
        ):
            self.unmount(target, best_effort=True)

        result = self.runner.run(
            ["zpool", "destroy", "-f", self.config.pool_name], check=False
        )
        if not result.ok:
            logger.debug("No pool %s to destroy", self.config.pool_name)

        self.unmount(paths.release, best_effort=True)

        paths.pool_image.unlink(missing_ok=True)
        shutil.rmtree(paths.cd_root, ignore_errors=True)

        attached = [
            p
            for p in (paths.release_dev, paths.release_pkg_cache, paths.release)
            if os.path.ismount(p)
        ]
        if attached:
            raise ResourceStateError(
                "Mounts still attached beneath the release root: "
                + ", ".join(str(p) for p in attached),
                resource=str(attached[0]),
            )
        shutil.rmtree(paths.release, ignore_errors=True)

        for directory in (
            paths.workspace,
            paths.release,
            paths.iso_dir,
            paths.base_packages,
            paths.software_packages,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def create_pool(self) -> None:
        """Create the pool image and the pool mounted on the release root."""
        paths = self.paths
        logger.info(
            "Creating pool %s (%s) at %s",
            self.config.pool_name,
            self.config.pool_size,
            paths.pool_image,
        )
        self.runner.run(["truncate", "-s", self.config.pool_size, str(paths.pool_image)])
        self.runner.run(
            [
                "zpool",
                "create",
                "-f",
                "-O",
                f"mountpoint={paths.release}",
                "-O",
                f"compression={POOL_COMPRESSION}",
                self.config.pool_name,
                str(paths.pool_image),
            ]
        )

    def mount(self, source: Path | str, target: Path, kind: MountKind) -> None:
        """Mount ``source`` on ``target``.

        Raises:
            ExternalToolError: If the mount command fails.
        """
        target.mkdir(parents=True, exist_ok=True)
        if kind is MountKind.NULLFS:
            argv = ["mount_nullfs", str(source), str(target)]
        else:
            argv = ["mount", "-t", "devfs", "devfs", str(target)]
        logger.debug("Mounting %s (%s) on %s", source, kind.value, target)
        self.runner.run(argv)

    def unmount(self, target: Path, best_effort: bool = False) -> bool:
        """Unmount ``target``; an already detached target is a no-op.

        Args:
            target: Mount point (or nullfs source) to detach.
            best_effort: Log instead of raising on any failure.

        Returns:
            True if something was unmounted.

        Raises:
            ResourceStateError: If the target stays mounted and
                ``best_effort`` is not set.
        """
        result = self.runner.run(["umount", str(target)], check=False)
        if result.ok:
            logger.debug("Unmounted %s", target)
            return True

        diagnostic = (result.stderr or result.stdout).strip()
        if is_not_mounted_diagnostic(diagnostic):
            logger.debug("%s is not mounted", target)
            return False
        if best_effort:
            logger.warning("Could not unmount %s: %s", target, diagnostic)
            return False
        raise ResourceStateError(
            f"Failed to unmount {target}: {diagnostic}", resource=str(target)
        )

    @contextmanager
    def mounted(
        self, source: Path | str, target: Path, kind: MountKind
    ) -> Iterator[Path]:
        """Keep ``source`` mounted on ``target`` for the duration of a block."""
        self.mount(source, target, kind)
        try:
            yield target
        except BaseException:
            # keep the original error; reset cleans up anything left behind
            self.unmount(target, best_effort=True)
            raise
        self.unmount(target)

    def export_pool(self) -> None:
        """Detach the pool from the host.

        Raises:
            ResourceStateError: If the pool cannot be exported, typically
                because a mount beneath the release root is still attached.
        """
        logger.info("Exporting pool %s", self.config.pool_name)
        result = self.runner.run(
            ["zpool", "export", self.config.pool_name], check=False
        )
        if not result.ok:
            raise ResourceStateError(
                f"Failed to export pool {self.config.pool_name}: "
                f"{(result.stderr or result.stdout).strip()}",
                resource=self.config.pool_name,
            )


__all__ = [
    "NOT_MOUNTED_MARKERS",
    "ResourceManager",
    "is_not_mounted_diagnostic",
]
