"""Package installation into the release root.

This module handles:
- Installing the base system cross-root with ``pkg-static -r``
- Installing desktop software inside a chroot of the release root
- Marking vital packages once their installation succeeded
- Reading the release version recorded by the base packages

Temporary grants to the release root (resolver config, devfs, package
cache) are scoped to each install and always revoked.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from datetime import date
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.errors import ResourceStateError
from ghostbsd_build.manifests import PackageManifest
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.system.resources import ResourceManager
from ghostbsd_build.types import Channel, MountKind

logger = logging.getLogger(__name__)

# Protection level set on vital packages
VITAL_LEVEL = "1"

UNSTABLE_REPO_CONF = "GhostBSD_Unstable.conf"


class PackageInstaller:
    """Installs package manifests into a target root."""

    def __init__(
        self,
        config: BuildConfig,
        runner: CommandRunner,
        resources: ResourceManager,
    ) -> None:
        self.config = config
        self.paths = config.paths
        self.runner = runner
        self.resources = resources

    @contextmanager
    def _resolver(self, root: Path) -> Iterator[None]:
        """Grant DNS resolution to the root for the duration of a block."""
        target = root / "etc" / "resolv.conf"
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.config.resolv_conf, target)
        try:
            yield
        finally:
            target.unlink(missing_ok=True)

    def install_base(self, root: Path, manifest: PackageManifest) -> None:
        """Install the base system without chrooting into the root.

        The root has no package database of its own yet, so pkg-static runs
        on the host against ``root`` using the build's repository config.
        """
        pkg = ["pkg-static", "-r", str(root), "-R", f"{self.paths.pkg_dir}/"]
        cache = root / "var" / "cache" / "pkg"
        cache.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Installing %d base packages from %s",
            len(manifest.packages),
            self.config.base_repository,
        )
        with ExitStack() as stack:
            stack.enter_context(self._resolver(root))
            stack.enter_context(
                self.resources.mounted(self.paths.base_packages, cache, MountKind.NULLFS)
            )
            self.runner.run(
                [*pkg, "install", "-y", "-r", self.config.base_repository, *manifest.packages]
            )
            self._mark_vital(pkg, manifest)

    def install_software(self, root: Path, manifest: PackageManifest) -> None:
        """Install desktop software with the root's own package manager."""
        if self.config.channel is Channel.UNSTABLE:
            conf_dir = root / "etc" / "pkg"
            conf_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.paths.pkg_dir / UNSTABLE_REPO_CONF, conf_dir / "GhostBSD.conf")

        pkg = ["pkg-static", "-c", str(root)]
        logger.info("Installing %d %s packages", len(manifest.packages), manifest.name)
        with ExitStack() as stack:
            stack.enter_context(self._resolver(root))
            stack.enter_context(
                self.resources.mounted(
                    self.paths.software_packages,
                    root / "var" / "cache" / "pkg",
                    MountKind.NULLFS,
                )
            )
            stack.enter_context(
                self.resources.mounted("devfs", root / "dev", MountKind.DEVFS)
            )
            self.runner.run([*pkg, "install", "-y", *manifest.packages])
            self._mark_vital(pkg, manifest)

    def _mark_vital(self, pkg: list[str], manifest: PackageManifest) -> None:
        # only reached after a successful install: a failed install raises first
        if not manifest.vital:
            logger.debug("No vital packages in %s", manifest.name)
            return
        logger.info("Marking %d %s packages vital", len(manifest.vital), manifest.name)
        self.runner.run([*pkg, "set", "-y", "-v", VITAL_LEVEL, *manifest.vital])


def read_release_version(root: Path, test_mode: bool, today: date | None = None) -> str:
    """Return the version string used to name the ISO.

    Test builds are named after the build date; other builds use the
    version recorded in the root's ``etc/version``.

    Raises:
        ResourceStateError: If the version file is missing or empty.
    """
    if test_mode:
        return (today or date.today()).strftime("%Y-%m-%d")

    version_file = root / "etc" / "version"
    try:
        version = version_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        raise ResourceStateError(
            f"Release version file not found: {version_file}",
            resource=str(version_file),
        ) from None
    except (OSError, UnicodeDecodeError) as e:
        raise ResourceStateError(
            f"Cannot read release version file {version_file}: {e}",
            resource=str(version_file),
        ) from e
    if not version:
        raise ResourceStateError(
            f"Release version file is empty: {version_file}",
            resource=str(version_file),
        )
    return version


__all__ = ["PackageInstaller", "VITAL_LEVEL", "read_release_version"]
