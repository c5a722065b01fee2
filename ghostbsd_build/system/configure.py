"""Live system configuration applied to the release root.

This module handles:
- Boot-time service flags written with sysrc inside the chroot
- The desktop variant's own configuration script
- GhostBSD identity: desktop marker, disabled automount rules, boot markers
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.system.resources import ResourceManager
from ghostbsd_build.types import MountKind

logger = logging.getLogger(__name__)

RUNTIME_FLAGS: tuple[tuple[str, str], ...] = (
    ("hostname", "livecd"),
    ("zfs_enable", "YES"),
    ("kld_list", "linux linux64 cuse fusefs hgame"),
    ("linux_enable", "YES"),
    ("devfs_enable", "YES"),
    ("devfs_system_ruleset", "devfsrules_common"),
    ("moused_enable", "YES"),
    ("dbus_enable", "YES"),
    ("lightdm_enable", "NO"),
    ("webcamd_enable", "YES"),
    ("ipfw_enable", "YES"),
    ("firewall_enable", "YES"),
    ("cupsd_enable", "YES"),
    ("avahi_daemon_enable", "YES"),
    ("avahi_dnsconfd_enable", "YES"),
    ("ntpd_enable", "YES"),
    ("ntpd_sync_on_start", "YES"),
)

# devd rules that would automount disks in the live session
AUTOMOUNT_RULES = ("automount_devd.conf", "automount_devd_localdisks.conf")
DISABLED_SUFFIX = ".skip"

DESKTOP_MARKER = Path("usr/local/share/ghostbsd/desktop")
DEVD_DIR = Path("usr/local/etc/devd")


class SystemConfigurator:
    """Applies live-session settings to the release root."""

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

    def _chroot(self, root: Path, *argv: str) -> None:
        self.runner.run(["chroot", str(root), *argv])

    def apply_runtime_flags(
        self,
        root: Path,
        flags: Sequence[tuple[str, str]] = RUNTIME_FLAGS,
    ) -> None:
        """Write each service flag with sysrc; the first failure is fatal."""
        logger.info("Applying %d runtime flags", len(flags))
        with self.resources.mounted("devfs", root / "dev", MountKind.DEVFS):
            for key, value in flags:
                self._chroot(root, "sysrc", f"{key}={value}")

    def run_desktop_config(self, root: Path) -> None:
        """Run the desktop variant's configuration script."""
        script = self.paths.desktop_config_dir / f"{self.config.desktop}.sh"
        logger.info("Running desktop configuration %s", script.name)
        self.runner.run(
            ["sh", str(script)],
            cwd=self.paths.source_dir,
            env={
                "release": str(root),
                "cwd": str(self.paths.source_dir),
                "desktop": self.config.desktop,
            },
        )

    def apply_identity(self, root: Path, desktop: str) -> None:
        """Mark the image with its desktop variant and prepare boot markers."""
        marker = root / DESKTOP_MARKER
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(desktop, encoding="utf-8")

        devd = root / DEVD_DIR
        for rule in AUTOMOUNT_RULES:
            active = devd / rule
            if not active.exists():
                logger.warning("devd rule %s not found, nothing to disable", active)
                continue
            active.rename(devd / f"{rule}{DISABLED_SUFFIX}")
            logger.debug("Disabled devd rule %s", rule)

        self._chroot(root, "mkdir", "-p", "/compat/linux/dev/shm")
        self._chroot(root, "touch", "/boot/entropy")
        self._chroot(root, "touch", "/etc/wall_cmos_clock")


__all__ = [
    "AUTOMOUNT_RULES",
    "DESKTOP_MARKER",
    "RUNTIME_FLAGS",
    "SystemConfigurator",
]
