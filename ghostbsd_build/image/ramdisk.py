"""Early-boot ramdisk construction.

This module handles:
- Copying the rescue tree out of the release root without crossing mounts
- Installing the ramdisk init script and rc
- Building a UFS image with makefs and compressing it
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.runner import CommandRunner

logger = logging.getLogger(__name__)

INIT_SCRIPT = "init.sh.in"
RC_SCRIPT = "rc.in"

# Free space makefs leaves on top of the content
SIZE_HEADROOM = "10%"


class RamdiskBuilder:
    """Builds the compressed ramdisk loaded before the system image."""

    def __init__(self, config: BuildConfig, runner: CommandRunner) -> None:
        self.config = config
        self.paths = config.paths
        self.runner = runner

    def _install(self, source: Path, dest: Path) -> None:
        self.runner.run(
            ["install", "-o", "root", "-g", "wheel", "-m", "755", str(source), str(dest)]
        )

    def build(self, root: Path) -> Path:
        """Build ``ramdisk.ufs.gz`` from the rescue tree of ``root``.

        Returns:
            Path to the compressed ramdisk image.
        """
        paths = self.paths
        scratch = paths.ramdisk_root
        archive = paths.data_dir / "rescue.tar"
        scratch.mkdir(parents=True, exist_ok=True)

        logger.info("Building ramdisk from %s/rescue", root)
        # tar keeps the rescue hard links and stays on the root filesystem
        self.runner.run(
            ["tar", "-cf", str(archive), "--one-file-system", "-C", str(root), "rescue"]
        )
        self.runner.run(["tar", "-xf", str(archive), "-C", str(scratch)])

        self._install(paths.source_dir / INIT_SCRIPT, scratch / "init.sh")
        (scratch / "dev").mkdir(exist_ok=True)
        (scratch / "etc").mkdir(exist_ok=True)
        (scratch / "etc" / "fstab").touch()
        self._install(paths.source_dir / RC_SCRIPT, scratch / "etc" / "rc")
        shutil.copyfile(root / "etc" / "login.conf", scratch / "etc" / "login.conf")

        self.runner.run(
            ["makefs", "-b", SIZE_HEADROOM, str(paths.ramdisk_image), str(scratch)]
        )
        self.runner.run(["gzip", "-f", str(paths.ramdisk_image)])

        archive.unlink(missing_ok=True)
        shutil.rmtree(scratch)

        compressed = paths.ramdisk_image.with_name(paths.ramdisk_image.name + ".gz")
        logger.info("Wrote ramdisk %s", compressed)
        return compressed


__all__ = ["RamdiskBuilder"]
