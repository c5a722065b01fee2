"""Boot loader staging and pool release."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.system.resources import ResourceManager

logger = logging.getLogger(__name__)

LICENSE_FILES = ("COPYRIGHT", "LICENSE")


class BootAssembler:
    """Stages the boot hierarchy into the ISO tree and gives up the pool."""

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

    def finalize(self, root: Path) -> None:
        """Copy boot files and licences into the staging tree, then export the pool.

        After this returns no stage may touch the pool or the release root.

        Raises:
            ResourceStateError: If the pool cannot be exported.
        """
        staging = self.paths.cd_root
        staging.mkdir(parents=True, exist_ok=True)

        logger.info("Staging boot loader from %s", root)
        archive = staging / "boot.tar"
        self.runner.run(["tar", "-cf", str(archive), "-C", str(root), "boot"])
        self.runner.run(["tar", "-xf", str(archive), "-C", str(staging)])
        archive.unlink(missing_ok=True)

        for name in LICENSE_FILES:
            shutil.copyfile(self.paths.source_dir / name, staging / name)
        # the source tree's loader config overrides what the packages installed
        shutil.copytree(self.paths.source_dir / "boot", staging / "boot", dirs_exist_ok=True)
        (staging / "etc").mkdir(exist_ok=True)

        self.resources.unmount(root / "dev", best_effort=True)
        self.resources.unmount(root, best_effort=True)
        self.resources.export_pool()


__all__ = ["BootAssembler", "LICENSE_FILES"]
