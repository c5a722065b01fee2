"""System image assembly from a pool snapshot."""

from __future__ import annotations

import logging
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.runner import CommandRunner

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "clean"


class SnapshotAssembler:
    """Streams one consistent snapshot of the pool into the system image."""

    def __init__(self, config: BuildConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    @property
    def snapshot(self) -> str:
        return f"{self.config.pool_name}@{SNAPSHOT_NAME}"

    def assemble(self, output: Path) -> Path:
        """Snapshot the pool and write a compressed send stream to ``output``.

        Must run after every install/configuration stage and before the
        pool is exported.
        """
        output.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Snapshotting %s", self.snapshot)
        self.runner.run(["zfs", "snapshot", self.snapshot])
        # -p: properties, -c: keep compressed blocks, -e: embedded data
        self.runner.run(
            ["zfs", "send", "-p", "-c", "-e", self.snapshot], stdout_path=output
        )
        logger.info("Wrote system image %s", output)
        return output


__all__ = ["SNAPSHOT_NAME", "SnapshotAssembler"]
