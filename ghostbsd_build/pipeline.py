"""Build pipeline orchestration.

Runs the build stages in their fixed order:

    reset -> base install -> [software install -> driver fetch ->
    configuration] -> snapshot -> ramdisk -> boot assembly -> publish

The bracketed stages are skipped for test builds. Each stage either
completes or fails; the first failure stops the run and is reported as a
StageResult. Nothing is retried and nothing is cleaned up inline: the
next run's reset stage clears whatever a failed run left behind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.errors import BuildError, ExternalToolError
from ghostbsd_build.image import (
    BootAssembler,
    ImageFinalizer,
    RamdiskBuilder,
    SnapshotAssembler,
)
from ghostbsd_build.manifests import BuildManifests, load_build_manifests
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.system import (
    DriverFetcher,
    PackageInstaller,
    ResourceManager,
    SystemConfigurator,
)
from ghostbsd_build.system.packages import read_release_version
from ghostbsd_build.types import BuildState, PublishResult, StageResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    """A pipeline stage and the state reached when it completes."""

    state: BuildState
    description: str
    action: Callable[[], None]
    full_build_only: bool = False


@dataclass
class PipelineResult:
    """Outcome of a pipeline run.

    Attributes:
        state: Last state reached (FAILED if a stage failed).
        results: Results of the stages that ran, in order.
        version: Release version read after the base install.
        iso_path: ISO path derived from the version.
        publish: Files produced by the publish stage.
    """

    state: BuildState = BuildState.INIT
    results: list[StageResult] = field(default_factory=list)
    version: str | None = None
    iso_path: Path | None = None
    publish: PublishResult | None = None

    @property
    def success(self) -> bool:
        return self.state is BuildState.PUBLISHED

    @property
    def failure(self) -> StageResult | None:
        for result in self.results:
            if not result.success:
                return result
        return None

    @property
    def completed(self) -> list[BuildState]:
        return [r.stage for r in self.results if r.success]


def describe_error(error: Exception) -> str:
    """Render an error and the underlying tool's diagnostic, if any."""
    message = str(error)
    if isinstance(error, ExternalToolError) and error.diagnostic:
        message = f"{message}\n{error.diagnostic}"
    return message


class StageSequencer:
    """Runs the build stages in order and stops at the first failure."""

    def __init__(
        self,
        config: BuildConfig,
        manifests: BuildManifests,
        runner: CommandRunner,
        *,
        drivers: DriverFetcher | None = None,
        on_stage: Callable[[StageResult], None] | None = None,
    ) -> None:
        self.config = config
        self.paths = config.paths
        self.manifests = manifests
        self.runner = runner
        self.on_stage = on_stage

        self.resources = ResourceManager(config, runner)
        self.installer = PackageInstaller(config, runner, self.resources)
        self.drivers = drivers or DriverFetcher(config, runner)
        self.configurator = SystemConfigurator(config, runner, self.resources)
        self.snapshot = SnapshotAssembler(config, runner)
        self.ramdisk = RamdiskBuilder(config, runner)
        self.boot = BootAssembler(config, runner, self.resources)
        self.finalizer = ImageFinalizer(config, runner)

        self.result = PipelineResult()

    def stages(self) -> list[Stage]:
        """Return the stage table in execution order."""
        return [
            Stage(BuildState.RESET, "reset workspace and create pool", self._reset),
            Stage(BuildState.BASE_INSTALLED, "install base system", self._install_base),
            Stage(
                BuildState.SOFTWARE_INSTALLED,
                "install desktop software",
                self._install_software,
                full_build_only=True,
            ),
            Stage(
                BuildState.DRIVERS_FETCHED,
                "fetch driver packages",
                self._fetch_drivers,
                full_build_only=True,
            ),
            Stage(
                BuildState.CONFIGURED,
                "configure live system",
                self._configure,
                full_build_only=True,
            ),
            Stage(BuildState.SNAPSHOTTED, "write system image", self._snapshot),
            Stage(BuildState.RAMDISK_BUILT, "build ramdisk", self._ramdisk),
            Stage(BuildState.BOOT_FINALIZED, "stage boot loader", self._boot),
            Stage(BuildState.PUBLISHED, "master and publish ISO", self._publish),
        ]

    def run(self) -> PipelineResult:
        """Run every applicable stage once, in order."""
        result = self.result
        logger.info(
            "Building GhostBSD %s (%s)", self.config.desktop, self.config.channel.value
        )

        for stage in self.stages():
            if stage.full_build_only and self.config.test_mode:
                logger.info("Skipping %s (test build)", stage.description)
                continue

            logger.info("Stage %s: %s", stage.state.value, stage.description)
            try:
                stage.action()
            except (BuildError, OSError) as e:
                code = getattr(e, "code", None) or "os_error"
                message = describe_error(e)
                logger.error("Stage %s failed: %s", stage.state.value, message)
                self._record(StageResult.failed(stage.state, message, code=str(code)))
                result.state = BuildState.FAILED
                return result

            result.state = stage.state
            self._record(StageResult.ok(stage.state))

        logger.info("Published %s", result.iso_path)
        return result

    def _record(self, stage_result: StageResult) -> None:
        self.result.results.append(stage_result)
        if self.on_stage is not None:
            self.on_stage(stage_result)

    def _reset(self) -> None:
        self.resources.reset()
        self.resources.create_pool()

    def _install_base(self) -> None:
        self.installer.install_base(self.paths.release, self.manifests.base)
        version = read_release_version(self.paths.release, self.config.test_mode)
        self.result.version = version
        self.result.iso_path = self.paths.iso_path(version)
        logger.info("Release version %s", version)

    def _install_software(self) -> None:
        if self.manifests.software is None:
            raise BuildError("No desktop software manifest loaded", code="no_manifest")
        self.installer.install_software(self.paths.release, self.manifests.software)

    def _fetch_drivers(self) -> None:
        self.drivers.fetch(self.paths.release, self.config.channel)

    def _configure(self) -> None:
        root = self.paths.release
        self.configurator.apply_runtime_flags(root)
        self.configurator.run_desktop_config(root)
        self.configurator.apply_identity(root, self.config.desktop)

    def _snapshot(self) -> None:
        self.snapshot.assemble(self.paths.system_image)

    def _ramdisk(self) -> None:
        self.ramdisk.build(self.paths.release)

    def _boot(self) -> None:
        self.boot.finalize(self.paths.release)

    def _publish(self) -> None:
        if self.result.iso_path is None:
            raise BuildError("Release version was never resolved", code="no_version")
        self.result.publish = self.finalizer.publish(
            self.paths.cd_root, self.result.iso_path, self.config.desktop
        )


def build_iso(
    config: BuildConfig,
    runner: CommandRunner,
    *,
    drivers: DriverFetcher | None = None,
    on_stage: Callable[[StageResult], None] | None = None,
) -> PipelineResult:
    """Validate the build inputs and run the pipeline.

    Raises:
        ConfigurationError: If a manifest or desktop script is missing or
            invalid; raised before any stage runs.
    """
    manifests = load_build_manifests(config)
    sequencer = StageSequencer(
        config, manifests, runner, drivers=drivers, on_stage=on_stage
    )
    return sequencer.run()


__all__ = [
    "PipelineResult",
    "Stage",
    "StageSequencer",
    "build_iso",
    "describe_error",
]
