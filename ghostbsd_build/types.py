"""Shared type definitions for ghostbsd_build.

This module contains enums and result dataclasses shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class Channel(str, Enum):
    """Release track a build pulls its packages from."""

    RELEASE = "release"
    UNSTABLE = "unstable"
    TEST = "test"


class MountKind(str, Enum):
    """Filesystem types mounted beneath the release root."""

    NULLFS = "nullfs"
    DEVFS = "devfs"


class BuildState(str, Enum):
    """Pipeline state reached by a build run."""

    INIT = "init"
    RESET = "reset"
    BASE_INSTALLED = "base_installed"
    SOFTWARE_INSTALLED = "software_installed"
    DRIVERS_FETCHED = "drivers_fetched"
    CONFIGURED = "configured"
    SNAPSHOTTED = "snapshotted"
    RAMDISK_BUILT = "ramdisk_built"
    BOOT_FINALIZED = "boot_finalized"
    PUBLISHED = "published"
    FAILED = "failed"


# States only reached in a full (non-test) build
FULL_BUILD_STATES = frozenset(
    {
        BuildState.SOFTWARE_INSTALLED,
        BuildState.DRIVERS_FETCHED,
        BuildState.CONFIGURED,
    }
)


@dataclass
class StageResult:
    """Outcome of a single pipeline stage."""

    stage: BuildState
    success: bool
    message: str = ""
    code: str | None = None

    @classmethod
    def ok(cls, stage: BuildState, message: str = "") -> "StageResult":
        return cls(stage=stage, success=True, message=message)

    @classmethod
    def failed(
        cls, stage: BuildState, message: str, code: str | None = None
    ) -> "StageResult":
        return cls(stage=stage, success=False, message=message, code=code)


@dataclass
class PublishResult:
    """Files produced by the final publishing stage."""

    iso_path: Path
    checksum_path: Path
    torrent_path: Path
    sha256: str
    size_bytes: int


__all__ = [
    "BuildState",
    "Channel",
    "FULL_BUILD_STATES",
    "MountKind",
    "PublishResult",
    "StageResult",
]
