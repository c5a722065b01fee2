"""Configuration settings for ghostbsd_build.

Uses pydantic-settings for host-level settings read from environment
variables and defaults, and a frozen pydantic model for the per-build
configuration that is created once from the CLI selections and passed
explicitly to every pipeline component.

Configuration precedence: CLI flags > env vars > defaults.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ghostbsd_build.errors import ConfigurationError
from ghostbsd_build.types import Channel

# Variant installed without an ISO name suffix
DEFAULT_DESKTOP = "mate"

# Desktop name used by the -t test build
TEST_DESKTOP = "test"

# pkg(8) repository configuration name per channel
PKG_CONF_BY_CHANNEL = {
    Channel.TEST: "FreeBSD",
    Channel.RELEASE: "GhostBSD",
    Channel.UNSTABLE: "GhostBSD_Unstable",
}

DESKTOP_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class Settings(BaseSettings):
    """Build host settings.

    Settings are loaded from environment variables with the GHOSTBSD_BUILD_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="GHOSTBSD_BUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    source_dir: Path = Field(
        default_factory=Path.cwd,
        description="Build source tree (packages/, pkg/, desktop_config/, boot/, script/)",
    )
    workdir: Path = Field(
        default=Path("/usr/local"),
        description="Directory holding the ghostbsd-build workspace",
    )
    resolv_conf: Path = Field(
        default=Path("/etc/resolv.conf"),
        description="Host resolver config granted to the release root",
    )
    build_log: Path | None = Field(
        default=None,
        description="Command log file (defaults to <workspace>/build.log)",
    )

    # Storage pool
    pool_name: str = Field(
        default="ghostbsd",
        min_length=1,
        description="Name of the ZFS pool holding the release root",
    )
    pool_size: str = Field(
        default="6g",
        pattern=r"^\d+[kmgtKMGT]?$",
        description="Size of the sparse pool image file",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    command_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for a single external command (unset = no timeout)",
    )
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for a single driver package download",
    )


@dataclass(frozen=True)
class BuildPaths:
    """Filesystem layout of a build, derived from a BuildConfig."""

    source_dir: Path
    workspace: Path
    suffix: str

    @property
    def release(self) -> Path:
        """Mount point of the pool: the target system root."""
        return self.workspace / "release"

    @property
    def iso_dir(self) -> Path:
        return self.workspace / "iso"

    @property
    def base_packages(self) -> Path:
        return self.workspace / "base_packages"

    @property
    def software_packages(self) -> Path:
        return self.workspace / "software_packages"

    @property
    def pool_image(self) -> Path:
        return self.workspace / "pool.img"

    @property
    def build_log(self) -> Path:
        return self.workspace / "build.log"

    @property
    def release_dev(self) -> Path:
        return self.release / "dev"

    @property
    def release_pkg_cache(self) -> Path:
        return self.release / "var" / "cache" / "pkg"

    @property
    def xdrivers(self) -> Path:
        return self.release / "xdrivers"

    @property
    def cd_root(self) -> Path:
        """Staging tree handed to the ISO mastering script."""
        return self.source_dir / "cd_root"

    @property
    def data_dir(self) -> Path:
        return self.cd_root / "data"

    @property
    def system_image(self) -> Path:
        return self.data_dir / "system.img"

    @property
    def ramdisk_root(self) -> Path:
        return self.data_dir / "ramdisk"

    @property
    def ramdisk_image(self) -> Path:
        return self.data_dir / "ramdisk.ufs"

    @property
    def pkg_dir(self) -> Path:
        """Repository configuration directory passed to pkg -R."""
        return self.source_dir / "pkg"

    @property
    def packages_dir(self) -> Path:
        return self.source_dir / "packages"

    @property
    def desktop_config_dir(self) -> Path:
        return self.source_dir / "desktop_config"

    @property
    def script_dir(self) -> Path:
        return self.source_dir / "script"

    def iso_path(self, version: str) -> Path:
        """Path of the ISO produced for a release version."""
        return self.iso_dir / f"GhostBSD{version}{self.suffix}.iso"


class BuildConfig(BaseModel):
    """Immutable configuration of a single build run."""

    model_config = ConfigDict(frozen=True)

    desktop: str = Field(description="Desktop variant name")
    channel: Channel = Field(description="Release track")
    source_dir: Path
    workdir: Path = Path("/usr/local")
    pool_name: str = "ghostbsd"
    pool_size: str = "6g"
    resolv_conf: Path = Path("/etc/resolv.conf")

    @property
    def test_mode(self) -> bool:
        return self.channel is Channel.TEST

    @property
    def pkg_conf(self) -> str:
        return PKG_CONF_BY_CHANNEL[self.channel]

    @property
    def base_repository(self) -> str:
        return f"{self.pkg_conf}_base"

    @property
    def iso_suffix(self) -> str:
        if self.desktop == DEFAULT_DESKTOP:
            return ""
        return f"-{self.desktop.upper()}"

    @property
    def paths(self) -> BuildPaths:
        return BuildPaths(
            source_dir=self.source_dir,
            workspace=self.workdir / "ghostbsd-build",
            suffix=self.iso_suffix,
        )


def get_settings() -> Settings:
    """Get the build host settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON."""
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


def create_build_config(
    desktop: str,
    build_type: str,
    test: bool = False,
    settings: Settings | None = None,
) -> BuildConfig:
    """Create the build configuration from CLI selections.

    Args:
        desktop: Desktop variant name.
        build_type: ``release`` or ``unstable``.
        test: Test build; forces the ``test`` desktop and channel.
        settings: Host settings; loaded from the environment if not given.

    Returns:
        Frozen BuildConfig.

    Raises:
        ConfigurationError: If the build type or desktop name is invalid.
    """
    if settings is None:
        settings = get_settings()

    if test:
        desktop = TEST_DESKTOP
        channel = Channel.TEST
    else:
        try:
            channel = Channel(build_type)
        except ValueError:
            raise ConfigurationError(
                f"Invalid build type: {build_type!r} (expected release or unstable)",
                code="invalid_build_type",
            ) from None
        if channel is Channel.TEST:
            raise ConfigurationError(
                "Use the test flag to select a test build",
                code="invalid_build_type",
            )

    if not DESKTOP_NAME_PATTERN.match(desktop):
        raise ConfigurationError(
            f"Invalid desktop name: {desktop!r}", code="invalid_desktop"
        )

    return BuildConfig(
        desktop=desktop,
        channel=channel,
        source_dir=settings.source_dir.resolve(),
        workdir=settings.workdir,
        pool_name=settings.pool_name,
        pool_size=settings.pool_size,
        resolv_conf=settings.resolv_conf,
    )


__all__ = [
    "BuildConfig",
    "BuildPaths",
    "DEFAULT_DESKTOP",
    "PKG_CONF_BY_CHANNEL",
    "Settings",
    "TEST_DESKTOP",
    "create_build_config",
    "get_settings",
    "print_settings_json",
]
