"""Proprietary video driver packages for offline selection.

This module handles:
- Discovering the repository URL of the active channel from pkg metadata
- Querying the NVIDIA driver packages available in that repository
- Writing the driver list into the image
- Downloading every listed package into the image with httpx

A failed download aborts the build; nothing is retried.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import httpx

from ghostbsd_build.config import BuildConfig, Settings
from ghostbsd_build.errors import ExternalToolError
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.types import Channel

logger = logging.getLogger(__name__)

DRIVER_PATTERN = "nvidia-driver"

# Packages matching DRIVER_PATTERN that are not X drivers
EXCLUDED_DRIVER_MARKER = "libva"

DRIVERS_LIST_NAME = "drivers-list"

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = Settings.model_fields["download_timeout"].default

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

_STABLE_URL = re.compile(r"/stable.*/latest")
_UNSTABLE_URL = re.compile(r"/unstable.*/latest")


@dataclass(frozen=True)
class DriverPackage:
    """A driver package and the file name it is published under."""

    name: str
    filename: str


def parse_repository_url(pkg_output: str, channel: Channel) -> str:
    """Extract the repository URL for a channel from ``pkg -vv`` output.

    Args:
        pkg_output: Output of ``pkg-static -R <conf> -vv``.
        channel: Active channel; release uses the stable branch, anything
            else the unstable branch.

    Returns:
        Base URL of the repository, without a ``pkg+`` scheme prefix.

    Raises:
        ExternalToolError: If no repository URL matches the branch.
    """
    pattern = _STABLE_URL if channel is Channel.RELEASE else _UNSTABLE_URL
    for line in pkg_output.splitlines():
        if not pattern.search(line):
            continue
        parts = line.split('"')
        if len(parts) < 3:
            continue
        url = parts[1].strip()
        if url.startswith("pkg+"):
            url = url[len("pkg+") :]
        return url.rstrip("/")

    raise ExternalToolError(
        f"No {pattern.pattern} repository URL found in pkg configuration",
        code="repository_url_not_found",
    )


def parse_driver_query(output: str) -> list[DriverPackage]:
    """Parse ``pkg rquery '%n %n-%v.pkg'`` output into driver packages."""
    drivers: list[DriverPackage] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        name, filename = parts
        if EXCLUDED_DRIVER_MARKER in name:
            logger.debug("Skipping %s", name)
            continue
        drivers.append(DriverPackage(name=name, filename=filename))
    return drivers


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> int:
    """Download a file, streaming it to disk.

    Returns:
        Number of bytes written.

    Raises:
        ExternalToolError: On an invalid URL, HTTP status, timeout or network
            errors. A partially written file is removed.
    """
    logger.info("Downloading %s to %s", url, dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)

    except httpx.InvalidURL as e:
        dest_path.unlink(missing_ok=True)
        raise ExternalToolError(
            f"Invalid download URL {url!r}: {e}",
            code="invalid_url",
        ) from e
    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise ExternalToolError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise ExternalToolError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise ExternalToolError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    logger.debug("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return total_bytes


class DriverFetcher:
    """Stores driver packages in the image for offline installation."""

    def __init__(
        self,
        config: BuildConfig,
        runner: CommandRunner,
        client: httpx.Client | None = None,
        timeout: float = DOWNLOAD_TIMEOUT,
    ) -> None:
        self.config = config
        self.paths = config.paths
        self.runner = runner
        self.client = client
        self.timeout = timeout

    def _pkg(self) -> list[str]:
        return ["-R", f"{self.paths.pkg_dir}/"]

    def resolve_package_url(self, channel: Channel) -> str:
        """Return the download base URL of the channel's repository."""
        result = self.runner.run(["pkg-static", *self._pkg(), "-vv"])
        url = parse_repository_url(result.stdout, channel)
        logger.info("Driver repository: %s", url)
        return url

    def query_drivers(self) -> list[DriverPackage]:
        """Refresh the catalogue and list available driver packages."""
        self.runner.run(["pkg", *self._pkg(), "update"], input_text="y\n")
        result = self.runner.run(
            [
                "pkg",
                *self._pkg(),
                "rquery",
                "-x",
                "-r",
                self.config.pkg_conf,
                "%n %n-%v.pkg",
                DRIVER_PATTERN,
            ]
        )
        return parse_driver_query(result.stdout)

    def fetch(self, root: Path, channel: Channel) -> list[DriverPackage]:
        """Write the driver list into ``root`` and download every package.

        Returns:
            The driver packages that were downloaded.
        """
        url = self.resolve_package_url(channel)
        drivers = self.query_drivers()

        xdrivers = root / "xdrivers"
        xdrivers.mkdir(parents=True, exist_ok=True)
        (xdrivers / DRIVERS_LIST_NAME).write_text(
            "".join(f"{d.name} {d.filename}\n" for d in drivers), encoding="utf-8"
        )
        logger.info("Fetching %d driver packages", len(drivers))

        client = self.client or httpx.Client(follow_redirects=True)
        try:
            for driver in drivers:
                download_file(
                    client,
                    f"{url}/All/{driver.filename}",
                    xdrivers / driver.filename,
                    timeout=self.timeout,
                )
        finally:
            if self.client is None:
                client.close()

        return drivers


__all__ = [
    "DRIVERS_LIST_NAME",
    "DRIVER_PATTERN",
    "DriverFetcher",
    "DriverPackage",
    "download_file",
    "parse_driver_query",
    "parse_repository_url",
]
