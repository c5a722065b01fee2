"""ISO mastering and publishing.

This module handles:
- Running the ISO mastering script against the staging tree
- Computing the ISO checksum and writing it in sha256(1) format
- Creating the torrent descriptor for distribution
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.errors import ExternalToolError
from ghostbsd_build.runner import CommandRunner
from ghostbsd_build.types import PublishResult

logger = logging.getLogger(__name__)

TRACKERS = (
    "http://tracker.openbittorrent.com:80/announce",
    "udp://tracker.opentrackr.org:1337",
    "udp://tracker.coppersurfer.tk:6969",
)

MKISO_SCRIPT = "mkisoimages.sh"

CHECKSUM_SUFFIX = ".sha256"
TORRENT_SUFFIX = ".torrent"
TORRENT_MODE = 0o644

# Default chunk size for hashing
HASH_CHUNK_SIZE = 1024 * 1024  # 1 MiB

_CHECKSUM_LINE = re.compile(r"^SHA256 \((?P<path>.+)\) = (?P<digest>[0-9a-f]{64})$")


def compute_file_sha256(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def format_checksum_line(path: Path, digest: str) -> str:
    """Format a digest the way sha256(1) prints it."""
    return f"SHA256 ({path}) = {digest}\n"


def parse_checksum_file(checksum_path: Path) -> tuple[Path, str]:
    """Read the path and digest recorded in a checksum file.

    Raises:
        ValueError: If the file is not in sha256(1) format.
    """
    line = checksum_path.read_text(encoding="utf-8").strip()
    match = _CHECKSUM_LINE.match(line)
    if match is None:
        raise ValueError(f"Not a sha256 checksum file: {checksum_path}")
    return Path(match.group("path")), match.group("digest")


def verify_checksum_file(checksum_path: Path) -> bool:
    """Recompute the digest of the recorded file and compare."""
    path, digest = parse_checksum_file(checksum_path)
    return compute_file_sha256(path) == digest


class ImageFinalizer:
    """Masters the ISO and produces its checksum and torrent files."""

    def __init__(self, config: BuildConfig, runner: CommandRunner) -> None:
        self.config = config
        self.paths = config.paths
        self.runner = runner

    def publish(self, staging: Path, iso_path: Path, label: str) -> PublishResult:
        """Master ``staging`` into ``iso_path`` and publish it.

        Args:
            staging: Staging tree (the future ISO root).
            iso_path: Output ISO path.
            label: Volume label passed to the mastering script.

        Returns:
            PublishResult describing the produced files.

        Raises:
            ExternalToolError: If mastering or torrent creation fails, or no
                ISO was produced.
        """
        iso_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Mastering %s", iso_path)
        self.runner.run(
            ["sh", MKISO_SCRIPT, "-b", label, str(iso_path), str(staging)],
            cwd=self.paths.script_dir,
        )
        if not iso_path.is_file():
            raise ExternalToolError(
                f"{MKISO_SCRIPT} did not produce {iso_path}", code="iso_missing"
            )

        digest = compute_file_sha256(iso_path)
        checksum_path = iso_path.with_name(iso_path.name + CHECKSUM_SUFFIX)
        checksum_path.write_text(format_checksum_line(iso_path, digest), encoding="utf-8")
        logger.info("SHA256 %s", digest)

        torrent_path = iso_path.with_name(iso_path.name + TORRENT_SUFFIX)
        torrent_path.unlink(missing_ok=True)
        argv = ["transmission-create", "-o", str(torrent_path)]
        for tracker in TRACKERS:
            argv.extend(["-t", tracker])
        argv.append(str(iso_path))
        self.runner.run(argv)
        torrent_path.chmod(TORRENT_MODE)

        return PublishResult(
            iso_path=iso_path,
            checksum_path=checksum_path,
            torrent_path=torrent_path,
            sha256=digest,
            size_bytes=iso_path.stat().st_size,
        )


__all__ = [
    "CHECKSUM_SUFFIX",
    "ImageFinalizer",
    "TORRENT_SUFFIX",
    "TRACKERS",
    "compute_file_sha256",
    "format_checksum_line",
    "parse_checksum_file",
    "verify_checksum_file",
]
