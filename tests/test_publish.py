"""Tests for image/publish.py module."""

import hashlib
import stat
from pathlib import Path

import pytest

from ghostbsd_build.errors import ExternalToolError
from ghostbsd_build.image.publish import (
    TRACKERS,
    ImageFinalizer,
    compute_file_sha256,
    format_checksum_line,
    parse_checksum_file,
    verify_checksum_file,
)

from conftest import ISO_CONTENT


class TestChecksums:
    """Tests for checksum helpers."""

    def test_compute_checksum(self, tmp_path):
        test_file = tmp_path / "test.iso"
        test_file.write_bytes(b"Hello, World!")

        assert compute_file_sha256(test_file) == hashlib.sha256(b"Hello, World!").hexdigest()

    def test_large_file_chunked(self, tmp_path):
        content = b"x" * (3 * 1024 * 1024 + 17)
        test_file = tmp_path / "large.iso"
        test_file.write_bytes(content)

        assert compute_file_sha256(test_file, chunk_size=4096) == hashlib.sha256(content).hexdigest()

    def test_sha256_format(self, tmp_path):
        iso = tmp_path / "GhostBSD24.07.1.iso"
        line = format_checksum_line(iso, "ab" * 32)
        assert line == f"SHA256 ({iso}) = {'ab' * 32}\n"

    def test_parse_and_verify(self, tmp_path):
        iso = tmp_path / "GhostBSD24.07.1.iso"
        iso.write_bytes(ISO_CONTENT)
        digest = hashlib.sha256(ISO_CONTENT).hexdigest()
        checksum = tmp_path / "GhostBSD24.07.1.iso.sha256"
        checksum.write_text(format_checksum_line(iso, digest))

        assert parse_checksum_file(checksum) == (iso, digest)
        assert verify_checksum_file(checksum)

        iso.write_bytes(b"tampered")
        assert not verify_checksum_file(checksum)

    def test_parse_rejects_other_formats(self, tmp_path):
        checksum = tmp_path / "sums"
        checksum.write_text(f"{'a' * 64}  GhostBSD.iso\n")

        with pytest.raises(ValueError):
            parse_checksum_file(checksum)


def _write_iso(argv):
    Path(argv[4]).write_bytes(ISO_CONTENT)


def _write_torrent(argv):
    Path(argv[argv.index("-o") + 1]).write_bytes(b"d8:announce")


class TestImageFinalizer:
    """Tests for ImageFinalizer.publish."""

    @pytest.fixture
    def publish_runner(self, runner):
        runner.on("sh", "mkisoimages.sh", action=_write_iso)
        runner.on("transmission-create", action=_write_torrent)
        return runner

    def test_publish(self, config, publish_runner):
        paths = config.paths
        iso = paths.iso_path("24.07.1")

        result = ImageFinalizer(config, publish_runner).publish(paths.cd_root, iso, "mate")

        mkiso = publish_runner.calls[0]
        assert mkiso.argv == ["sh", "mkisoimages.sh", "-b", "mate", str(iso), str(paths.cd_root)]
        assert mkiso.cwd == paths.script_dir

        digest = hashlib.sha256(ISO_CONTENT).hexdigest()
        assert result.iso_path == iso
        assert result.sha256 == digest
        assert result.size_bytes == len(ISO_CONTENT)
        assert result.checksum_path.read_text() == f"SHA256 ({iso}) = {digest}\n"

    def test_torrent_command_and_mode(self, config, publish_runner):
        iso = config.paths.iso_path("24.07.1")
        torrent = iso.with_name(iso.name + ".torrent")

        result = ImageFinalizer(config, publish_runner).publish(config.paths.cd_root, iso, "mate")

        expected = ["transmission-create", "-o", str(torrent)]
        for tracker in TRACKERS:
            expected += ["-t", tracker]
        expected.append(str(iso))
        assert publish_runner.commands[-1] == expected
        assert result.torrent_path == torrent
        assert stat.S_IMODE(torrent.stat().st_mode) == 0o644

    def test_existing_torrent_replaced(self, config, publish_runner):
        """A torrent from an earlier build of the same version is not reused."""
        iso = config.paths.iso_path("24.07.1")
        torrent = iso.with_name(iso.name + ".torrent")
        torrent.parent.mkdir(parents=True)
        torrent.write_bytes(b"stale")
        seen = []

        def create(argv):
            seen.append(torrent.exists())
            torrent.write_bytes(b"new")

        publish_runner.on("transmission-create", action=create)

        ImageFinalizer(config, publish_runner).publish(config.paths.cd_root, iso, "mate")

        assert seen == [False]
        assert torrent.read_bytes() == b"new"

    def test_missing_iso(self, config, runner):
        """A mastering script that produces nothing is a failure."""
        iso = config.paths.iso_path("24.07.1")

        with pytest.raises(ExternalToolError) as exc_info:
            ImageFinalizer(config, runner).publish(config.paths.cd_root, iso, "mate")

        assert exc_info.value.code == "iso_missing"
        assert not runner.ran("transmission-create")
