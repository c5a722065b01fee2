"""Tests for manifests.py module."""

import pytest

from ghostbsd_build.errors import ConfigurationError
from ghostbsd_build.manifests import (
    list_desktops,
    load_build_manifests,
    load_manifest,
    parse_package_list,
)
from ghostbsd_build.pipeline import build_iso
from ghostbsd_build.types import Channel


class TestParsePackageList:
    """Tests for parse_package_list function."""

    def test_whitespace_separated(self):
        text = "FreeBSD-runtime  FreeBSD-kernel-generic\n\tghostbsd-version\n"
        assert parse_package_list(text) == (
            "FreeBSD-runtime",
            "FreeBSD-kernel-generic",
            "ghostbsd-version",
        )

    def test_duplicates_dropped_keeping_first(self):
        assert parse_package_list("b a b c a") == ("b", "a", "c")

    def test_empty(self):
        assert parse_package_list("\n  \n") == ()


class TestLoadManifest:
    """Tests for load_manifest function."""

    def test_loads_list_and_vital(self, source_tree):
        manifest = load_manifest(source_tree / "packages", "mate")

        assert manifest.name == "mate"
        assert manifest.packages == ("mate", "xorg", "lightdm", "ghostbsd-mate-settings")
        assert manifest.vital == ("mate", "xorg")

    def test_missing_list(self, source_tree):
        with pytest.raises(ConfigurationError) as exc_info:
            load_manifest(source_tree / "packages", "kde")
        assert exc_info.value.code == "manifest_not_found"

    def test_missing_vital_list(self, source_tree):
        (source_tree / "packages" / "vital" / "xfce").unlink()

        with pytest.raises(ConfigurationError) as exc_info:
            load_manifest(source_tree / "packages", "xfce")
        assert exc_info.value.code == "manifest_not_found"

    def test_empty_list(self, source_tree):
        (source_tree / "packages" / "xfce").write_text("\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_manifest(source_tree / "packages", "xfce")
        assert exc_info.value.code == "manifest_empty"

    def test_empty_vital_list_allowed(self, source_tree):
        (source_tree / "packages" / "vital" / "xfce").write_text("")

        manifest = load_manifest(source_tree / "packages", "xfce")
        assert manifest.vital == ()

    def test_undecodable_list(self, source_tree):
        (source_tree / "packages" / "xfce").write_bytes(b"xfce \xff\xfe xorg\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_manifest(source_tree / "packages", "xfce")
        assert exc_info.value.code == "manifest_unreadable"

    def test_vital_must_be_subset(self, source_tree):
        (source_tree / "packages" / "vital" / "xfce").write_text("xfce firefox\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_manifest(source_tree / "packages", "xfce")
        assert exc_info.value.code == "vital_not_subset"
        assert "firefox" in exc_info.value.message


class TestLoadBuildManifests:
    """Tests for load_build_manifests function."""

    def test_full_build(self, config):
        manifests = load_build_manifests(config)

        assert manifests.base.name == "base"
        assert manifests.software is not None
        assert manifests.software.name == "mate"

    def test_test_build_uses_test_base_only(self, make_config):
        manifests = load_build_manifests(make_config(desktop="test", channel=Channel.TEST))

        assert manifests.base.name == "test_base"
        assert manifests.software is None

    def test_unknown_desktop_lists_available(self, make_config):
        with pytest.raises(ConfigurationError) as exc_info:
            load_build_manifests(make_config(desktop="kde"))

        assert exc_info.value.code == "unknown_desktop"
        assert "mate" in exc_info.value.message
        assert "xfce" in exc_info.value.message

    def test_missing_desktop_script(self, make_config, source_tree):
        (source_tree / "desktop_config" / "xfce.sh").unlink()

        with pytest.raises(ConfigurationError) as exc_info:
            load_build_manifests(make_config(desktop="xfce"))
        assert exc_info.value.code == "desktop_config_not_found"

    def test_undecodable_list_aborts_build(self, config, source_tree, runner):
        """A corrupt package list stops the build before any host command."""
        (source_tree / "packages" / "mate").write_bytes(b"mate \xff\xfe xorg\n")

        with pytest.raises(ConfigurationError) as exc_info:
            build_iso(config, runner)

        assert exc_info.value.code == "manifest_unreadable"
        assert runner.calls == []


class TestListDesktops:
    """Tests for list_desktops function."""

    def test_lists_variants_with_script(self, source_tree):
        # base and test_base have no desktop script
        assert list_desktops(source_tree) == ["mate", "xfce"]

    def test_missing_packages_dir(self, tmp_path):
        assert list_desktops(tmp_path) == []
