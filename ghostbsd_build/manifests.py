"""Package manifest loading.

A manifest is a plain whitespace-separated list of package identifiers in
``packages/<name>``, paired with the subset that must be protected from
removal in ``packages/vital/<name>``. Both are validated before any
pipeline stage runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.errors import ConfigurationError

logger = logging.getLogger(__name__)

VITAL_DIR = "vital"


@dataclass(frozen=True)
class PackageManifest:
    """An ordered package list and its vital subset."""

    name: str
    packages: tuple[str, ...]
    vital: tuple[str, ...] = ()


@dataclass(frozen=True)
class BuildManifests:
    """Manifests used by a build: base system and desktop software."""

    base: PackageManifest
    software: PackageManifest | None = None


def parse_package_list(text: str) -> tuple[str, ...]:
    """Split manifest text into package identifiers, keeping their order."""
    seen: set[str] = set()
    packages: list[str] = []
    for token in text.split():
        if token not in seen:
            seen.add(token)
            packages.append(token)
    return tuple(packages)


def _read_list(path: Path) -> tuple[str, ...]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(
            f"Package list not found: {path}", code="manifest_not_found"
        ) from None
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(
            f"Cannot read package list {path}: {e}", code="manifest_unreadable"
        ) from e
    return parse_package_list(text)


def load_manifest(packages_dir: Path, name: str) -> PackageManifest:
    """Load a manifest and its vital companion.

    Args:
        packages_dir: Directory holding the package lists.
        name: Manifest name (file name under packages_dir).

    Returns:
        Validated PackageManifest.

    Raises:
        ConfigurationError: If a file is missing or unreadable, the list is
            empty, or a vital package is not part of the full list.
    """
    packages = _read_list(packages_dir / name)
    if not packages:
        raise ConfigurationError(
            f"Package list {packages_dir / name} is empty", code="manifest_empty"
        )
    vital = _read_list(packages_dir / VITAL_DIR / name)

    known = set(packages)
    missing = [p for p in vital if p not in known]
    if missing:
        raise ConfigurationError(
            f"Vital packages not in {name} package list: {', '.join(missing)}",
            code="vital_not_subset",
        )

    logger.debug(
        "Loaded manifest %s: %d packages, %d vital", name, len(packages), len(vital)
    )
    return PackageManifest(name=name, packages=packages, vital=vital)


def load_build_manifests(config: BuildConfig) -> BuildManifests:
    """Load and validate everything a build reads from the source tree.

    Test builds use the ``test_base`` list and install no desktop software.
    Full builds use ``base`` plus the desktop's own list and require the
    desktop configuration script.

    Raises:
        ConfigurationError: If any required file is missing or invalid.
    """
    paths = config.paths
    if config.test_mode:
        return BuildManifests(base=load_manifest(paths.packages_dir, "test_base"))

    if not (paths.packages_dir / config.desktop).is_file():
        raise ConfigurationError(
            f"The packages/{config.desktop} file does not exist. "
            f"Available desktops: {', '.join(list_desktops(paths.source_dir)) or 'none'}",
            code="unknown_desktop",
        )
    script = paths.desktop_config_dir / f"{config.desktop}.sh"
    if not script.is_file():
        raise ConfigurationError(
            f"The desktop_config/{config.desktop}.sh file does not exist",
            code="desktop_config_not_found",
        )

    return BuildManifests(
        base=load_manifest(paths.packages_dir, "base"),
        software=load_manifest(paths.packages_dir, config.desktop),
    )


def list_desktops(source_dir: Path) -> list[str]:
    """List desktop variants that have a package list and a config script."""
    packages_dir = source_dir / "packages"
    config_dir = source_dir / "desktop_config"
    if not packages_dir.is_dir():
        return []
    return sorted(
        p.name
        for p in packages_dir.iterdir()
        if p.is_file() and (config_dir / f"{p.name}.sh").is_file()
    )


__all__ = [
    "BuildManifests",
    "PackageManifest",
    "list_desktops",
    "load_build_manifests",
    "load_manifest",
    "parse_package_list",
]
