"""Shared fixtures: a recording command runner and a build source tree."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from ghostbsd_build.config import BuildConfig
from ghostbsd_build.runner import CommandResult, raise_for_result
from ghostbsd_build.types import Channel

RELEASE_VERSION = "24.07.1"
ISO_CONTENT = b"GhostBSD ISO 9660 payload\x00" * 64


@dataclass
class Call:
    """A command recorded by FakeRunner."""

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    input_text: str | None = None
    stdout_path: Path | None = None


@dataclass
class _Response:
    prefix: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    action: Callable[[list[str]], None] | None


class FakeRunner:
    """CommandRunner that records commands instead of executing them.

    Every command succeeds with empty output unless a response registered
    with ``on()`` matches the start of its argv; the last registered
    match wins.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._responses: list[_Response] = []

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        action: Callable[[list[str]], None] | None = None,
    ) -> None:
        self._responses.append(_Response(prefix, returncode, stdout, stderr, action))

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
        stdout_path: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        argv_list = [str(a) for a in argv]
        self.calls.append(Call(argv_list, cwd, env, input_text, stdout_path))

        result = CommandResult(argv=argv_list, returncode=0)
        for response in reversed(self._responses):
            if tuple(argv_list[: len(response.prefix)]) == response.prefix:
                if response.action is not None:
                    response.action(argv_list)
                result = CommandResult(
                    argv=argv_list,
                    returncode=response.returncode,
                    stdout=response.stdout,
                    stderr=response.stderr,
                )
                break

        if stdout_path is not None:
            stdout_path.parent.mkdir(parents=True, exist_ok=True)
            stdout_path.write_text(result.stdout)
        if check:
            raise_for_result(result)
        return result

    @property
    def commands(self) -> list[list[str]]:
        return [c.argv for c in self.calls]

    def matching(self, *prefix: str) -> list[int]:
        """Indexes of recorded commands starting with ``prefix``."""
        return [
            i
            for i, argv in enumerate(self.commands)
            if tuple(argv[: len(prefix)]) == prefix
        ]

    def ran(self, *prefix: str) -> bool:
        return bool(self.matching(*prefix))

    def first(self, *prefix: str) -> int:
        indexes = self.matching(*prefix)
        assert indexes, f"{' '.join(prefix)} was never run"
        return indexes[0]

    def last(self, *prefix: str) -> int:
        indexes = self.matching(*prefix)
        assert indexes, f"{' '.join(prefix)} was never run"
        return indexes[-1]


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """Create a build source tree with base, test and two desktop variants."""
    src = tmp_path / "src"
    _write(src / "packages" / "base", "FreeBSD-runtime FreeBSD-kernel-generic\nghostbsd-version\n")
    _write(src / "packages" / "vital" / "base", "FreeBSD-runtime\n")
    _write(src / "packages" / "test_base", "FreeBSD-runtime FreeBSD-kernel-generic\n")
    _write(src / "packages" / "vital" / "test_base", "FreeBSD-runtime\n")
    _write(src / "packages" / "mate", "mate xorg lightdm\nghostbsd-mate-settings\n")
    _write(src / "packages" / "vital" / "mate", "mate xorg\n")
    _write(src / "packages" / "xfce", "xfce xorg lightdm\n")
    _write(src / "packages" / "vital" / "xfce", "xfce\n")
    _write(src / "desktop_config" / "mate.sh", "#!/bin/sh\n")
    _write(src / "desktop_config" / "xfce.sh", "#!/bin/sh\n")
    _write(src / "desktop_config" / "test.sh", "#!/bin/sh\n")
    _write(src / "pkg" / "GhostBSD.conf", 'GhostBSD: { url: "https://pkg.ghostbsd.org/stable" }\n')
    _write(src / "pkg" / "GhostBSD_Unstable.conf", 'GhostBSD: { url: "https://pkg.ghostbsd.org/unstable" }\n')
    _write(src / "boot" / "loader.conf", 'beastie_disable="YES"\n')
    _write(src / "script" / "mkisoimages.sh", "#!/bin/sh\n")
    _write(src / "init.sh.in", "#!/rescue/sh\n")
    _write(src / "rc.in", "#!/rescue/sh\n")
    _write(src / "COPYRIGHT", "Copyright\n")
    _write(src / "LICENSE", "BSD-2-Clause\n")
    return src


@pytest.fixture
def make_config(tmp_path: Path, source_tree: Path) -> Callable[..., BuildConfig]:
    """Factory for BuildConfig pointing at the temporary source tree."""
    resolv_conf = tmp_path / "resolv.conf"
    resolv_conf.write_text("nameserver 192.0.2.53\n")

    def factory(desktop: str = "mate", channel: Channel = Channel.RELEASE) -> BuildConfig:
        return BuildConfig(
            desktop=desktop,
            channel=channel,
            source_dir=source_tree,
            workdir=tmp_path / "usr_local",
            resolv_conf=resolv_conf,
        )

    return factory


@pytest.fixture
def config(make_config: Callable[..., BuildConfig]) -> BuildConfig:
    return make_config()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


def populate_release(root: Path) -> None:
    """Files the base packages would have installed."""
    _write(root / "etc" / "version", f"{RELEASE_VERSION}\n")
    _write(root / "etc" / "login.conf", "default:\\\n\t:path=/sbin /bin:\n")


def host_tools(runner: FakeRunner, release: Path) -> FakeRunner:
    """Teach a FakeRunner the side effects of a successful build."""
    runner.on("pkg-static", "-r", action=lambda argv: populate_release(release))
    runner.on(
        "pkg-static",
        "-R",
        stdout=(
            "Repositories:\n"
            '  GhostBSD: {\n    url             : "pkg+https://pkg.ghostbsd.org/stable/FreeBSD:14:amd64/latest",\n'
            '  GhostBSD_Unstable: {\n    url             : "https://pkg.ghostbsd.org/unstable/FreeBSD:14:amd64/latest",\n'
        ),
    )
    runner.on("pkg", "-R", stdout="")
    runner.on(
        "sh",
        "mkisoimages.sh",
        action=lambda argv: Path(argv[4]).write_bytes(ISO_CONTENT),
    )
    runner.on(
        "transmission-create",
        action=lambda argv: Path(argv[argv.index("-o") + 1]).write_bytes(b"d8:announce"),
    )
    return runner


@pytest.fixture
def build_runner(runner: FakeRunner, config: BuildConfig) -> FakeRunner:
    return host_tools(runner, config.paths.release)
