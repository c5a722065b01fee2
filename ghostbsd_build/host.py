"""Build host precondition checks.

Run before the pipeline starts; the pipeline itself assumes both hold.
"""

import logging
import os

from ghostbsd_build.errors import HostEnvironmentError

logger = logging.getLogger(__name__)

SUPPORTED_KERNELS = ("13.3-STABLE", "14.1-STABLE", "15.0-CURRENT")


def check_host(
    uid: int | None = None,
    kernel_release: str | None = None,
) -> None:
    """Verify the build host can run a build.

    Args:
        uid: Effective user ID (defaults to the current process).
        kernel_release: Kernel release string (defaults to ``uname -r``).

    Raises:
        HostEnvironmentError: If not running as root or the kernel release
            is not supported.
    """
    if uid is None:
        uid = os.geteuid()
    if kernel_release is None:
        kernel_release = os.uname().release

    if uid != 0:
        raise HostEnvironmentError(
            "This build must be run as root", code="not_root"
        )
    if kernel_release not in SUPPORTED_KERNELS:
        raise HostEnvironmentError(
            f"FreeBSD or GhostBSD release {kernel_release} is not supported "
            f"(supported: {', '.join(SUPPORTED_KERNELS)})",
            code="unsupported_kernel",
        )
    logger.debug("Host check passed: kernel %s", kernel_release)


__all__ = ["SUPPORTED_KERNELS", "check_host"]
