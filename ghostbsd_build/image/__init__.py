"""Image assembly.

This module handles:
- Streaming a snapshot of the pool into the system image
- Building the early-boot ramdisk
- Staging the boot loader and releasing the pool
- Mastering, checksumming and publishing the ISO
"""

from ghostbsd_build.image.boot import BootAssembler
from ghostbsd_build.image.publish import ImageFinalizer
from ghostbsd_build.image.ramdisk import RamdiskBuilder
from ghostbsd_build.image.snapshot import SnapshotAssembler

__all__ = [
    "BootAssembler",
    "ImageFinalizer",
    "RamdiskBuilder",
    "SnapshotAssembler",
]
