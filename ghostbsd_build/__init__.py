"""GhostBSD Build - live installer ISO build pipeline.

This package drives the tools of a FreeBSD build host (ZFS, pkg, makefs,
the ISO mastering script) to turn package lists for a desktop variant
into a bootable, checksummed and torrent-published GhostBSD ISO.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
