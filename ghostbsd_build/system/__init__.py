"""Release root provisioning.

This module handles:
- Storage pool and mount point lifecycle
- Base and desktop package installation
- Driver package download
- Live session configuration
"""

from ghostbsd_build.system.configure import SystemConfigurator
from ghostbsd_build.system.drivers import DriverFetcher
from ghostbsd_build.system.packages import PackageInstaller
from ghostbsd_build.system.resources import ResourceManager

__all__ = [
    "DriverFetcher",
    "PackageInstaller",
    "ResourceManager",
    "SystemConfigurator",
]
