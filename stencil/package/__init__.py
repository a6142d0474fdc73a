"""Template package acquisition.

Key classes:
    Package            - Versioned package on disk (prepare/exists/install/update)
    PackageDescriptor  - Name, requested/resolved version, paths
    PackageInstaller   - Registry tarball download and extraction
"""

from .cache import LATEST, Package, PackageDescriptor
from .installer import InstallRequest, PackageInstaller, PackageSpec, store_path

__all__ = [
    "LATEST",
    "Package",
    "PackageDescriptor",
    "PackageInstaller",
    "InstallRequest",
    "PackageSpec",
    "store_path",
]
