"""
Adapters — production implementations of the installer's collaborators.
"""

from kodegen_setup.adapters.base import (
    BuildToolchain,
    Interaction,
    PackageManager,
    ReleaseIndex,
    SourceFetcher,
)

__all__ = [
    "BuildToolchain",
    "Interaction",
    "PackageManager",
    "ReleaseIndex",
    "SourceFetcher",
]
