"""
PlatformDescriptor — where are we installing?

Computed once per run by ``detection.platform.detect()`` and never
mutated afterwards (frozen model).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

Architecture = Literal["x86_64", "aarch64", "i686"]


class PlatformDescriptor(BaseModel):
    """Canonical description of the target machine.

    ``os_family`` is the Linux distro id (``ubuntu``, ``fedora``, ...),
    ``macos`` or ``windows``.  ``os_family_like`` carries the os-release
    ``ID_LIKE`` entries on Linux and is ``None`` elsewhere.
    """

    model_config = ConfigDict(frozen=True)

    os_family: str
    os_family_like: frozenset[str] | None = None
    architecture: Architecture
    target_triple: str

    @property
    def is_macos(self) -> bool:
        return self.os_family == "macos"

    @property
    def is_windows(self) -> bool:
        return self.os_family == "windows"

    @property
    def is_linux(self) -> bool:
        return not (self.is_macos or self.is_windows)

    def is_like(self, *ids: str) -> bool:
        """Whether the OS id or any of its ID_LIKE entries is in *ids*."""
        if self.os_family in ids:
            return True
        return bool(self.os_family_like and self.os_family_like.intersection(ids))
