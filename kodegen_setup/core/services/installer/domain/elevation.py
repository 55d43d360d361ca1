"""
L1 Domain — Privilege decisions and grants (pure).

No I/O, no subprocess.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Decision(StrEnum):
    """Outcome of privilege negotiation for system dependencies."""

    PROCEED = "proceed"          # elevation (or none needed) is available
    DECLINE = "decline"          # the user said no; continue without deps
    UNAVAILABLE = "unavailable"  # elevation is needed and cannot be had


class ElevationMethod(StrEnum):
    NONE = "none"                    # command needs no privilege
    ROOT = "root"                    # already running as root
    SUDO_CACHED = "sudo-cached"      # sudo -n works (cached or NOPASSWD)
    SUDO_PASSWORD = "sudo-password"  # password piped to sudo -S -k


@dataclass
class Elevation:
    """How privileged commands run for the rest of this process.

    The password is held in memory only and excluded from ``repr``.
    """

    method: ElevationMethod = ElevationMethod.NONE
    password: str = field(default="", repr=False)

    @property
    def is_privileged(self) -> bool:
        return self.method is not ElevationMethod.NONE

    def prefix(self) -> list[str]:
        """argv prefix for a privileged command."""
        if self.method is ElevationMethod.SUDO_CACHED:
            return ["sudo", "-n"]
        if self.method is ElevationMethod.SUDO_PASSWORD:
            return ["sudo", "-S", "-k"]
        return []

    def stdin(self) -> str | None:
        if self.method is ElevationMethod.SUDO_PASSWORD and self.password:
            return self.password + "\n"
        return None


NO_ELEVATION = Elevation()
