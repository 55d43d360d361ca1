"""
Package manager adapter — one class for every supported OS manager.

Only two operations are needed: "is this package installed?" and
"install these packages".  Commands come from the requirements table.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from typing import Any

from kodegen_setup.adapters.base import PackageManager
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.data.requirements import (
    INSTALL_COMMANDS,
    MANUAL_INSTRUCTIONS,
    NO_ELEVATION_MANAGERS,
    install_command,
)
from kodegen_setup.core.services.installer.detection.system_deps import _is_pkg_installed
from kodegen_setup.core.services.installer.domain.elevation import Elevation
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
)

_BINARIES: dict[str, str] = {
    "apt": "apt-get",
    "dnf": "dnf",
    "yum": "yum",
    "zypper": "zypper",
    "pacman": "pacman",
    "apk": "apk",
    "brew": "brew",
    "winget": "winget",
}


class SystemPackageManager(PackageManager):
    """apt / dnf / yum / zypper / pacman / apk / brew / winget."""

    def __init__(
        self,
        name: str,
        *,
        runner: Runner = _run_subprocess,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        if name not in INSTALL_COMMANDS:
            raise ValueError(f"Unsupported package manager: {name}")
        self._name = name
        self.runner = runner
        self.which = which
        self._executable: str | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def needs_elevation(self) -> bool:
        return self._name not in NO_ELEVATION_MANAGERS

    def is_available(self) -> bool:
        return self.which(self._executable or _BINARIES[self._name]) is not None

    def is_installed(self, package: str) -> bool:
        return _is_pkg_installed(package, self._name, runner=self.runner)

    def install_command(self, packages: list[str]) -> list[str]:
        argv = install_command(self._name, packages)
        if argv and self._executable:
            argv[0] = self._executable
        return argv

    def use_executable(self, path: str) -> None:
        self._executable = path

    def install(self, packages: list[str], *, elevation: Elevation | None = None) -> dict[str, Any]:
        grant = elevation if self.needs_elevation else None
        if self._name == "winget":
            # winget installs one id per invocation
            for pkg in packages:
                result = self.runner(
                    self.install_command([pkg]), timeout=TIMEOUTS["package"],
                )
                if not result["ok"]:
                    return result
            return {"ok": True, "stdout": "", "stderr": "", "returncode": 0}
        return self.runner(
            self.install_command(packages), elevation=grant, timeout=TIMEOUTS["package"],
        )


class UnknownPackageManager(PackageManager):
    """Placeholder when no supported manager exists; cannot install."""

    @property
    def name(self) -> str:
        return "unknown"

    def is_available(self) -> bool:
        return False

    def is_installed(self, package: str) -> bool:
        return False

    def install_command(self, packages: list[str]) -> list[str]:
        return []

    def install(self, packages: list[str], *, elevation: Elevation | None = None) -> dict[str, Any]:
        return {"ok": False, "returncode": None, "stdout": "", "stderr": "", "error": MANUAL_INSTRUCTIONS}


def get_package_manager(name: str, *, runner: Runner = _run_subprocess) -> PackageManager:
    """Adapter for manager *name* (``unknown`` → ``UnknownPackageManager``)."""
    if name in INSTALL_COMMANDS:
        return SystemPackageManager(name, runner=runner)
    return UnknownPackageManager()
