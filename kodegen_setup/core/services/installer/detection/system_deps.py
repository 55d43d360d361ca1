"""
L3 Detection — System dependency checking.

Read-only probes for package/binary availability.  Works out which
requirements are missing on this machine; never installs anything.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from kodegen_setup.core.models.dependency import Check, MissingSet, Requirement
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.data.requirements import (
    DISTRO_FAMILIES,
    FALLBACK_MANAGERS,
    FAMILY_MANAGERS,
    requirements_for,
)
from kodegen_setup.core.services.installer.detection.environment import search_path
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
)

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import PackageManager

logger = logging.getLogger(__name__)


def _is_pkg_installed(pkg: str, pkg_manager: str, *, runner: Runner = _run_subprocess) -> bool:
    """Check if a single system package is installed.

    Uses the appropriate checker for the given package manager:
      apt    → dpkg-query -W -f='${Status}' PKG
      dnf    → rpm -q PKG
      yum    → rpm -q PKG
      zypper → rpm -q PKG
      apk    → apk info -e PKG
      pacman → pacman -Q PKG
      brew   → brew ls --versions PKG
      winget → winget list --id PKG --exact

    Returns:
        True if installed, False if not installed or the check failed.
    """
    timeout = TIMEOUTS["check"]
    if pkg_manager == "apt":
        r = runner(["dpkg-query", "-W", "-f=${Status}", pkg], timeout=timeout)
        return r["ok"] and "install ok installed" in r.get("stdout", "")
    if pkg_manager in ("dnf", "yum", "zypper"):
        return runner(["rpm", "-q", pkg], timeout=timeout)["ok"]
    if pkg_manager == "apk":
        return runner(["apk", "info", "-e", pkg], timeout=timeout)["ok"]
    if pkg_manager == "pacman":
        return runner(["pacman", "-Q", pkg], timeout=timeout)["ok"]
    if pkg_manager == "brew":
        return runner(["brew", "ls", "--versions", pkg], timeout=30)["ok"]  # brew is slow
    if pkg_manager == "winget":
        return runner(["winget", "list", "--id", pkg, "--exact"], timeout=30)["ok"]
    return False


def detect_family(
    platform: PlatformDescriptor,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> tuple[str, str]:
    """Return ``(family, manager)`` for *platform*.

    Distro ID first, then ``ID_LIKE``, then whichever package manager
    binary is on PATH.  ``("unknown", "unknown")`` if nothing matches.
    """
    family = DISTRO_FAMILIES.get(platform.os_family)
    if family is None and platform.os_family.startswith("opensuse"):
        family = "suse"
    if family is None:
        for like in sorted(platform.os_family_like or ()):
            if like in DISTRO_FAMILIES:
                family = DISTRO_FAMILIES[like]
                break

    if family is not None:
        manager = FAMILY_MANAGERS[family]
        if manager == "dnf" and which("dnf") is None and which("yum") is not None:
            manager = "yum"
        return family, manager

    for binary, manager, fallback_family in FALLBACK_MANAGERS:
        if which(binary):
            logger.info(
                "Unknown distro %r, using %s found on PATH", platform.os_family, binary,
            )
            return fallback_family, manager

    logger.warning("Could not detect a package manager for %r", platform.os_family)
    return "unknown", "unknown"


def _check_passes(
    check: Check,
    *,
    manager: PackageManager | None,
    which: Callable[[str], str | None],
    path_exists: Callable[[str], bool],
    runner: Runner,
) -> bool:
    if check.kind == "command":
        return which(check.target) is not None
    if check.kind == "command_succeeds":
        if not check.argv or which(check.argv[0]) is None:
            return False
        return runner(list(check.argv), timeout=TIMEOUTS["check"])["ok"]
    if check.kind == "package":
        return manager is not None and manager.is_installed(check.target)
    if check.kind == "header":
        return path_exists(check.target)
    return False


def is_satisfied(
    requirement: Requirement,
    *,
    manager: PackageManager | None = None,
    which: Callable[[str], str | None] = shutil.which,
    path_exists: Callable[[str], bool] = lambda p: Path(p).exists(),
    runner: Runner = _run_subprocess,
) -> bool:
    """A requirement is satisfied if any of its checks passes (cheapest first)."""
    for check in requirement.ordered_checks():
        if _check_passes(
            check, manager=manager, which=which, path_exists=path_exists, runner=runner,
        ):
            logger.debug("%s satisfied by %s %s", requirement.name, check.kind,
                         check.target or " ".join(check.argv))
            return True
    return False


def resolve(
    platform: PlatformDescriptor,
    *,
    manager: PackageManager | None = None,
    family: tuple[str, str] | None = None,
    env: Mapping[str, str] | None = None,
    which: Callable[[str], str | None] | None = None,
    path_exists: Callable[[str], bool] = lambda p: Path(p).exists(),
    runner: Runner = _run_subprocess,
) -> MissingSet:
    """Work out which requirements are missing.

    Read-only and monotonic: installing something can only shrink the
    result.  Never calls the package manager's install.

    Args:
        platform: Detected platform.
        manager: Package manager used for ``package`` checks.
        family: Pre-computed ``(family, manager_name)``.
        env: Environment whose PATH is searched.
    """
    if which is None:
        path = search_path(env=env)

        def which(name: str) -> str | None:
            return shutil.which(name, path=path)

    fam, mgr = family or detect_family(platform, which=which)
    requirements = requirements_for(fam)

    missing = [
        req for req in requirements
        if not is_satisfied(
            req, manager=manager, which=which, path_exists=path_exists, runner=runner,
        )
    ]
    result = MissingSet(family=fam, manager=mgr, requirements=missing)
    if result.empty:
        logger.info("All system dependencies present (%s/%s)", fam, mgr)
    else:
        logger.info("Missing system dependencies (%s/%s): %s", fam, mgr, ", ".join(result.names))
    return result
