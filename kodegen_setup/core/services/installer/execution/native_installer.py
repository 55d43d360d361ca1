"""
L4 Execution — Release asset selection and native installation.

Each platform family has one installer-package convention:

    debian  → .deb   (arch alias amd64 / arm64)
    fedora  → .rpm
    suse    → .rpm
    macos   → .pkg
    windows → .msi
    other   → .tar.gz whose name contains the target triple
"""

from __future__ import annotations

import logging
import shutil
import stat
import tarfile
from pathlib import Path
from typing import Any

from kodegen_setup.core.models.artifact import Release, ReleaseAsset
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.services.installer.data.constants import _DEB_ARCH_MAP, TIMEOUTS
from kodegen_setup.core.services.installer.domain.elevation import Elevation
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
)

logger = logging.getLogger(__name__)

# Package formats whose installation needs root.
PRIVILEGED_KINDS: frozenset[str] = frozenset({"deb", "rpm", "pkg"})

_EXTENSIONS: dict[str, str] = {
    "deb": ".deb",
    "rpm": ".rpm",
    "pkg": ".pkg",
    "msi": ".msi",
    "tar": ".tar.gz",
}


def package_kind(platform: PlatformDescriptor, family: str) -> str:
    """Installer-package convention for this platform."""
    if platform.is_macos:
        return "pkg"
    if platform.is_windows:
        return "msi"
    if family == "debian":
        return "deb"
    if family in ("fedora", "suse"):
        return "rpm"
    return "tar"


def _arch_tokens(kind: str, platform: PlatformDescriptor) -> tuple[str, ...]:
    arch = platform.architecture
    if kind == "tar":
        return (platform.target_triple,)
    if kind == "deb":
        return (_DEB_ARCH_MAP[arch],)
    if kind == "pkg":
        return (arch, "arm64" if arch == "aarch64" else arch, "universal")
    if kind == "msi":
        return (arch, "x64", "amd64")
    return (arch,)


def select_asset(release: Release, kind: str, platform: PlatformDescriptor) -> ReleaseAsset | None:
    """First asset with the right extension and an architecture token."""
    ext = _EXTENSIONS[kind]
    tokens = _arch_tokens(kind, platform)
    for asset in release.assets:
        name = asset.name.lower()
        if name.endswith(ext) and any(t.lower() in name for t in tokens):
            return asset
    return None


def native_install_command(kind: str, path: Path, *, manager: str = "") -> list[str]:
    """argv that installs the downloaded package at *path*."""
    if kind == "deb":
        return ["apt-get", "install", "-y", str(path)]
    if kind == "rpm":
        tool = manager if manager in ("dnf", "yum", "zypper") else "dnf"
        if tool == "zypper":
            return ["zypper", "--non-interactive", "install", "--allow-unsigned-rpm", str(path)]
        return [tool, "install", "-y", str(path)]
    if kind == "pkg":
        return ["installer", "-pkg", str(path), "-target", "/"]
    if kind == "msi":
        return ["msiexec", "/i", str(path), "/qn"]
    raise ValueError(f"No native installer for package kind {kind!r}")


def install_native(
    kind: str,
    path: Path,
    *,
    manager: str = "",
    elevation: Elevation | None = None,
    runner: Runner = _run_subprocess,
) -> dict[str, Any]:
    """Install a downloaded .deb/.rpm/.pkg/.msi with the OS installer."""
    cmd = native_install_command(kind, path, manager=manager)
    logger.info("Installing %s package: %s", kind, path.name)
    return runner(
        cmd,
        elevation=elevation if kind in PRIVILEGED_KINDS else None,
        timeout=TIMEOUTS["package"],
    )


def extract_archive(archive: Path, dest: Path) -> Path:
    """Extract a ``.tar.gz`` into *dest*, refusing paths outside it."""
    dest.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "r:gz") as tar:
        tar.extractall(dest, filter="data")
    return dest


def find_in_tree(root: Path, filename: str) -> Path | None:
    """First regular file called *filename* below *root*."""
    for candidate in sorted(root.rglob(filename)):
        if candidate.is_file():
            return candidate
    return None


def place_binary(source: Path, install_dir: Path) -> Path:
    """Copy an extracted binary into *install_dir* and mark it executable."""
    install_dir.mkdir(parents=True, exist_ok=True)
    target = install_dir / source.name
    tmp = target.with_name(target.name + ".new")
    shutil.copy2(source, tmp)
    tmp.chmod(tmp.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    tmp.replace(target)
    return target
