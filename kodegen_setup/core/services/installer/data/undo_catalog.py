"""
L0 Data — Undo (rollback) commands.

Maps install methods and package managers to their reverse operation.
Templates use ``{package}`` and ``{install_path}`` placeholders that are
resolved at rollback time.
"""

from __future__ import annotations

# How to undo a binary installed by this run, keyed by artifact method.
UNDO_COMMANDS: dict[str, dict] = {
    "deb": {
        "command": ["apt-get", "remove", "-y", "{package}"],
        "needs_sudo": True,
    },
    "rpm": {
        "command": ["rpm", "-e", "{package}"],
        "needs_sudo": True,
    },
    "pkg": {
        "command": ["pkgutil", "--forget", "{package}"],
        "needs_sudo": True,
        "delete_file": True,
    },
    "msi": {
        "command": ["msiexec", "/x", "{package}", "/qn"],
        "needs_sudo": False,
    },
    "tar": {
        "delete_file": True,
    },
    "cargo": {
        "delete_file": True,
    },
}

# How to remove system packages this run installed (printed, never run).
PACKAGE_REMOVAL: dict[str, list[str]] = {
    "apt":    ["sudo", "apt-get", "remove", "-y"],
    "dnf":    ["sudo", "dnf", "remove", "-y"],
    "yum":    ["sudo", "yum", "remove", "-y"],
    "zypper": ["sudo", "zypper", "remove", "-y"],
    "pacman": ["sudo", "pacman", "-Rns", "--noconfirm"],
    "apk":    ["sudo", "apk", "del"],
    "brew":   ["brew", "uninstall"],
    "winget": ["winget", "uninstall", "--id"],
}

SERVICE_UNDO: list[str] = ["{binary}", "uninstall"]

TOOLCHAIN_REMOVAL = "rustup self uninstall"


def resolve_template(command: list[str], **values: str) -> list[str]:
    """Substitute ``{placeholders}`` in every argument of *command*."""
    return [arg.format(**values) for arg in command]
