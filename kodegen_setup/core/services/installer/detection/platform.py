"""
L3 Detection — Platform identification.

Read-only: ``platform.system()``, ``platform.machine()`` and
``/etc/os-release``.  Computed once per run.
"""

from __future__ import annotations

import logging
import platform as _platform
from collections.abc import Mapping
from pathlib import Path

from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.services.installer.data.constants import (
    _ARCH_ALIASES,
    SUPPORTED_TRIPLES,
)
from kodegen_setup.core.services.installer.domain.errors import UnsupportedPlatform

logger = logging.getLogger(__name__)

OS_RELEASE_PATHS: tuple[Path, ...] = (Path("/etc/os-release"), Path("/usr/lib/os-release"))

_TRIPLE_SUFFIX: dict[str, str] = {
    "linux": "unknown-linux-gnu",
    "darwin": "apple-darwin",
    "windows": "pc-windows-msvc",
}


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release ``KEY=value`` lines (values may be quoted)."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        fields[key.strip()] = value
    return fields


def read_os_release(paths: tuple[Path, ...] = OS_RELEASE_PATHS) -> dict[str, str]:
    """Read the first readable os-release file, or ``{}``."""
    for path in paths:
        try:
            return parse_os_release(path.read_text(encoding="utf-8"))
        except OSError:
            continue
    logger.debug("No os-release file found in %s", [str(p) for p in paths])
    return {}


def normalize_arch(machine: str) -> str:
    """Map a raw machine string to x86_64 / aarch64 / i686.

    Raises:
        UnsupportedPlatform: For anything else (armv7l, ppc64le, ...).
    """
    arch = _ARCH_ALIASES.get(machine.strip().lower())
    if arch is None:
        raise UnsupportedPlatform(f"Unsupported architecture: {machine}", value=machine)
    return arch


def target_triple(system: str, arch: str) -> str:
    """Rust target triple for ``(system, arch)``.

    Raises:
        UnsupportedPlatform: If the OS is unknown or the pair is not a
            known triple (e.g. ``i686-apple-darwin``).
    """
    suffix = _TRIPLE_SUFFIX.get(system.lower())
    if suffix is None:
        raise UnsupportedPlatform(f"Unsupported operating system: {system}", value=system)
    triple = f"{arch}-{suffix}"
    if triple not in SUPPORTED_TRIPLES:
        raise UnsupportedPlatform(f"Unsupported platform: {triple}", value=triple)
    return triple


def detect(
    *,
    system: str | None = None,
    machine: str | None = None,
    os_release: Mapping[str, str] | None = None,
) -> PlatformDescriptor:
    """Describe the current machine.

    All arguments default to the live system; tests pass them explicitly.

    Raises:
        UnsupportedPlatform: OS or architecture cannot be mapped.
    """
    system = system if system is not None else _platform.system()
    machine = machine if machine is not None else _platform.machine()

    arch = normalize_arch(machine)
    triple = target_triple(system, arch)

    sys_lower = system.lower()
    if sys_lower == "darwin":
        descriptor = PlatformDescriptor(
            os_family="macos", architecture=arch, target_triple=triple,
        )
    elif sys_lower == "windows":
        descriptor = PlatformDescriptor(
            os_family="windows", architecture=arch, target_triple=triple,
        )
    else:
        release = read_os_release() if os_release is None else os_release
        os_id = (release.get("ID") or "linux").lower()
        like = frozenset(release.get("ID_LIKE", "").lower().split())
        descriptor = PlatformDescriptor(
            os_family=os_id,
            os_family_like=like,
            architecture=arch,
            target_triple=triple,
        )

    logger.info("Detected platform: %s (%s)", descriptor.target_triple, descriptor.os_family)
    return descriptor
