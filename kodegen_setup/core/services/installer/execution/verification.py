"""
L4 Execution — Binary verification.

A binary counts as installed only if it exists, is an executable of the
right format for the platform, and ``--version`` succeeds with a
parseable version.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from kodegen_setup.core.models.artifact import InstalledArtifact
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.domain.errors import VerificationFailed
from kodegen_setup.core.services.installer.domain.version import extract_version
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)

logger = logging.getLogger(__name__)

_ELF = (b"\x7fELF",)
_MACHO = (
    b"\xfe\xed\xfa\xce", b"\xce\xfa\xed\xfe",   # 32-bit
    b"\xfe\xed\xfa\xcf", b"\xcf\xfa\xed\xfe",   # 64-bit
    b"\xca\xfe\xba\xbe",                        # universal
)
_PE = (b"MZ",)


def expected_magic(platform: PlatformDescriptor) -> tuple[bytes, ...]:
    if platform.is_macos:
        return _MACHO
    if platform.is_windows:
        return _PE
    return _ELF


def executable_name(name: str, platform: PlatformDescriptor) -> str:
    return f"{name}.exe" if platform.is_windows else name


def has_magic(path: Path, magics: tuple[bytes, ...]) -> bool:
    try:
        with open(path, "rb") as f:
            head = f.read(4)
    except OSError:
        return False
    return any(head.startswith(m) for m in magics)


def verify_binary(
    name: str,
    path: Path,
    platform: PlatformDescriptor,
    *,
    runner: Runner = _run_subprocess,
) -> InstalledArtifact:
    """Probe *path* and return a verified artifact.

    Raises:
        VerificationFailed: Missing, wrong file type, not executable, or
            ``--version`` failed / printed no version.
    """
    if not path.is_file():
        raise VerificationFailed(
            f"{name} was not found at {path}",
            binary=name,
            hints=[f"Check that the installation wrote {path}"],
        )

    if not has_magic(path, expected_magic(platform)):
        raise VerificationFailed(
            f"{path} is not a valid executable for {platform.target_triple}",
            binary=name,
            hints=["The downloaded file may be corrupt or for another platform"],
        )

    if not platform.is_windows and not os.access(path, os.X_OK):
        raise VerificationFailed(
            f"{path} is not executable",
            binary=name,
            hints=[f"chmod +x {path}"],
        )

    result = runner([str(path), "--version"], timeout=TIMEOUTS["check"])
    version = extract_version(result.get("stdout", "") or result.get("stderr", ""))
    if not result["ok"] or version is None:
        raise VerificationFailed(
            f"{name} --version did not report a version",
            binary=name,
            detail=command_output(result),
            returncode=result.get("returncode"),
            hints=[f"Run '{path} --version' to see the error"],
        )

    logger.info("Verified %s %s at %s", name, version, path)
    return InstalledArtifact(
        binary_name=name,
        install_path=path,
        version=version,
        executable=True,
        verified=True,
    )
