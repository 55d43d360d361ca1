"""
L3 Detection — Installed binary lookup and version probing.

Read-only probes: ``shutil.which`` on an extended PATH and
``<binary> --version``.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Mapping
from pathlib import Path

from kodegen_setup.core.models.state import ExistingInstallation, ToolPresence
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.detection.environment import search_path
from kodegen_setup.core.services.installer.domain.version import extract_version
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
)

logger = logging.getLogger(__name__)


def find_binary(
    name: str,
    *,
    extra_dirs: list[Path] | None = None,
    env: Mapping[str, str] | None = None,
) -> Path | None:
    """Locate *name* on PATH extended with *extra_dirs*."""
    found = shutil.which(name, path=search_path(extra_dirs, env))
    return Path(found) if found else None


def get_tool_version(path: Path, *, runner: Runner = _run_subprocess) -> str | None:
    """Run ``<path> --version`` and return the parsed version, or None."""
    result = runner([str(path), "--version"], timeout=TIMEOUTS["check"])
    if not result["ok"]:
        logger.debug("%s --version failed: %s", path, result.get("error"))
        return None
    return extract_version(result.get("stdout", "") or result.get("stderr", ""))


def inspect(
    tool_names: list[str],
    *,
    extra_dirs: list[Path] | None = None,
    env: Mapping[str, str] | None = None,
    runner: Runner = _run_subprocess,
) -> ExistingInstallation:
    """Report presence, version and path of every target binary."""
    tools: dict[str, ToolPresence] = {}
    for name in tool_names:
        path = find_binary(name, extra_dirs=extra_dirs, env=env)
        if path is None:
            tools[name] = ToolPresence()
            continue
        tools[name] = ToolPresence(
            present=True,
            version=get_tool_version(path, runner=runner),
            path=path,
        )
    logger.info(
        "Pre-flight: %s",
        ", ".join(f"{n}={'v' + (t.version or '?') if t.present else 'missing'}" for n, t in tools.items()),
    )
    return ExistingInstallation(tools=tools)
