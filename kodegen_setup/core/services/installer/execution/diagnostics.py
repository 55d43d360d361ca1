"""
L4 Execution — Diagnostic bundle.

Written only when an install fails, to
``~/.kodegen/logs/install-<timestamp>.log``.  Contains enough to debug
the failure without asking the user to re-run anything.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
import shutil
import time
from collections.abc import Mapping
from pathlib import Path

from kodegen_setup import __version__
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.constants import (
    DIAGNOSTIC_TAIL_LINES,
    DIAGNOSTIC_TOOLS,
    SECRET_MARKERS,
    TIMEOUTS,
)
from kodegen_setup.core.services.installer.domain.errors import InstallerError
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
)

logger = logging.getLogger(__name__)


def redact_env(env: Mapping[str, str]) -> dict[str, str]:
    """Copy of *env* with secret-looking values replaced by ``***``."""
    redacted = {}
    for key in sorted(env):
        upper = key.upper()
        if any(marker in upper for marker in SECRET_MARKERS):
            redacted[key] = "***"
        else:
            redacted[key] = env[key]
    return redacted


def tool_versions(*, runner: Runner = _run_subprocess) -> dict[str, str]:
    versions = {}
    for tool in DIAGNOSTIC_TOOLS:
        r = runner([tool, "--version"], timeout=TIMEOUTS["check"])
        if r["ok"]:
            output = (r.get("stdout") or r.get("stderr") or "").strip()
            versions[tool] = output.splitlines()[0] if output else "(no output)"
        else:
            versions[tool] = f"unavailable ({r.get('error', 'unknown error')})"
    return versions


def _disk_space(path: Path) -> str:
    try:
        usage = shutil.disk_usage(str(path))
    except OSError as e:
        return f"unknown ({e})"
    return f"{usage.free // (1024 * 1024)} MB free of {usage.total // (1024 * 1024)} MB"


def render_bundle(
    state: InstallationState,
    error: InstallerError,
    *,
    env: Mapping[str, str],
    versions: dict[str, str],
    disk: str,
) -> str:
    lines = [
        f"kodegen-setup {__version__} diagnostic log",
        f"written: {time.strftime('%Y-%m-%d %H:%M:%S')}",
        f"started: {state.started_at}",
        f"system: {_platform.platform()}",
        "",
        "== failure ==",
        f"type: {type(error).__name__}",
        f"operation: {error.operation}",
        f"message: {error.message}",
        f"exit code: {error.returncode}",
    ]
    lines += [f"hint: {h}" for h in error.hints]
    if error.detail:
        lines += ["detail:", error.detail]

    lines += ["", "== stages ==", " → ".join(state.stages)]
    lines += ["", "== warnings =="] + (state.warnings or ["(none)"])
    lines += ["", "== tool versions =="] + [f"{k}: {v}" for k, v in versions.items()]
    lines += ["", "== disk space ==", disk]
    lines += ["", "== environment =="] + [f"{k}={v}" for k, v in redact_env(env).items()]
    lines += ["", f"== last {DIAGNOSTIC_TAIL_LINES} lines of build output =="]
    lines += state.build_log[-DIAGNOSTIC_TAIL_LINES:] or ["(none)"]
    return "\n".join(lines) + "\n"


def write_diagnostic_bundle(
    state: InstallationState,
    error: InstallerError,
    *,
    directory: Path,
    env: Mapping[str, str] | None = None,
    runner: Runner = _run_subprocess,
) -> Path | None:
    """Write the bundle and return its path (None if it could not be written)."""
    env = os.environ if env is None else env
    content = render_bundle(
        state,
        error,
        env=env,
        versions=tool_versions(runner=runner),
        disk=_disk_space(directory if directory.exists() else Path.home()),
    )
    path = directory / f"install-{time.strftime('%Y%m%d-%H%M%S')}.log"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning("Could not write diagnostic log to %s: %s", path, e)
        return None
    logger.info("Diagnostic log written to %s", path)
    return path
