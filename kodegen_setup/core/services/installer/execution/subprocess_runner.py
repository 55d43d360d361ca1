"""
L4 Execution — Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called for installer
operations.  Sudo handling, timeouts, output truncation and logging are
centralised here.  Every other module receives this function as an
injectable ``runner`` so tests can replace it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Mapping
from typing import Any, Protocol

from kodegen_setup.core.services.installer.domain.elevation import Elevation

logger = logging.getLogger(__name__)

_MAX_OUTPUT = 2000


class Runner(Protocol):
    def __call__(
        self,
        cmd: list[str],
        *,
        elevation: Elevation | None = ...,
        timeout: int = ...,
        env_overrides: Mapping[str, str] | None = ...,
        cwd: str | None = ...,
        keep_output: bool = ...,
    ) -> dict[str, Any]: ...


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return bool(geteuid and geteuid() == 0)


def _run_subprocess(
    cmd: list[str],
    *,
    elevation: Elevation | None = None,
    timeout: int = 120,
    env_overrides: Mapping[str, str] | None = None,
    cwd: str | None = None,
    keep_output: bool = False,
) -> dict[str, Any]:
    """Run a command, optionally elevated, and never raise.

    Security invariants:
    - Password piped via stdin only (``sudo -S``)
    - ``-k`` invalidates cached credentials every time
    - Password never logged, never in command args

    Args:
        cmd: Command list for ``subprocess.run()``.
        elevation: Privilege grant to run the command under, or None.
        timeout: Seconds before ``TimeoutExpired``.
        env_overrides: Extra env vars for the child.
        cwd: Working directory for the command.
        keep_output: Return full stdout/stderr instead of the last 2000 chars
            (build logs).

    Returns:
        ``{"ok": True, "stdout": "...", "stderr": "...", "returncode": 0,
        "elapsed_ms": N}`` on success, ``{"ok": False, "error": "...", ...}``
        on failure.
    """
    # ── Sudo handling ──
    stdin_data = None
    if elevation is not None and elevation.is_privileged and not _is_root():
        cmd = elevation.prefix() + list(cmd)
        stdin_data = elevation.stdin()

    # ── Environment ──
    env = os.environ.copy()
    if env_overrides:
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    def _trim(text: str | None) -> str:
        if not text:
            return ""
        return text if keep_output else text[-_MAX_OUTPUT:]

    # ── Execute ──
    logger.debug("run: %s (timeout=%ss)", " ".join(cmd), timeout)
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=stdin_data,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {
            "ok": False,
            "returncode": None,
            "stdout": "",
            "stderr": "",
            "error": f"Command timed out ({timeout}s)",
        }
    except FileNotFoundError:
        return {
            "ok": False,
            "returncode": None,
            "stdout": "",
            "stderr": "",
            "error": f"Command not found: {cmd[0]}",
        }
    except OSError as e:
        logger.exception("Subprocess error: %s", cmd)
        return {"ok": False, "returncode": None, "stdout": "", "stderr": "", "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    out = {
        "ok": result.returncode == 0,
        "returncode": result.returncode,
        "stdout": _trim(result.stdout),
        "stderr": _trim(result.stderr),
        "elapsed_ms": elapsed_ms,
    }
    if out["ok"]:
        return out

    stderr_lower = out["stderr"].lower()
    if stdin_data and ("incorrect password" in stderr_lower or "sorry" in stderr_lower):
        out["error"] = "Wrong password"
        out["wrong_password"] = True
        return out

    out["error"] = f"Command failed (exit {result.returncode})"
    return out


def command_output(result: dict[str, Any]) -> str:
    """stderr + stdout of a runner result, for error details."""
    parts = [result.get("stderr") or "", result.get("stdout") or "", result.get("error") or ""]
    return "\n".join(p for p in parts if p).strip()
