"""
L3 Detection — Environment capabilities.

Read-only probes of the process environment: CI markers, SSH sessions,
home and cargo directories, and the binary search path.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from kodegen_setup.core.services.installer.data.constants import CI_MARKERS


def ci_markers(env: Mapping[str, str] | None = None) -> list[str]:
    """CI variables that are set (and not ``false``/``0``)."""
    env = os.environ if env is None else env
    found = []
    for name in CI_MARKERS:
        value = env.get(name)
        if value and value.strip().lower() not in ("0", "false", "no"):
            found.append(name)
    return found


def is_ci(env: Mapping[str, str] | None = None) -> bool:
    return bool(ci_markers(env))


def is_ssh(env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    return bool(env.get("SSH_CONNECTION") or env.get("SSH_TTY"))


def updates_allowed(interactive: bool, env: Mapping[str, str] | None = None) -> bool:
    """Update checks (and their prompt) only run for a human at a terminal."""
    return interactive and not is_ci(env)


def home_dir(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    home = env.get("HOME") or env.get("USERPROFILE")
    return Path(home) if home else Path.home()


def cargo_home(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    if env.get("CARGO_HOME"):
        return Path(env["CARGO_HOME"])
    return home_dir(env) / ".cargo"


def cargo_bin_dir(env: Mapping[str, str] | None = None) -> Path:
    return cargo_home(env) / "bin"


def default_install_dir(env: Mapping[str, str] | None = None) -> Path:
    """Where archive (tarball) installs put binaries."""
    return home_dir(env) / ".local" / "bin"


def default_diagnostics_dir(env: Mapping[str, str] | None = None) -> Path:
    return home_dir(env) / ".kodegen" / "logs"


def search_path(
    extra_dirs: list[Path] | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """``PATH`` with *extra_dirs* prepended (de-duplicated, order kept)."""
    env = os.environ if env is None else env
    dirs: list[str] = [str(d) for d in (extra_dirs or [])]
    dirs.extend(p for p in env.get("PATH", "").split(os.pathsep) if p)
    seen: list[str] = []
    for d in dirs:
        if d not in seen:
            seen.append(d)
    return os.pathsep.join(seen)
