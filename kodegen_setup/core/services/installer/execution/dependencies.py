"""
L4 Execution — System dependency installation.

Installs a resolved missing-set with the platform's package manager.
macOS has two special remediations that come first: the Xcode Command
Line Tools (GUI installer, polled) and Homebrew itself.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from kodegen_setup.core.models.dependency import MissingSet
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.constants import (
    HOMEBREW_BREW_PATHS,
    HOMEBREW_INSTALL_URL,
    TIMEOUTS,
    XCODE_MAX_WAIT,
    XCODE_POLL_INTERVAL,
)
from kodegen_setup.core.services.installer.data.requirements import (
    MANUAL_INSTRUCTIONS,
    PRE_INSTALL_COMMANDS,
)
from kodegen_setup.core.services.installer.detection.environment import is_ci, is_ssh
from kodegen_setup.core.services.installer.domain.elevation import Elevation
from kodegen_setup.core.services.installer.domain.errors import DependencyUnavailable
from kodegen_setup.core.services.installer.execution.download import fetch_url
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)
from kodegen_setup.core.services.installer.execution.workspace import Workspace

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import Interaction, PackageManager

logger = logging.getLogger(__name__)


def _install_xcode_clt(
    *,
    interaction: Interaction,
    env: Mapping[str, str] | None,
    runner: Runner,
    sleep: Callable[[float], None],
) -> None:
    """Trigger the Command Line Tools GUI installer and wait for it."""
    if is_ssh(env) or is_ci(env):
        raise DependencyUnavailable(
            "Xcode Command Line Tools required but GUI not available (SSH/CI environment detected)",
            operation="xcode command line tools",
            hints=["Please install manually: xcode-select --install"],
        )

    running = runner(["pgrep", "-q", "Install Command Line"], timeout=TIMEOUTS["check"])
    if running["ok"]:
        interaction.info("Xcode Command Line Tools installer is already running")
    else:
        interaction.info("Opening the Xcode Command Line Tools installer...")
        runner(["xcode-select", "--install"], timeout=TIMEOUTS["check"])

    interaction.info("Waiting for Xcode Command Line Tools installation (this may take a few minutes)...")
    waited = 0
    while not runner(["xcode-select", "-p"], timeout=TIMEOUTS["check"])["ok"]:
        if waited >= XCODE_MAX_WAIT:
            raise DependencyUnavailable(
                f"Xcode Command Line Tools installation timed out after {XCODE_MAX_WAIT}s",
                operation="xcode command line tools",
                hints=[
                    "Please complete the installation manually and run this installer again: "
                    "xcode-select --install"
                ],
            )
        sleep(XCODE_POLL_INTERVAL)
        waited += XCODE_POLL_INTERVAL
    interaction.success("Xcode Command Line Tools installed")


def _install_homebrew(
    *,
    interaction: Interaction,
    workspace: Workspace,
    runner: Runner,
    fetch: Callable[..., object],
    path_exists: Callable[[str], bool],
) -> str:
    """Download the Homebrew install script into the workspace and run it.

    Returns the path of the new ``brew``, which is not on this
    process's PATH yet.
    """
    interaction.info("Installing Homebrew...")
    script = workspace.downloads / "homebrew-install.sh"
    try:
        fetch(HOMEBREW_INSTALL_URL, script, timeout=TIMEOUTS["download"])
    except OSError as e:
        raise DependencyUnavailable(
            "Could not download the Homebrew installer",
            operation="homebrew install",
            detail=str(e),
            hints=["Install Homebrew manually from https://brew.sh"],
        ) from e

    result = runner(
        ["/bin/bash", str(script)],
        env_overrides={"NONINTERACTIVE": "1"},
        timeout=TIMEOUTS["package"],
    )
    if not result["ok"]:
        raise DependencyUnavailable(
            "Homebrew installation failed",
            operation="homebrew install",
            detail=command_output(result),
            returncode=result.get("returncode"),
            hints=["Install Homebrew manually from https://brew.sh"],
        )
    brew = next((p for p in HOMEBREW_BREW_PATHS if path_exists(p)), None)
    if brew is None:
        raise DependencyUnavailable(
            "Homebrew installed but brew was not found in "
            + " or ".join(HOMEBREW_BREW_PATHS),
            operation="homebrew install",
            hints=['Add brew to your PATH: eval "$(/opt/homebrew/bin/brew shellenv)"'],
        )
    interaction.success(f"Homebrew installed ({brew})")
    return brew


def install_dependencies(
    missing: MissingSet,
    *,
    manager: PackageManager,
    state: InstallationState,
    interaction: Interaction,
    workspace: Workspace,
    elevation: Elevation | None = None,
    env: Mapping[str, str] | None = None,
    runner: Runner = _run_subprocess,
    sleep: Callable[[float], None] = time.sleep,
    fetch: Callable[..., object] = fetch_url,
    path_exists: Callable[[str], bool] = os.path.exists,
) -> list[str]:
    """Install everything in *missing*.

    Records installed packages in ``state.packages_installed``.

    Returns:
        Package names that were installed.

    Raises:
        DependencyUnavailable: Anything could not be installed (recoverable).
    """
    if missing.empty:
        return []

    if missing.manager == "unknown":
        raise DependencyUnavailable(
            "Could not detect package manager",
            operation="system dependencies",
            hints=[MANUAL_INSTRUCTIONS],
        )

    for req in missing.special:
        if req.remediation.kind == "xcode-clt":
            _install_xcode_clt(interaction=interaction, env=env, runner=runner, sleep=sleep)
        elif req.remediation.kind == "homebrew":
            brew = _install_homebrew(
                interaction=interaction, workspace=workspace, runner=runner,
                fetch=fetch, path_exists=path_exists,
            )
            manager.use_executable(brew)

    packages = missing.packages
    if not packages:
        return []

    pre = PRE_INSTALL_COMMANDS.get(missing.manager)
    if pre:
        r = runner(pre, elevation=elevation, timeout=TIMEOUTS["package"])
        if not r["ok"]:
            logger.warning("%s failed: %s", " ".join(pre), r.get("error"))

    interaction.step(f"Installing system dependencies: {' '.join(packages)}")
    result = manager.install(packages, elevation=elevation)
    state.append_build_output(command_output(result))
    if not result["ok"]:
        sudo = "sudo " if manager.needs_elevation else ""
        raise DependencyUnavailable(
            f"Installing system dependencies with {missing.manager} failed",
            operation="system dependencies",
            detail=command_output(result),
            returncode=result.get("returncode"),
            hints=[f"Install them manually: {sudo}{' '.join(manager.install_command(packages))}"],
        )

    state.package_manager = missing.manager
    for pkg in packages:
        if pkg not in state.packages_installed:
            state.packages_installed.append(pkg)
    interaction.success("System dependencies installed")
    return packages
