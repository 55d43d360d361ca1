"""
L1 Domain — Pre-flight decision table (pure).

Given what is already installed and what the caller allows, decide
whether this run installs, reinstalls, asks, or does nothing.
No I/O, no subprocess.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kodegen_setup.core.models.state import ExistingInstallation
from kodegen_setup.core.services.installer.domain.version import is_newer, parse_version


class PreflightAction(StrEnum):
    """What the orchestrator should do after inspection."""

    INSTALL = "install"           # nothing or only part of it is there
    REINSTALL = "reinstall"       # --force over a complete install
    PROMPT_UPDATE = "prompt"      # newer release available, ask first
    NOOP = "noop"                 # already current, exit 0


@dataclass
class PreflightDecision:
    action: PreflightAction
    reason: str
    installed_version: str | None = None
    latest_version: str | None = None

    @property
    def proceeds(self) -> bool:
        return self.action in (PreflightAction.INSTALL, PreflightAction.REINSTALL)


def needs_update_check(existing: ExistingInstallation, *, force: bool, updates_allowed: bool) -> bool:
    """Whether the release index should be queried at all."""
    return existing.all_present and not force and updates_allowed


def decide(
    existing: ExistingInstallation,
    *,
    force: bool,
    updates_allowed: bool,
    latest_version: str | None = None,
    query_failed: bool = False,
) -> PreflightDecision:
    """Apply the skip-if-current decision table.

    Args:
        existing: Pre-flight inspection result.
        force: ``--force`` was given.
        updates_allowed: Interactive terminal and no CI marker.
        latest_version: Version reported by the release index.
        query_failed: The release index could not be reached.
    """
    installed = existing.installed_version

    if not existing.all_present:
        reason = "partial installation" if existing.any_present else "not installed"
        return PreflightDecision(PreflightAction.INSTALL, reason, installed)

    if force:
        return PreflightDecision(PreflightAction.REINSTALL, "--force", installed)

    if not updates_allowed:
        return PreflightDecision(
            PreflightAction.NOOP, "already installed (update check skipped)", installed,
        )

    if query_failed or not latest_version:
        return PreflightDecision(
            PreflightAction.NOOP, "already installed (could not check for updates)", installed,
        )

    if parse_version(installed) is None:
        return PreflightDecision(
            PreflightAction.NOOP, "already installed (version unknown)", installed, latest_version,
        )

    if is_newer(latest_version, installed or ""):
        return PreflightDecision(
            PreflightAction.PROMPT_UPDATE,
            f"version {latest_version} is available (installed: {installed})",
            installed,
            latest_version,
        )

    return PreflightDecision(
        PreflightAction.NOOP, "already up to date", installed, latest_version,
    )
