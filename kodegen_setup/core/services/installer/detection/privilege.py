"""
L3 Detection — Privilege negotiation.

Decides whether system dependencies can be installed with elevated
privileges, asks the user when that is allowed, and fails closed when
nobody is there to ask.  The resulting ``Elevation`` grant is reused
for every privileged command of the run.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from typing import TYPE_CHECKING

from kodegen_setup.core.models.dependency import MissingSet
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.data.requirements import (
    NO_ELEVATION_MANAGERS,
    install_command,
)
from kodegen_setup.core.services.installer.domain.elevation import (
    NO_ELEVATION,
    Decision,
    Elevation,
    ElevationMethod,
)
from kodegen_setup.core.services.installer.domain.errors import ElevationDenied
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _is_root,
    _run_subprocess,
)

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import Interaction

logger = logging.getLogger(__name__)

MAX_PASSWORD_ATTEMPTS = 3


class PrivilegeGate:
    """Negotiates elevation for one installer run.

    Args:
        interaction: Console used for prompts.
        skip_deps: ``--skip-deps``/``--no-sudo``: no elevation mechanism exists.
        runner: Subprocess runner (``sudo -n true`` / ``sudo -S -k true``).
        is_root: Override root detection (tests).
        which: PATH lookup used to find ``sudo``.
    """

    def __init__(
        self,
        interaction: Interaction,
        *,
        skip_deps: bool = False,
        runner: Runner = _run_subprocess,
        is_root: bool | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.interaction = interaction
        self.skip_deps = skip_deps
        self.runner = runner
        self.is_root = _is_root() if is_root is None else is_root
        self.which = which
        self.elevation: Elevation | None = None

    # ── Probes ──────────────────────────────────────────────────

    def can_elevate(self) -> bool:
        """Whether any elevation mechanism exists for this run."""
        if self.skip_deps:
            return False
        return self.is_root or self.which("sudo") is not None

    def _cached_grant(self) -> bool:
        if self.which("sudo") is None:
            return False
        return self.runner(["sudo", "-n", "true"], timeout=TIMEOUTS["check"])["ok"]

    def _ask_password(self) -> Elevation | None:
        for attempt in range(1, MAX_PASSWORD_ATTEMPTS + 1):
            password = self.interaction.password("[sudo] password")
            if not password:
                return None
            grant = Elevation(ElevationMethod.SUDO_PASSWORD, password)
            result = self.runner(["true"], elevation=grant, timeout=TIMEOUTS["check"])
            if result["ok"]:
                return grant
            remaining = MAX_PASSWORD_ATTEMPTS - attempt
            if remaining:
                self.interaction.warn(f"Wrong password, {remaining} attempt(s) left")
        self.interaction.error(f"Sudo authentication failed after {MAX_PASSWORD_ATTEMPTS} attempts")
        return None

    # ── Decisions ───────────────────────────────────────────────

    def acquire_elevation(self, purpose: str) -> Elevation | None:
        """Obtain a grant without a dependency prompt (native package installs).

        Returns the existing grant, root, a cached sudo grant, or one
        validated from a password prompt; ``None`` if none is possible.
        """
        if self.elevation is not None and self.elevation.is_privileged:
            return self.elevation
        if not self.can_elevate():
            return None
        if self.is_root:
            self.elevation = Elevation(ElevationMethod.ROOT)
            return self.elevation
        if self._cached_grant():
            self.elevation = Elevation(ElevationMethod.SUDO_CACHED)
            return self.elevation
        if not self.interaction.interactive:
            return None
        self.interaction.info(f"Administrator privileges are needed to {purpose}")
        grant = self._ask_password()
        if grant is not None:
            self.elevation = grant
        return grant

    def should_prompt_and_elevate(self, missing: MissingSet) -> Decision:
        """Decide how missing system dependencies get installed.

        Sets ``self.elevation`` on PROCEED.
        """
        if missing.manager in NO_ELEVATION_MANAGERS:
            self.elevation = NO_ELEVATION
            return Decision.PROCEED

        if not self.can_elevate():
            return Decision.UNAVAILABLE

        if self.is_root:
            self.elevation = Elevation(ElevationMethod.ROOT)
            return Decision.PROCEED

        if self._cached_grant():
            logger.info("Using cached sudo credentials")
            self.elevation = Elevation(ElevationMethod.SUDO_CACHED)
            return Decision.PROCEED

        if not self.interaction.interactive:
            logger.info("Non-interactive session and sudo needs a password")
            return Decision.UNAVAILABLE

        names = ", ".join(missing.names)
        if not self.interaction.confirm(
            f"Missing system dependencies: {names}. Install them with sudo?",
            default=True,
        ):
            return Decision.DECLINE

        grant = self._ask_password()
        if grant is None:
            return Decision.UNAVAILABLE
        self.elevation = grant
        return Decision.PROCEED

    def remediation_lines(self, missing: MissingSet) -> list[str]:
        """Manual ways forward when elevation is unavailable."""
        lines = []
        cmd = install_command(missing.manager, missing.packages)
        if cmd:
            lines.append(f"Install them yourself: sudo {' '.join(cmd)}")
        else:
            lines.append(f"Install manually: {', '.join(missing.names)}")
        lines.append(
            "Or use a package manager that needs no root, such as Homebrew on Linux "
            "(https://docs.brew.sh/Homebrew-on-Linux)"
        )
        lines.append("Or re-run with --skip-deps to continue without system dependencies")
        return lines

    def handle_unavailable(self, missing: MissingSet) -> None:
        """Print remediation, then continue only if the user says so.

        Raises:
            ElevationDenied: Non-interactive run, or the user chose to stop.
        """
        self.interaction.error("Cannot install system dependencies: elevated privileges unavailable")
        lines = self.remediation_lines(missing)
        for line in lines:
            self.interaction.info(line)

        if self.interaction.interactive and self.interaction.confirm(
            "Continue without installing system dependencies?", default=False,
        ):
            return

        raise ElevationDenied(
            "Elevated privileges are required to install system dependencies",
            operation="privilege negotiation",
            hints=lines,
        )
