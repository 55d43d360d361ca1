"""
L4 Execution — Rollback.

Undoes what a failed run changed, in strict reverse order, and reports
the outcome.  Rollback is best-effort: a failing step is recorded and
the remaining steps still run.  ``rollback`` never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from kodegen_setup.core.models.config import InstallerConfig
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.domain.elevation import Elevation
from kodegen_setup.core.services.installer.domain.rollback import (
    _generate_rollback,
    _manual_steps,
)
from kodegen_setup.core.services.installer.execution.backup import restore_backup
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import Interaction

logger = logging.getLogger(__name__)


@dataclass
class RollbackReport:
    """What rollback did and what is left for the user."""

    reason: str
    reverted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    manual_steps: list[str] = field(default_factory=list)
    diagnostic_log: str | None = None

    @property
    def clean(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "reverted": self.reverted,
            "failed": self.failed,
            "manual_steps": self.manual_steps,
            "diagnostic_log": self.diagnostic_log,
        }


def _service_binary(config: InstallerConfig, state: InstallationState) -> str:
    spec = config.binary_for_role("daemon")
    if spec is None:
        return ""
    for artifact in state.artifacts_installed:
        if artifact.binary_name == spec.name:
            return str(artifact.install_path)
    return spec.name


class RollbackManager:
    """Executes the rollback plan derived from an ``InstallationState``."""

    def __init__(
        self,
        *,
        config: InstallerConfig,
        interaction: Interaction,
        elevation: Elevation | None = None,
        runner: Runner = _run_subprocess,
    ) -> None:
        self.config = config
        self.interaction = interaction
        self.elevation = elevation
        self.runner = runner

    def rollback(self, state: InstallationState, reason: str) -> RollbackReport:
        report = RollbackReport(reason=reason)
        try:
            steps = _generate_rollback(state, service_binary=_service_binary(self.config, state))
            if steps:
                self.interaction.step("Rolling back changes")
            for step in steps:
                self._run_step(step, report)
            report.manual_steps.extend(_manual_steps(state))
        except Exception as e:  # rollback must never raise
            logger.exception("Rollback aborted")
            report.failed.append(f"rollback aborted: {e}")
        self._print_summary(report)
        return report

    def _run_step(self, step: dict, report: RollbackReport) -> None:
        label = step["label"]
        action = step["action"]
        try:
            if action == "run":
                result = self.runner(
                    step["command"],
                    elevation=self.elevation if step.get("needs_sudo") else None,
                    timeout=TIMEOUTS["service"],
                )
                if not result["ok"]:
                    raise RuntimeError(command_output(result) or result.get("error", "failed"))
            elif action == "restore":
                restore_backup(Path(step["backup"]), Path(step["path"]))
            elif action == "delete":
                Path(step["path"]).unlink(missing_ok=True)
        except (OSError, RuntimeError) as e:
            logger.warning("Rollback step failed: %s: %s", label, e)
            report.failed.append(f"{label}: {e}")
            if action == "run":
                report.manual_steps.append(f"Run manually: {' '.join(step['command'])}")
            return
        logger.info("Rolled back: %s", label)
        report.reverted.append(label)

    def _print_summary(self, report: RollbackReport) -> None:
        if report.reverted:
            self.interaction.info("Reverted: " + "; ".join(report.reverted))
        else:
            self.interaction.info("Nothing to revert")
        for failure in report.failed:
            self.interaction.error(f"Could not revert {failure}")
        for step in report.manual_steps:
            self.interaction.info(step)
