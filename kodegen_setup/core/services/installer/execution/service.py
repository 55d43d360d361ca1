"""
L4 Execution — Client integration and background service setup.

Both steps are best-effort and independent: a failure in one never
stops the other, and neither ever fails the install.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from kodegen_setup.core.models.artifact import InstalledArtifact
from kodegen_setup.core.models.config import InstallerConfig
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.constants import (
    PERMISSION_MARKERS,
    TIMEOUTS,
)
from kodegen_setup.core.services.installer.domain.elevation import Elevation
from kodegen_setup.core.services.installer.domain.errors import (
    ClientConfigFailed,
    ServiceConfigFailed,
)
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import Interaction

logger = logging.getLogger(__name__)


@dataclass
class ClientConfigResult:
    ok: bool
    error: ClientConfigFailed | None = None


@dataclass
class ServiceResult:
    ok: bool
    already_installed: bool = False
    elevated: bool = False
    error: ServiceConfigFailed | None = None
    attempts: list[str] = field(default_factory=list)


def _is_permission_error(result: dict) -> bool:
    text = command_output(result).lower()
    return any(marker in text for marker in PERMISSION_MARKERS)


def _binary_path(artifacts: list[InstalledArtifact], name: str) -> Path | None:
    for artifact in artifacts:
        if artifact.binary_name == name:
            return artifact.install_path
    return None


class ServiceConfigurator:
    """Runs ``kodegen install`` and ``kodegend install``."""

    def __init__(
        self,
        *,
        config: InstallerConfig,
        state: InstallationState,
        interaction: Interaction,
        platform: PlatformDescriptor,
        elevation: Elevation | None = None,
        runner: Runner = _run_subprocess,
    ) -> None:
        self.config = config
        self.state = state
        self.interaction = interaction
        self.platform = platform
        self.elevation = elevation
        self.runner = runner

    def configure_clients(self, artifacts: list[InstalledArtifact]) -> ClientConfigResult:
        """Auto-configure detected MCP clients via ``kodegen install``."""
        spec = self.config.binary_for_role("client")
        path = _binary_path(artifacts, spec.name) if spec else None
        if spec is None or path is None:
            return ClientConfigResult(ok=True)

        self.interaction.step("Auto-configuring detected MCP clients")
        result = self.runner([str(path), "install"], timeout=TIMEOUTS["service"])
        if result["ok"]:
            self.interaction.success("MCP clients configured automatically")
            return ClientConfigResult(ok=True)

        error = ClientConfigFailed(
            "Client auto-configuration failed",
            operation="client configuration",
            detail=command_output(result),
            returncode=result.get("returncode"),
            hints=[f"Run '{spec.name} install' manually later"],
        )
        self._warn(error)
        return ClientConfigResult(ok=False, error=error)

    def install_service(self, artifacts: list[InstalledArtifact]) -> ServiceResult:
        """Register the background daemon unless it already is."""
        spec = self.config.binary_for_role("daemon")
        path = _binary_path(artifacts, spec.name) if spec else None
        if spec is None or path is None:
            return ServiceResult(ok=True)

        self.interaction.step("Installing the background service")
        status = self.runner([str(path), "status"], timeout=TIMEOUTS["service"])
        if status["ok"]:
            self.interaction.success("Background service already installed")
            return ServiceResult(ok=True, already_installed=True, attempts=["status"])

        attempts = ["status", "install"]
        result = self.runner([str(path), "install"], timeout=TIMEOUTS["service"])
        elevated = False

        if (
            not result["ok"]
            and self.platform.is_linux
            and _is_permission_error(result)
            and self.elevation is not None
            and self.elevation.is_privileged
        ):
            logger.info("Service install needs privileges, retrying with %s", self.elevation.method)
            attempts.append("install (elevated)")
            result = self.runner(
                [str(path), "install"], elevation=self.elevation, timeout=TIMEOUTS["service"],
            )
            elevated = True

        if result["ok"]:
            self.state.service_installed = True
            self.state.service_elevated = elevated
            self.interaction.success("Background service installed and started")
            return ServiceResult(ok=True, elevated=elevated, attempts=attempts)

        manual = f"sudo {spec.name} install" if _is_permission_error(result) else f"{spec.name} install"
        error = ServiceConfigFailed(
            "Background service installation failed",
            operation="service installation",
            detail=command_output(result),
            returncode=result.get("returncode"),
            hints=[f"Install it manually later with: {manual}"],
        )
        self._warn(error)
        return ServiceResult(ok=False, elevated=elevated, error=error, attempts=attempts)

    def _warn(self, error: ClientConfigFailed | ServiceConfigFailed) -> None:
        logger.warning("%s: %s", error.message, error.detail)
        self.interaction.warn(error.message)
        for hint in error.hints:
            self.interaction.info(hint)
        self.state.add_warning(f"{error.message}. {' '.join(error.hints)}")
