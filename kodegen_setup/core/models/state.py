"""
InstallationState — everything a single run has changed on the machine.

Mutated only by the orchestrator main sequence (and the components it
hands the state to), read by the rollback manager.  Nothing here is
persisted: the state lives exactly as long as one ``kodegen-setup`` run.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from kodegen_setup.core.models.artifact import InstalledArtifact

# Lines of build/installer output retained in memory.
_BUILD_LOG_LIMIT = 500


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ToolPresence(BaseModel):
    """Pre-flight view of one target binary."""

    present: bool = False
    version: str | None = None
    path: Path | None = None


class ExistingInstallation(BaseModel):
    """Pre-flight view of all target binaries."""

    tools: dict[str, ToolPresence] = Field(default_factory=dict)

    @property
    def all_present(self) -> bool:
        return bool(self.tools) and all(t.present for t in self.tools.values())

    @property
    def any_present(self) -> bool:
        return any(t.present for t in self.tools.values())

    @property
    def installed_version(self) -> str | None:
        """First parseable version among present binaries."""
        for tool in self.tools.values():
            if tool.present and tool.version:
                return tool.version
        return None

    def to_dict(self) -> dict:
        return {
            name: {
                "present": t.present,
                "version": t.version,
                "path": str(t.path) if t.path else None,
            }
            for name, t in self.tools.items()
        }


class InstallationState(BaseModel):
    """Mutable record of one installer run."""

    started_at: str = Field(default_factory=_now_iso)

    # ── Things this run did (rollback input) ─────────────────────
    artifacts_installed: list[InstalledArtifact] = Field(default_factory=list)
    service_installed: bool = False
    service_elevated: bool = False
    privilege_obtained: str | None = None      # root, sudo-cached, sudo-password
    temp_resources: list[str] = Field(default_factory=list)
    packages_installed: list[str] = Field(default_factory=list)
    package_manager: str | None = None
    backups: dict[str, str] = Field(default_factory=dict)   # install_path → backup
    toolchain_installed: bool = False

    # ── Run bookkeeping ──────────────────────────────────────────
    warnings: list[str] = Field(default_factory=list)
    stages: list[str] = Field(default_factory=lambda: ["idle"])
    build_log: list[str] = Field(default_factory=list)

    @property
    def stage(self) -> str:
        return self.stages[-1]

    def record_artifact(self, artifact: InstalledArtifact) -> None:
        """Add or replace the entry for ``artifact.install_path``."""
        for i, existing in enumerate(self.artifacts_installed):
            if existing.install_path == artifact.install_path:
                self.artifacts_installed[i] = artifact
                return
        self.artifacts_installed.append(artifact)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def append_build_output(self, text: str) -> None:
        if not text:
            return
        self.build_log.extend(text.splitlines())
        if len(self.build_log) > _BUILD_LOG_LIMIT:
            del self.build_log[:-_BUILD_LOG_LIMIT]
