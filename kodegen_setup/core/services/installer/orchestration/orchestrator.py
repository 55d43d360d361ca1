"""
L5 Orchestration — The installation state machine.

    inspect → resolve deps → negotiate privilege → acquire binaries
            → configure client + service → done

Any fatal ``InstallerError`` unwinds to ``run_install``'s top-level
handler: rollback runs, the diagnostic bundle is written, exit code 1.
The temporary workspace is removed in a ``finally`` on every path,
including signals.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kodegen_setup.core.models.artifact import InstalledArtifact
from kodegen_setup.core.models.config import InstallerConfig
from kodegen_setup.core.models.dependency import MissingSet
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.constants import DETAIL_TAIL_LINES
from kodegen_setup.core.services.installer.data.requirements import MANUAL_INSTRUCTIONS
from kodegen_setup.core.services.installer.detection import environment
from kodegen_setup.core.services.installer.detection.platform import detect
from kodegen_setup.core.services.installer.detection.privilege import PrivilegeGate
from kodegen_setup.core.services.installer.detection.system_deps import (
    detect_family,
    resolve,
)
from kodegen_setup.core.services.installer.detection.tool_version import inspect
from kodegen_setup.core.services.installer.domain.elevation import Decision
from kodegen_setup.core.services.installer.domain.errors import (
    DependencyUnavailable,
    InstallerError,
    InstallInterrupted,
)
from kodegen_setup.core.services.installer.domain.preflight import (
    PreflightAction,
    decide,
    needs_update_check,
)
from kodegen_setup.core.services.installer.domain.stages import Stage, validate_transition
from kodegen_setup.core.services.installer.execution.acquisition import ArtifactAcquirer
from kodegen_setup.core.services.installer.execution.dependencies import install_dependencies
from kodegen_setup.core.services.installer.execution.diagnostics import write_diagnostic_bundle
from kodegen_setup.core.services.installer.execution.rollback import (
    RollbackManager,
    RollbackReport,
)
from kodegen_setup.core.services.installer.execution.service import ServiceConfigurator
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
)
from kodegen_setup.core.services.installer.execution.workspace import Workspace, signal_guard

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import (
        BuildToolchain,
        Interaction,
        PackageManager,
        ReleaseIndex,
        SourceFetcher,
    )

logger = logging.getLogger(__name__)


@dataclass
class InstallOptions:
    """Command-line switches for one run."""

    force: bool = False
    skip_deps: bool = False
    no_sudo: bool = False
    dry_run: bool = False
    strategy: str = "auto"

    def __post_init__(self) -> None:
        # --no-sudo implies --skip-deps
        if self.no_sudo:
            self.skip_deps = True


@dataclass
class InstallResult:
    """Outcome of ``run_install``."""

    exit_code: int = 0
    outcome: str = ""          # installed, up_to_date, declined_update, dry_run, failed
    artifacts: list[InstalledArtifact] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stages: list[str] = field(default_factory=list)
    error: InstallerError | None = None
    rollback: RollbackReport | None = None
    missing: MissingSet | None = None
    diagnostic_log: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "outcome": self.outcome,
            "artifacts": [a.model_dump(mode="json") for a in self.artifacts],
            "warnings": self.warnings,
            "stages": self.stages,
            "error": self.error.to_dict() if self.error else None,
            "rollback": self.rollback.to_dict() if self.rollback else None,
            "missing": self.missing.to_dict() if self.missing else None,
            "diagnostic_log": self.diagnostic_log,
        }


class _Run:
    """One installer run: state, collaborators and the main sequence."""

    def __init__(
        self,
        options: InstallOptions,
        *,
        config: InstallerConfig,
        interaction: Interaction,
        workspace: Workspace,
        env: Mapping[str, str],
        platform: PlatformDescriptor | None,
        package_manager: PackageManager | None,
        release_index: ReleaseIndex | None,
        toolchain: BuildToolchain | None,
        fetcher: SourceFetcher | None,
        runner: Runner,
        is_root: bool | None,
        which: Callable[[str], str | None] | None,
        sleep: Callable[[float], None],
        disk_usage: Callable[[str], object],
    ) -> None:
        self.options = options
        self.config = config
        self.interaction = interaction
        self.workspace = workspace
        self.env = env
        self.platform = platform
        self.package_manager = package_manager
        self.release_index = release_index
        self.toolchain = toolchain
        self.fetcher = fetcher
        self.runner = runner
        self.sleep = sleep
        self.disk_usage = disk_usage
        self.which = which or (lambda name: shutil.which(name, path=environment.search_path(env=env)))

        self.state = InstallationState()
        self.state.temp_resources.append(str(workspace.root))
        self.result = InstallResult()
        self.gate = PrivilegeGate(
            interaction, skip_deps=options.skip_deps, runner=runner, is_root=is_root, which=self.which,
        )
        self.dependency_error: DependencyUnavailable | None = None

    # ── Stage bookkeeping ───────────────────────────────────────

    def advance(self, target: Stage) -> None:
        stage = validate_transition(self.state.stage, target)
        self.state.stages.append(stage.value)
        logger.debug("stage → %s", stage.value)

    @property
    def install_dir(self) -> Path:
        return self.config.install_dir or environment.default_install_dir(self.env)

    @property
    def search_dirs(self) -> list[Path]:
        return [environment.cargo_bin_dir(self.env), self.install_dir]

    # ── Collaborator defaults ───────────────────────────────────

    def _defaults(self, family: tuple[str, str]) -> None:
        from kodegen_setup.adapters.package_managers import get_package_manager
        from kodegen_setup.adapters.release_index import GitHubReleaseIndex
        from kodegen_setup.adapters.toolchain import CargoToolchain
        from kodegen_setup.adapters.vcs import GitSourceFetcher

        if self.package_manager is None:
            self.package_manager = get_package_manager(family[1], runner=self.runner)
        if self.release_index is None:
            self.release_index = GitHubReleaseIndex(timeout=self.config.download.timeout_seconds)
        if self.toolchain is None:
            self.toolchain = CargoToolchain(
                channel=self.config.rust_channel,
                scratch_dir=self.workspace.downloads,
                windows=bool(self.platform and self.platform.is_windows),
                env=self.env,
                runner=self.runner,
            )
        if self.fetcher is None:
            self.fetcher = GitSourceFetcher(runner=self.runner)

    # ── Main sequence ───────────────────────────────────────────

    def execute(self) -> InstallResult:
        self.advance(Stage.INSPECTING)
        if self.platform is None:
            self.platform = detect()
        self.interaction.step(f"Platform: {self.platform.target_triple} ({self.platform.os_family})")

        family = detect_family(self.platform, which=self.which)
        self._defaults(family)

        existing = inspect(
            self.config.binary_names, extra_dirs=self.search_dirs, env=self.env, runner=self.runner,
        )
        if not self._preflight(existing):
            return self.result
        preexisting = {name: t.path for name, t in existing.tools.items() if t.path is not None}

        self.advance(Stage.RESOLVING)
        missing = resolve(
            self.platform,
            manager=self.package_manager,
            family=family,
            which=self.which,
            runner=self.runner,
        )
        self.result.missing = missing

        if self.options.dry_run:
            self._report_dry_run(missing)
            self.advance(Stage.DONE)
            self.result.outcome = "dry_run"
            return self.result

        if not missing.empty:
            self.advance(Stage.ELEVATING)
            self._satisfy_dependencies(missing)

        self.advance(Stage.ACQUIRING)
        acquirer = ArtifactAcquirer(
            config=self.config,
            state=self.state,
            workspace=self.workspace,
            interaction=self.interaction,
            release_index=self.release_index,
            toolchain=self.toolchain,
            fetcher=self.fetcher,
            install_dir=self.install_dir,
            gate=None if self.options.no_sudo else self.gate,
            family=family[0],
            manager=family[1],
            preexisting=preexisting,
            env=self.env,
            runner=self.runner,
            sleep=self.sleep,
            disk_usage=self.disk_usage,
        )
        try:
            artifacts = acquirer.acquire(self.platform, self.options.strategy)
        except InstallerError as e:
            if self.dependency_error is not None:
                e.hints.insert(
                    0, f"System dependencies were not installed: {self.dependency_error.message}",
                )
            raise
        self.result.artifacts = artifacts

        self.advance(Stage.CONFIGURING_SERVICES)
        services = ServiceConfigurator(
            config=self.config,
            state=self.state,
            interaction=self.interaction,
            platform=self.platform,
            elevation=self.gate.elevation,
            runner=self.runner,
        )
        services.configure_clients(artifacts)
        services.install_service(artifacts)

        self.advance(Stage.DONE)
        self.result.outcome = "installed"
        self.interaction.success("Installation completed!")
        for artifact in artifacts:
            self.interaction.info(f"{artifact.binary_name} {artifact.version} → {artifact.install_path}")
        return self.result

    def _preflight(self, existing) -> bool:
        """Apply the skip-if-current table.  False means stop (exit 0)."""
        allowed = environment.updates_allowed(self.interaction.interactive, self.env)
        latest: str | None = None
        query_failed = False

        if needs_update_check(existing, force=self.options.force, updates_allowed=allowed):
            try:
                latest = self.release_index.latest_release(self.config.repository).version
            except InstallerError as e:
                query_failed = True
                self.state.add_warning(f"Could not check for updates: {e.message}")
                self.interaction.warn(f"Could not check for updates: {e.message}")

        decision = decide(
            existing,
            force=self.options.force,
            updates_allowed=allowed,
            latest_version=latest,
            query_failed=query_failed,
        )
        logger.info("Pre-flight decision: %s (%s)", decision.action, decision.reason)

        if decision.proceeds:
            if decision.action is PreflightAction.REINSTALL:
                self.interaction.info("Reinstalling (--force)")
            return True

        if decision.action is PreflightAction.PROMPT_UPDATE:
            if self.interaction.confirm(f"KODEGEN {decision.reason}. Update now?", default=True):
                return True
            self.interaction.info("Keeping the installed version")
            self.result.outcome = "declined_update"
        else:
            self.interaction.success(f"KODEGEN is {decision.reason}")
            self.result.outcome = "up_to_date"

        self.advance(Stage.DONE)
        return False

    def _report_dry_run(self, missing: MissingSet) -> None:
        self.interaction.info("Dry run: nothing will be changed")
        if missing.empty:
            self.interaction.info("System dependencies: all present")
        else:
            self.interaction.info(
                f"Missing system dependencies ({missing.manager}): {', '.join(missing.names)}"
            )
            cmd = self.package_manager.install_command(missing.packages) if self.package_manager else []
            if cmd:
                self.interaction.info(f"Would run: {' '.join(cmd)}")
        self.interaction.info(f"Acquisition strategy: {self.options.strategy}")

    def _satisfy_dependencies(self, missing: MissingSet) -> None:
        if self.options.skip_deps:
            msg = f"Skipping system dependencies ({', '.join(missing.names)})"
            self.interaction.warn(msg)
            self.state.add_warning(msg)
            return

        if missing.manager == "unknown":
            # no package manager: nothing to elevate for
            msg = f"Missing system dependencies: {', '.join(missing.names)}"
            self.dependency_error = DependencyUnavailable(
                msg, operation="system dependencies", hints=[MANUAL_INSTRUCTIONS],
            )
            self.interaction.warn(msg)
            self.interaction.info(MANUAL_INSTRUCTIONS)
            self.state.add_warning(f"{msg}. {MANUAL_INSTRUCTIONS}")
            return

        decision = self.gate.should_prompt_and_elevate(missing)
        logger.info("Privilege decision: %s", decision)

        if decision is Decision.UNAVAILABLE:
            # raises ElevationDenied unless the user chooses to continue
            self.gate.handle_unavailable(missing)
            self.state.add_warning("Continuing without system dependencies")
            return

        if decision is Decision.DECLINE:
            msg = "Continuing without system dependencies; the source build may fail"
            self.interaction.warn(msg)
            self.state.add_warning(msg)
            return

        elevation = self.gate.elevation
        if elevation is not None and elevation.is_privileged:
            self.state.privilege_obtained = elevation.method.value
        try:
            install_dependencies(
                missing,
                manager=self.package_manager,
                state=self.state,
                interaction=self.interaction,
                workspace=self.workspace,
                elevation=elevation,
                env=self.env,
                runner=self.runner,
                sleep=self.sleep,
            )
        except DependencyUnavailable as e:
            self.dependency_error = e
            self.interaction.warn(e.message)
            for hint in e.hints:
                self.interaction.info(hint)
            self.state.add_warning(f"{e.message}. {' '.join(e.hints)}")

    # ── Failure path ────────────────────────────────────────────

    def fail(self, error: InstallerError) -> InstallResult:
        self.interaction.error(error.message)
        if error.returncode is not None:
            self.interaction.info(f"Exit code: {error.returncode}")
        if error.detail:
            logger.info("Failure detail:\n%s", error.detail)
            tail = error.detail.strip().splitlines()[-DETAIL_TAIL_LINES:]
            self.interaction.info(f"Output (last {len(tail)} lines):")
            for line in tail:
                self.interaction.info(f"  {line}")
        for hint in error.hints:
            self.interaction.info(hint)

        manager = RollbackManager(
            config=self.config,
            interaction=self.interaction,
            elevation=self.gate.elevation,
            runner=self.runner,
        )
        report = manager.rollback(self.state, error.message)
        if self.state.stage not in (Stage.DONE, Stage.ROLLED_BACK):
            self.advance(Stage.ROLLED_BACK)

        directory = self.config.diagnostics_dir or environment.default_diagnostics_dir(self.env)
        log_path = write_diagnostic_bundle(
            self.state, error, directory=directory, env=self.env, runner=self.runner,
        )
        if log_path is not None:
            report.diagnostic_log = str(log_path)
            self.interaction.info(f"Diagnostic log: {log_path}")

        self.result.exit_code = 1
        self.result.outcome = "failed"
        self.result.error = error
        self.result.rollback = report
        self.result.diagnostic_log = report.diagnostic_log
        return self.result


def run_install(
    options: InstallOptions,
    *,
    config: InstallerConfig,
    interaction: Interaction,
    env: Mapping[str, str] | None = None,
    platform: PlatformDescriptor | None = None,
    package_manager: PackageManager | None = None,
    release_index: ReleaseIndex | None = None,
    toolchain: BuildToolchain | None = None,
    fetcher: SourceFetcher | None = None,
    runner: Runner = _run_subprocess,
    is_root: bool | None = None,
    which: Callable[[str], str | None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    disk_usage: Callable[[str], object] = shutil.disk_usage,
) -> InstallResult:
    """Run the installer end to end.

    Every collaborator defaults to its production adapter; tests inject
    fakes.  Never raises ``InstallerError``: fatal failures are rolled
    back and reported through ``InstallResult.exit_code == 1``.
    """
    env = dict(os.environ) if env is None else env
    workspace = Workspace.create()
    run = _Run(
        options,
        config=config,
        interaction=interaction,
        workspace=workspace,
        env=env,
        platform=platform,
        package_manager=package_manager,
        release_index=release_index,
        toolchain=toolchain,
        fetcher=fetcher,
        runner=runner,
        is_root=is_root,
        which=which,
        sleep=sleep,
        disk_usage=disk_usage,
    )
    try:
        with signal_guard():
            try:
                result = run.execute()
            except KeyboardInterrupt:
                result = run.fail(InstallInterrupted("Installation interrupted (Ctrl-C)"))
            except InstallerError as e:
                result = run.fail(e)
            except Exception as e:  # rollback and the diagnostic log still run
                logger.debug("Unexpected failure", exc_info=True)
                result = run.fail(InstallerError(
                    f"Unexpected error: {type(e).__name__}: {e}",
                    operation=run.state.stage or "install",
                    detail=traceback.format_exc(),
                    hints=["Re-run with --debug and attach the diagnostic log to a bug report"],
                ))
    finally:
        workspace.cleanup()

    result.warnings = list(run.state.warnings)
    result.stages = list(run.state.stages)
    return result


def get_status(
    *,
    config: InstallerConfig,
    env: Mapping[str, str] | None = None,
    platform: PlatformDescriptor | None = None,
    package_manager: PackageManager | None = None,
    runner: Runner = _run_subprocess,
    which: Callable[[str], str | None] | None = None,
) -> dict[str, Any]:
    """Read-only report: platform, installed binaries, missing dependencies."""
    env = dict(os.environ) if env is None else env
    which = which or (lambda name: shutil.which(name, path=environment.search_path(env=env)))
    report: dict[str, Any] = {"platform": None, "binaries": {}, "dependencies": None, "error": None}

    try:
        platform = platform or detect()
    except InstallerError as e:
        report["error"] = e.to_dict()
        return report

    report["platform"] = platform.model_dump(mode="json")
    install_dir = config.install_dir or environment.default_install_dir(env)
    existing = inspect(
        config.binary_names,
        extra_dirs=[environment.cargo_bin_dir(env), install_dir],
        env=env,
        runner=runner,
    )
    report["binaries"] = existing.to_dict()

    family = detect_family(platform, which=which)
    if package_manager is None:
        from kodegen_setup.adapters.package_managers import get_package_manager

        package_manager = get_package_manager(family[1], runner=runner)
    missing = resolve(platform, manager=package_manager, family=family, which=which, runner=runner)
    report["dependencies"] = missing.to_dict()
    report["ci"] = environment.ci_markers(env)
    return report
