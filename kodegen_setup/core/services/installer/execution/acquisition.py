"""
L4 Execution — Artifact acquisition (pre-built release, source fallback).

Strategy order: pre-built release first (when the target triple is on
the allow-list), then, exactly once, a source build.  Both strategies
record what they write in the installation state and return the same
``InstalledArtifact`` shape.
"""

from __future__ import annotations

import http.client
import logging
import os
import shutil
import tarfile
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from kodegen_setup.core.models.artifact import (
    InstalledArtifact,
    PrebuiltRelease,
    Release,
    ReleaseAsset,
    SourceBuild,
)
from kodegen_setup.core.models.config import InstallerConfig
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.constants import PREBUILT_TRIPLES
from kodegen_setup.core.services.installer.detection.tool_version import find_binary
from kodegen_setup.core.services.installer.domain.elevation import Elevation
from kodegen_setup.core.services.installer.domain.errors import (
    AcquisitionFailed,
    InstallerError,
    VerificationFailed,
)
from kodegen_setup.core.services.installer.execution.backup import backup_binary
from kodegen_setup.core.services.installer.execution.download import (
    download_with_retry,
    parse_checksum_file,
)
from kodegen_setup.core.services.installer.execution.native_installer import (
    PRIVILEGED_KINDS,
    extract_archive,
    find_in_tree,
    install_native,
    native_install_command,
    package_kind,
    place_binary,
    select_asset,
)
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)
from kodegen_setup.core.services.installer.execution.verification import (
    executable_name,
    verify_binary,
)
from kodegen_setup.core.services.installer.execution.workspace import Workspace

if TYPE_CHECKING:
    from kodegen_setup.adapters.base import (
        BuildToolchain,
        Interaction,
        ReleaseIndex,
        SourceFetcher,
    )
    from kodegen_setup.core.services.installer.detection.privilege import PrivilegeGate

logger = logging.getLogger(__name__)

STRATEGIES = ("auto", "prebuilt", "source")


class ArtifactAcquirer:
    """Obtains the KODEGEN binaries for one run."""

    def __init__(
        self,
        *,
        config: InstallerConfig,
        state: InstallationState,
        workspace: Workspace,
        interaction: Interaction,
        release_index: ReleaseIndex,
        toolchain: BuildToolchain,
        fetcher: SourceFetcher,
        install_dir: Path,
        gate: PrivilegeGate | None = None,
        family: str = "unknown",
        manager: str = "unknown",
        preexisting: Mapping[str, Path] | None = None,
        env: Mapping[str, str] | None = None,
        runner: Runner = _run_subprocess,
        sleep: Callable[[float], None] = time.sleep,
        disk_usage: Callable[[str], object] = shutil.disk_usage,
    ) -> None:
        self.config = config
        self.state = state
        self.workspace = workspace
        self.interaction = interaction
        self.release_index = release_index
        self.toolchain = toolchain
        self.fetcher = fetcher
        self.install_dir = install_dir
        self.gate = gate
        self.family = family
        self.manager = manager
        self.preexisting = dict(preexisting or {})
        self.env = env
        self.runner = runner
        self.sleep = sleep
        self.disk_usage = disk_usage
        self.attempts: list[str] = []

    # ── Entry point ─────────────────────────────────────────────

    def acquire(self, platform: PlatformDescriptor, plan_preference: str = "auto") -> list[InstalledArtifact]:
        """Install all binaries, falling back to a source build at most once.

        Args:
            plan_preference: ``auto`` or ``prebuilt`` try the release first;
                ``source`` goes straight to the source build.

        Raises:
            AcquisitionFailed: Both strategies failed (fatal).
        """
        if plan_preference not in STRATEGIES:
            raise ValueError(f"Unknown strategy {plan_preference!r}")

        prebuilt_error: InstallerError | None = None
        if plan_preference != "source":
            self.attempts.append("prebuilt")
            try:
                return self._acquire_prebuilt(platform)
            except (AcquisitionFailed, VerificationFailed) as e:
                prebuilt_error = e
                logger.warning("Pre-built acquisition failed: %s", e.message)
                self.interaction.warn(f"Pre-built install failed: {e.message}")
                for hint in e.hints:
                    self.interaction.info(hint)
                self.state.add_warning(f"pre-built install failed: {e.message}")

        self.attempts.append("source")
        try:
            return self._acquire_source(platform)
        except (AcquisitionFailed, VerificationFailed) as e:
            message = "Building KODEGEN from source failed"
            if prebuilt_error is not None:
                message = "Both the pre-built release and the source build failed"
            hints = list(e.hints)
            if prebuilt_error is not None:
                hints.append(f"Pre-built install error: {prebuilt_error.message}")
            hints.append("Re-run with --debug and check the diagnostic log for details")
            raise AcquisitionFailed(
                f"{message}: {e.message}",
                strategy="source",
                operation=e.operation or "source build",
                detail=e.detail,
                returncode=e.returncode,
                hints=hints,
            ) from e

    # ── Pre-built ───────────────────────────────────────────────

    def plan_prebuilt(self, platform: PlatformDescriptor) -> tuple[PrebuiltRelease, str, Elevation | None]:
        """Pick the release asset and install method for *platform*.

        Returns:
            ``(plan, kind, elevation)`` where *kind* is deb/rpm/pkg/msi/tar.
        """
        if platform.target_triple not in PREBUILT_TRIPLES:
            raise AcquisitionFailed(
                f"No pre-built release is published for {platform.target_triple}",
                strategy="prebuilt",
            )

        release = self.release_index.latest_release(self.config.repository)
        kind = package_kind(platform, self.family)
        elevation: Elevation | None = None

        if kind in PRIVILEGED_KINDS:
            elevation = self.gate.acquire_elevation("install the KODEGEN package") if self.gate else None
            if elevation is None:
                if not platform.is_linux:
                    raise AcquisitionFailed(
                        "Installing the KODEGEN package requires administrator privileges",
                        strategy="prebuilt",
                    )
                logger.info("No elevation for a %s install, using the release archive", kind)
                kind = "tar"

        asset = select_asset(release, kind, platform)
        if asset is None and kind != "tar" and platform.is_linux:
            kind = "tar"
            asset = select_asset(release, kind, platform)
        if asset is None:
            raise AcquisitionFailed(
                f"Release {release.tag} has no {kind} asset for {platform.target_triple}",
                strategy="prebuilt",
                category="http_not_found",
                detail=", ".join(a.name for a in release.assets[:20]),
            )

        plan = PrebuiltRelease(
            download_url=asset.url,
            asset_name=asset.name,
            expected_min_size=self.config.download.min_size_bytes,
            expected_size=asset.size or None,
            optional_hash=self._companion_hash(release, asset),
            version=release.version,
        )
        return plan, kind, elevation

    def _companion_hash(self, release: Release, asset: ReleaseAsset) -> str | None:
        companion = release.find_asset(f"{asset.name}.sha256")
        if companion is None:
            return None
        dest = self.workspace.downloads / companion.name
        try:
            self.release_index.download(
                companion.url, dest, timeout=self.config.download.timeout_seconds,
            )
            return parse_checksum_file(dest.read_text(encoding="utf-8", errors="replace"))
        except (OSError, http.client.HTTPException) as e:
            logger.warning("Could not fetch %s: %s", companion.name, e)
            return None

    def _acquire_prebuilt(self, platform: PlatformDescriptor) -> list[InstalledArtifact]:
        plan, kind, elevation = self.plan_prebuilt(platform)
        dl = self.config.download

        self.interaction.step(f"Downloading {plan.asset_name} ({plan.version})")
        path = download_with_retry(
            self.release_index.download,
            plan.download_url,
            self.workspace.downloads / plan.asset_name,
            attempts=dl.attempts,
            backoff=dl.backoff_seconds,
            timeout=dl.timeout_seconds,
            min_size=plan.expected_min_size,
            expected_size=plan.expected_size,
            expected_hash=plan.optional_hash,
            sleep=self.sleep,
            disk_usage=self.disk_usage,
        )

        if kind == "tar":
            return self._install_archive(path, platform)
        return self._install_package(kind, path, platform, elevation)

    def _native_dirs(self, platform: PlatformDescriptor) -> list[Path]:
        if platform.is_windows:
            program_files = (self.env or os.environ).get("ProgramFiles", r"C:\Program Files")
            return [Path(program_files) / "kodegen", Path(program_files) / "kodegen" / "bin"]
        if platform.is_macos:
            return [Path("/usr/local/bin"), Path("/opt/kodegen/bin")]
        return [Path("/usr/bin"), Path("/usr/local/bin")]

    def _install_package(
        self,
        kind: str,
        path: Path,
        platform: PlatformDescriptor,
        elevation: Elevation | None,
    ) -> list[InstalledArtifact]:
        native_dirs = self._native_dirs(platform)
        for spec in self.config.binaries:
            existing = self.preexisting.get(spec.name)
            if existing is not None:
                backup_binary(existing, self.workspace.backups, self.state)

        self.interaction.step(f"Installing {path.name}")
        result = install_native(
            kind, path, manager=self.manager, elevation=elevation, runner=self.runner,
        )
        self.state.append_build_output(command_output(result))
        if not result["ok"]:
            cmd = native_install_command(kind, path, manager=self.manager)
            raise AcquisitionFailed(
                f"Installing {path.name} failed",
                strategy="prebuilt",
                operation=f"{kind} install",
                detail=command_output(result),
                returncode=result.get("returncode"),
                hints=[f"Try it manually: sudo {' '.join(cmd)}"],
            )

        package = str(path) if kind == "msi" else self.config.package_name
        artifacts = []
        for spec in self.config.binaries:
            found = find_binary(spec.name, extra_dirs=native_dirs, env=self.env)
            target = found or native_dirs[0] / executable_name(spec.name, platform)
            existing = self.preexisting.get(spec.name)
            extra = {
                "preexisting": existing is not None and existing == target,
                "package": package,
                "method": kind,
            }
            self.state.record_artifact(
                InstalledArtifact(binary_name=spec.name, install_path=target, **extra)
            )
            verified = verify_binary(spec.name, target, platform, runner=self.runner)
            artifact = verified.model_copy(update=extra)
            self.state.record_artifact(artifact)
            artifacts.append(artifact)
        return artifacts

    def _install_archive(self, archive: Path, platform: PlatformDescriptor) -> list[InstalledArtifact]:
        try:
            extracted = extract_archive(archive, self.workspace.downloads / "extracted")
        except (OSError, tarfile.TarError) as e:
            raise AcquisitionFailed(
                f"Could not extract {archive.name}", strategy="prebuilt", detail=str(e),
            ) from e

        artifacts = []
        for spec in self.config.binaries:
            exe = executable_name(spec.name, platform)
            source = find_in_tree(extracted, exe)
            if source is None:
                raise AcquisitionFailed(
                    f"{exe} not found in {archive.name}", strategy="prebuilt",
                )
            target = self.install_dir / exe
            preexisting = target.exists()
            if preexisting:
                backup_binary(target, self.workspace.backups, self.state)
            try:
                placed = place_binary(source, self.install_dir)
            except OSError as e:
                raise AcquisitionFailed(
                    f"Could not write {target}", strategy="prebuilt", detail=str(e),
                ) from e

            extra = {"preexisting": preexisting, "method": "tar"}
            self.state.record_artifact(
                InstalledArtifact(binary_name=spec.name, install_path=placed, **extra)
            )
            verified = verify_binary(spec.name, placed, platform, runner=self.runner)
            artifact = verified.model_copy(update=extra)
            self.state.record_artifact(artifact)
            artifacts.append(artifact)
        return artifacts

    # ── Source ──────────────────────────────────────────────────

    def plan_source(self) -> SourceBuild:
        return SourceBuild(
            repository_url=self.config.git_url,
            subpaths=[b.subpath for b in self.config.binaries],
        )

    def _acquire_source(self, platform: PlatformDescriptor) -> list[InstalledArtifact]:
        plan = self.plan_source()

        self.interaction.step(f"Cloning {plan.repository_url}")
        checkout = self.fetcher.fetch(plan.repository_url, self.workspace.src / "kodegen")

        self.interaction.step(f"Preparing the Rust {self.config.rust_channel} toolchain")
        if self.toolchain.ensure():
            self.state.toolchain_installed = True

        artifacts = []
        for spec, subpath in zip(self.config.binaries, plan.subpaths):
            target = self.toolchain.bin_dir / executable_name(spec.name, platform)
            preexisting = target.exists()
            if preexisting:
                backup_binary(target, self.workspace.backups, self.state)

            self.interaction.step(f"Building {spec.name} (this may take a few minutes)")
            try:
                self.toolchain.install_from_path(checkout / subpath)
            except AcquisitionFailed as e:
                self.state.append_build_output(e.detail)
                raise
            self.state.append_build_output(self.toolchain.last_output)

            extra = {"preexisting": preexisting, "method": "cargo"}
            self.state.record_artifact(
                InstalledArtifact(binary_name=spec.name, install_path=target, **extra)
            )
            verified = verify_binary(spec.name, target, platform, runner=self.runner)
            artifact = verified.model_copy(update=extra)
            self.state.record_artifact(artifact)
            artifacts.append(artifact)
            self.interaction.success(f"{spec.name} {artifact.version} installed")
        return artifacts
