"""
L1 Domain — Rollback plan generation (pure).

Derives undo steps from what an installer run recorded.
No I/O, no subprocess.
"""

from __future__ import annotations

from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.data.undo_catalog import (
    PACKAGE_REMOVAL,
    SERVICE_UNDO,
    TOOLCHAIN_REMOVAL,
    UNDO_COMMANDS,
    resolve_template,
)


def _generate_rollback(state: InstallationState, *, service_binary: str = "") -> list[dict]:
    """Generate a rollback plan (strict reverse order).

    The service goes first, then artifacts last-to-first.  Each step is
    a dict with an ``action`` of ``"run"``, ``"restore"`` or ``"delete"``
    plus a human ``label``.  Artifacts that existed before the run and
    were never overwritten produce no step; a package that was already
    installed is never removed, only its backed-up binary restored.

    Args:
        state: The run's installation state.
        service_binary: Path of the daemon binary used to unregister the service.

    Returns:
        Ordered list of rollback step dicts.
    """
    steps: list[dict] = []

    if state.service_installed and service_binary:
        steps.append({
            "action": "run",
            "label": "unregister background service",
            "command": resolve_template(SERVICE_UNDO, binary=service_binary),
            "needs_sudo": state.service_elevated,
        })

    for artifact in reversed(state.artifacts_installed):
        path = str(artifact.install_path)
        undo = UNDO_COMMANDS.get(artifact.method, {})
        backup = state.backups.get(path)

        if artifact.package and undo.get("command") and not artifact.preexisting:
            steps.append({
                "action": "run",
                "label": f"remove package {artifact.package}",
                "command": resolve_template(
                    undo["command"], package=artifact.package, install_path=path,
                ),
                "needs_sudo": undo.get("needs_sudo", False),
            })

        if backup:
            steps.append({
                "action": "restore",
                "label": f"restore previous {artifact.binary_name}",
                "backup": backup,
                "path": path,
            })
        elif not artifact.preexisting and (undo.get("delete_file") or not artifact.package):
            steps.append({
                "action": "delete",
                "label": f"remove {artifact.binary_name}",
                "path": path,
            })

    return steps


def _manual_steps(state: InstallationState) -> list[str]:
    """What rollback deliberately leaves behind, with removal commands."""
    manual: list[str] = []
    if state.packages_installed:
        removal = PACKAGE_REMOVAL.get(state.package_manager or "")
        pkgs = " ".join(state.packages_installed)
        if removal:
            manual.append(
                f"System packages installed by this run were kept: {pkgs}. "
                f"Remove with: {' '.join(removal)} {pkgs}"
            )
        else:
            manual.append(f"System packages installed by this run were kept: {pkgs}")
    if state.toolchain_installed:
        manual.append(
            f"The Rust toolchain installed by this run was kept. Remove with: {TOOLCHAIN_REMOVAL}"
        )
    return manual
