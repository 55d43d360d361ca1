"""
L1 Domain — Installer error taxonomy (pure).

Every failure the orchestrator can hit maps onto one of these classes.
``fatal`` decides propagation: fatal errors unwind to the top-level
handler (rollback + exit 1), non-fatal ones are caught where they occur
and downgraded to warnings.
"""

from __future__ import annotations

_MAX_DETAIL = 2000


class InstallerError(Exception):
    """Base class for all installer failures.

    Args:
        message: One-line description of what went wrong.
        operation: The operation that failed (e.g. ``"download"``).
        detail: Underlying tool output (truncated to the last 2000 chars).
        returncode: Exit code of the underlying tool, if any.
        hints: Actionable next steps shown to the user.
    """

    fatal: bool = True

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        detail: str = "",
        returncode: int | None = None,
        hints: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.detail = detail[-_MAX_DETAIL:] if detail else ""
        self.returncode = returncode
        self.hints = list(hints or [])

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "detail": self.detail,
            "returncode": self.returncode,
            "hints": self.hints,
            "fatal": self.fatal,
        }


class UnsupportedPlatform(InstallerError):
    """OS or architecture cannot be mapped to a known target triple."""

    def __init__(self, message: str, *, value: str = "", **kwargs) -> None:
        kwargs.setdefault("operation", "platform detection")
        kwargs.setdefault("hints", [
            "Supported: Linux (x86_64, aarch64, i686), macOS (x86_64, aarch64), "
            "Windows (x86_64, aarch64, i686)",
        ])
        super().__init__(message, **kwargs)
        self.value = value


class DependencyUnavailable(InstallerError):
    """System dependencies could not be installed (recoverable)."""

    fatal = False


class ElevationDenied(InstallerError):
    """Elevation is required but unavailable or refused."""


class AcquisitionFailed(InstallerError):
    """An acquisition strategy failed.

    Recoverable while the source-build fallback has not been tried; the
    acquirer re-raises it as fatal once both strategies are exhausted.
    """

    def __init__(self, message: str, *, strategy: str = "", category: str = "", **kwargs) -> None:
        kwargs.setdefault("operation", f"{strategy} acquisition" if strategy else "acquisition")
        super().__init__(message, **kwargs)
        self.strategy = strategy
        self.category = category


class VerificationFailed(InstallerError):
    """A binary is missing, of the wrong type, or cannot report its version."""

    def __init__(self, message: str, *, binary: str = "", **kwargs) -> None:
        kwargs.setdefault("operation", "binary verification")
        super().__init__(message, **kwargs)
        self.binary = binary


class ServiceConfigFailed(InstallerError):
    """Background service installation failed (downgraded to warning)."""

    fatal = False


class ClientConfigFailed(InstallerError):
    """Client integration setup failed (downgraded to warning)."""

    fatal = False


class InstallInterrupted(InstallerError):
    """The run was interrupted by a signal or Ctrl-C."""

    def __init__(self, message: str = "Installation interrupted", **kwargs) -> None:
        kwargs.setdefault("operation", "installation")
        kwargs.setdefault("hints", ["Re-run the installer to complete the installation"])
        super().__init__(message, **kwargs)
