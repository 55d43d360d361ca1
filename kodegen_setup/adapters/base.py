"""
Adapter base — the contracts between the installer core and the outside world.

The orchestrator only talks to package managers, release hosting, the
build toolchain, version control and the human at the terminal through
these interfaces.  Production implementations live next to this module;
tests inject fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from kodegen_setup.core.models.artifact import Release
from kodegen_setup.core.services.installer.domain.elevation import Elevation


class PackageManager(ABC):
    """One OS-native package manager.

    ``install`` returns a runner-style result dict and never raises;
    the caller decides whether a failure is fatal.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Manager identifier (``apt``, ``dnf``, ``brew``...)."""

    @property
    def needs_elevation(self) -> bool:
        return True

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the manager's binary is on PATH."""

    @abstractmethod
    def is_installed(self, package: str) -> bool:
        """Whether *package* is in the package database."""

    @abstractmethod
    def install(self, packages: list[str], *, elevation: Elevation | None = None) -> dict[str, Any]:
        """Install *packages* in one transaction."""

    @abstractmethod
    def install_command(self, packages: list[str]) -> list[str]:
        """The argv a human would run to install *packages*."""

    def use_executable(self, path: str) -> None:
        """Run the manager from *path* instead of looking it up on PATH.

        Needed right after the manager itself was installed into a
        directory the current process does not have on PATH.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ReleaseIndex(ABC):
    """Where published releases are listed and downloaded from."""

    @abstractmethod
    def latest_release(self, repo: str) -> Release:
        """Metadata of the newest release of ``owner/name``.

        Raises:
            AcquisitionFailed: The index could not be queried.
        """

    @abstractmethod
    def download(self, url: str, dest: Path, *, timeout: int) -> Path:
        """Fetch *url* to *dest* in a single attempt.

        Raises ``OSError`` (including ``urllib.error.URLError``) on failure;
        retries are the caller's business.
        """


class BuildToolchain(ABC):
    """The compiler toolchain used by the source fallback.

    ``last_output`` holds the output of the most recent build so it can
    go into the diagnostic bundle.
    """

    last_output: str = ""

    @property
    @abstractmethod
    def bin_dir(self) -> Path:
        """Directory that ``install_from_path`` installs binaries into."""

    @abstractmethod
    def ensure(self) -> bool:
        """Make the toolchain usable.

        Returns:
            True if this call installed something (rustup or a channel).

        Raises:
            AcquisitionFailed: The toolchain could not be installed.
        """

    @abstractmethod
    def install_from_path(self, path: Path) -> Path:
        """Build and install the crate at *path*; returns ``bin_dir``.

        Raises:
            AcquisitionFailed: The build failed (``detail`` holds its output).
        """


class SourceFetcher(ABC):
    """Obtains a source tree."""

    @abstractmethod
    def fetch(self, url: str, dest: Path) -> Path:
        """Shallow-clone *url* into *dest* and return the checkout path.

        Raises:
            AcquisitionFailed: The clone failed.
        """


class Interaction(ABC):
    """The console: progress lines and questions for the user."""

    @property
    @abstractmethod
    def interactive(self) -> bool:
        """True when a human can answer prompts."""

    @abstractmethod
    def step(self, message: str) -> None:
        """A new phase of work starts."""

    @abstractmethod
    def info(self, message: str) -> None: ...

    @abstractmethod
    def warn(self, message: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...

    @abstractmethod
    def success(self, message: str) -> None: ...

    @abstractmethod
    def confirm(self, question: str, *, default: bool = False) -> bool:
        """Yes/no question.  Non-interactive consoles return *default*."""

    @abstractmethod
    def password(self, prompt: str) -> str:
        """Hidden input.  Non-interactive consoles return ``""``."""
