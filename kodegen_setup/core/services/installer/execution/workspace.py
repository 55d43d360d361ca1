"""
L4 Execution — Temporary workspace and signal handling.

The workspace is created once per run and always removed by the
caller's ``finally``.  SIGTERM/SIGHUP are turned into
``InstallInterrupted`` so the same ``finally`` (and rollback) runs when
the installer is killed.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import signal
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path

from kodegen_setup.core.services.installer.domain.errors import InstallInterrupted

logger = logging.getLogger(__name__)


class Workspace:
    """A private temp directory with ``downloads``, ``src`` and ``backups`` areas."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.downloads = root / "downloads"
        self.src = root / "src"
        self.backups = root / "backups"
        for d in (self.downloads, self.src, self.backups):
            d.mkdir(parents=True, exist_ok=True)
        self._closed = False

    @classmethod
    def create(cls, prefix: str = "kodegen-setup-") -> Workspace:
        root = Path(tempfile.mkdtemp(prefix=prefix))
        logger.debug("Workspace created at %s", root)
        return cls(root)

    def cleanup(self) -> None:
        """Remove the workspace.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        shutil.rmtree(self.root, ignore_errors=True)
        logger.debug("Workspace removed: %s", self.root)

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()


def _raise_interrupted(signum: int, _frame: object) -> None:
    name = signal.Signals(signum).name
    raise InstallInterrupted(f"Installation interrupted by {name}", detail=name)


@contextlib.contextmanager
def signal_guard() -> Iterator[None]:
    """Convert SIGTERM/SIGHUP into ``InstallInterrupted`` for the block.

    Only possible on the main thread; elsewhere the block runs unguarded.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    wanted = [getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)]
    previous = {}
    for sig in wanted:
        previous[sig] = signal.signal(sig, _raise_interrupted)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
