"""
Build toolchain adapter — rustup + cargo.

``ensure`` installs rustup non-interactively when ``rustc`` is absent
(with the configured channel as default) and adds the channel when
rustup exists but lacks it, leaving the user's global default unchanged.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Mapping
from pathlib import Path

from kodegen_setup.adapters.base import BuildToolchain
from kodegen_setup.core.services.installer.data.constants import (
    RUSTUP_INIT_URL,
    RUSTUP_INIT_WINDOWS_URL,
    TIMEOUTS,
)
from kodegen_setup.core.services.installer.detection.environment import (
    cargo_bin_dir,
    search_path,
)
from kodegen_setup.core.services.installer.domain.errors import AcquisitionFailed
from kodegen_setup.core.services.installer.execution.download import fetch_url
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)

logger = logging.getLogger(__name__)


class CargoToolchain(BuildToolchain):
    """Rust toolchain managed by rustup.

    Args:
        channel: Toolchain channel used for builds (``nightly``).
        scratch_dir: Where the rustup installer is downloaded.
        windows: Use ``rustup-init.exe`` instead of the shell installer.
    """

    def __init__(
        self,
        *,
        channel: str = "nightly",
        scratch_dir: Path,
        windows: bool = False,
        env: Mapping[str, str] | None = None,
        runner: Runner = _run_subprocess,
        fetch: Callable[..., object] = fetch_url,
    ) -> None:
        self.channel = channel
        self.scratch_dir = scratch_dir
        self.windows = windows
        self.env = env
        self.runner = runner
        self.fetch = fetch
        self.last_output = ""

    @property
    def bin_dir(self) -> Path:
        return cargo_bin_dir(self.env)

    def _tool(self, name: str) -> str:
        """Absolute path of a rustup-managed tool, preferring ``bin_dir``."""
        found = shutil.which(name, path=search_path([self.bin_dir], self.env))
        return found or name

    def _has(self, name: str) -> bool:
        return shutil.which(name, path=search_path([self.bin_dir], self.env)) is not None

    def ensure(self) -> bool:
        if not self._has("rustc") or not self._has("rustup"):
            self._install_rustup()
            return True

        listed = self.runner([self._tool("rustup"), "toolchain", "list"], timeout=TIMEOUTS["check"])
        if listed["ok"] and self.channel in listed.get("stdout", ""):
            logger.info("Rust %s toolchain already available", self.channel)
            return False

        logger.info("Installing Rust %s toolchain", self.channel)
        result = self.runner(
            [self._tool("rustup"), "toolchain", "install", self.channel, "--profile", "minimal"],
            timeout=TIMEOUTS["build"],
        )
        if not result["ok"]:
            raise AcquisitionFailed(
                f"Could not install the Rust {self.channel} toolchain",
                strategy="source",
                operation="rust toolchain",
                detail=command_output(result),
                returncode=result.get("returncode"),
                hints=[f"Run manually: rustup toolchain install {self.channel}"],
            )
        return True

    def _install_rustup(self) -> None:
        url = RUSTUP_INIT_WINDOWS_URL if self.windows else RUSTUP_INIT_URL
        script = self.scratch_dir / ("rustup-init.exe" if self.windows else "rustup-init.sh")
        try:
            self.fetch(url, script, timeout=TIMEOUTS["download"])
        except OSError as e:
            raise AcquisitionFailed(
                "Could not download the rustup installer",
                strategy="source",
                operation="rust toolchain",
                detail=str(e),
                hints=["Install Rust manually from https://rustup.rs"],
            ) from e

        args = ["-y", "--default-toolchain", self.channel, "--profile", "minimal"]
        cmd = [str(script), *args] if self.windows else ["sh", str(script), *args]
        result = self.runner(cmd, timeout=TIMEOUTS["build"])
        if not result["ok"]:
            raise AcquisitionFailed(
                "rustup installation failed",
                strategy="source",
                operation="rust toolchain",
                detail=command_output(result),
                returncode=result.get("returncode"),
                hints=["Install Rust manually from https://rustup.rs"],
            )
        logger.info("Installed rustup with the %s toolchain", self.channel)

    def install_from_path(self, path: Path) -> Path:
        cmd = [self._tool("cargo"), f"+{self.channel}", "install", "--path", str(path), "--force"]
        result = self.runner(
            cmd,
            timeout=TIMEOUTS["build"],
            cwd=str(path),
            keep_output=True,
        )
        self.last_output = "\n".join(p for p in (result.get("stdout"), result.get("stderr")) if p)
        if not result["ok"]:
            raise AcquisitionFailed(
                f"cargo install failed for {path.name}",
                strategy="source",
                operation="cargo install",
                detail=command_output(result),
                returncode=result.get("returncode"),
                hints=[
                    "Check that a C compiler, pkg-config and OpenSSL headers are installed",
                    f"Retry manually: cd {path} && cargo +{self.channel} install --path .",
                ],
            )
        return self.bin_dir
