"""
Shared test fixtures and configuration.
"""

from collections import namedtuple
from pathlib import Path

import pytest

from kodegen_setup.core.models.config import DownloadConfig, InstallerConfig
from kodegen_setup.core.models.platform import PlatformDescriptor

from tests.fakes import FakeInteraction, FakeRunner

DiskUsage = namedtuple("DiskUsage", "total used free")


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def home(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def env(tmp_path: Path, home: Path) -> dict[str, str]:
    """An isolated environment: PATH only contains an empty temp dir."""
    sysbin = tmp_path / "sysbin"
    sysbin.mkdir()
    return {
        "HOME": str(home),
        "PATH": str(sysbin),
        "CARGO_HOME": str(home / ".cargo"),
    }


@pytest.fixture
def config(tmp_path: Path, home: Path) -> InstallerConfig:
    return InstallerConfig(
        install_dir=home / ".local" / "bin",
        diagnostics_dir=tmp_path / "logs",
        download=DownloadConfig(min_size_bytes=1),
    )


@pytest.fixture
def ubuntu() -> PlatformDescriptor:
    return PlatformDescriptor(
        os_family="ubuntu",
        os_family_like=frozenset({"debian"}),
        architecture="x86_64",
        target_triple="x86_64-unknown-linux-gnu",
    )


@pytest.fixture
def arch_linux() -> PlatformDescriptor:
    return PlatformDescriptor(
        os_family="arch",
        os_family_like=frozenset(),
        architecture="x86_64",
        target_triple="x86_64-unknown-linux-gnu",
    )


@pytest.fixture
def macos() -> PlatformDescriptor:
    return PlatformDescriptor(
        os_family="macos",
        architecture="aarch64",
        target_triple="aarch64-apple-darwin",
    )


@pytest.fixture
def runner() -> FakeRunner:
    r = FakeRunner()
    r.on("kodegen", "--version", stdout="kodegen 0.5.0")
    r.on("kodegend", "--version", stdout="kodegend 0.5.0")
    r.on("kodegend", "status", ok=False, stderr="service not installed")
    return r


@pytest.fixture
def console() -> FakeInteraction:
    return FakeInteraction()


@pytest.fixture
def plenty_of_disk():
    return lambda _path: DiskUsage(total=10**12, used=0, free=10**12)


@pytest.fixture
def no_disk():
    return lambda _path: DiskUsage(total=10**12, used=10**12, free=0)
