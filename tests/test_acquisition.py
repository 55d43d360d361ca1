"""
Tests for artifact acquisition — pre-built release, source fallback,
backups and native packages.
"""

import hashlib
from pathlib import Path

import pytest

from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.models.state import InstallationState
from kodegen_setup.core.services.installer.detection.privilege import PrivilegeGate
from kodegen_setup.core.services.installer.domain.errors import AcquisitionFailed
from kodegen_setup.core.services.installer.execution.acquisition import ArtifactAcquirer
from kodegen_setup.core.services.installer.execution.workspace import Workspace

from tests.fakes import (
    ELF_BYTES,
    FakeFetcher,
    FakeReleaseIndex,
    FakeToolchain,
    make_binary,
    make_tarball,
    release_with,
)

TARBALL = "kodegen-v0.5.0-x86_64-unknown-linux-gnu.tar.gz"


@pytest.fixture
def workspace(tmp_path):
    ws = Workspace(tmp_path / "ws")
    yield ws
    ws.cleanup()


@pytest.fixture
def cargo_bin(home):
    return home / ".cargo" / "bin"


@pytest.fixture
def make_acquirer(config, workspace, console, runner, env, cargo_bin, plenty_of_disk):
    def factory(**overrides):
        kwargs = dict(
            config=config,
            state=InstallationState(),
            workspace=workspace,
            interaction=console,
            release_index=FakeReleaseIndex(
                release_with(TARBALL), files={f"https://dl.example/{TARBALL}": make_tarball(
                    ["kodegen", "kodegend"])},
            ),
            toolchain=FakeToolchain(cargo_bin),
            fetcher=FakeFetcher(),
            install_dir=config.install_dir,
            family="arch",
            manager="pacman",
            env=env,
            runner=runner,
            sleep=lambda s: None,
            disk_usage=plenty_of_disk,
        )
        kwargs.update(overrides)
        return ArtifactAcquirer(**kwargs)

    return factory


class TestPrebuilt:
    def test_tarball_install(self, make_acquirer, arch_linux, config):
        acquirer = make_acquirer()
        artifacts = acquirer.acquire(arch_linux)

        assert acquirer.attempts == ["prebuilt"]
        assert [a.binary_name for a in artifacts] == ["kodegen", "kodegend"]
        for a in artifacts:
            assert a.install_path == config.install_dir / a.binary_name
            assert a.verified and a.version == "0.5.0"
            assert a.method == "tar"
            assert not a.preexisting
        assert acquirer.toolchain.builds == []

    def test_every_artifact_recorded(self, make_acquirer, arch_linux):
        acquirer = make_acquirer()
        acquirer.acquire(arch_linux)
        assert len(acquirer.state.artifacts_installed) == 2
        assert all(a.verified for a in acquirer.state.artifacts_installed)

    def test_existing_binary_backed_up(self, make_acquirer, arch_linux, config):
        old = make_binary(config.install_dir / "kodegen", ELF_BYTES + b"old")
        acquirer = make_acquirer()
        acquirer.acquire(arch_linux)

        backup = Path(acquirer.state.backups[str(old)])
        assert backup.parent == acquirer.workspace.backups
        assert backup.name.startswith("kodegen.bak.")
        assert backup.read_bytes().endswith(b"old")
        assert old.read_bytes() == ELF_BYTES
        kodegen = acquirer.state.artifacts_installed[0]
        assert kodegen.preexisting

    def test_companion_checksum_is_enforced(self, make_acquirer, arch_linux):
        payload = make_tarball(["kodegen", "kodegend"])
        release = release_with(TARBALL, f"{TARBALL}.sha256")
        index = FakeReleaseIndex(release, files={
            f"https://dl.example/{TARBALL}": payload,
            f"https://dl.example/{TARBALL}.sha256": b"0" * 64 + b"  " + TARBALL.encode(),
        })
        acquirer = make_acquirer(release_index=index)
        acquirer.acquire(arch_linux)

        # every attempt fails the checksum, then the source build is used
        assert acquirer.attempts == ["prebuilt", "source"]
        assert index.downloads.count(f"https://dl.example/{TARBALL}") == 3

    def test_good_checksum_passes(self, make_acquirer, arch_linux):
        payload = make_tarball(["kodegen", "kodegend"])
        digest = hashlib.sha256(payload).hexdigest()
        index = FakeReleaseIndex(release_with(TARBALL, f"{TARBALL}.sha256"), files={
            f"https://dl.example/{TARBALL}": payload,
            f"https://dl.example/{TARBALL}.sha256": f"{digest}  {TARBALL}\n".encode(),
        })
        acquirer = make_acquirer(release_index=index)
        acquirer.acquire(arch_linux)
        assert acquirer.attempts == ["prebuilt"]

    def test_unsupported_triple_goes_straight_to_source(self, make_acquirer):
        i686 = PlatformDescriptor(
            os_family="arch", os_family_like=frozenset(),
            architecture="i686", target_triple="i686-unknown-linux-gnu",
        )
        acquirer = make_acquirer()
        acquirer.acquire(i686)
        assert acquirer.release_index.queries == 0
        assert acquirer.attempts == ["prebuilt", "source"]


class TestFallback:
    def test_disk_full_falls_back_to_source(self, make_acquirer, arch_linux, no_disk, cargo_bin):
        acquirer = make_acquirer(disk_usage=no_disk)
        artifacts = acquirer.acquire(arch_linux)

        assert acquirer.attempts == ["prebuilt", "source"]
        assert acquirer.release_index.downloads == []
        assert [a.install_path for a in artifacts] == [cargo_bin / "kodegen", cargo_bin / "kodegend"]
        assert all(a.method == "cargo" for a in artifacts)
        assert "Not enough disk space" in acquirer.interaction.text("warn")

    def test_fallback_happens_exactly_once(self, make_acquirer, arch_linux):
        fetcher = FakeFetcher(error=AcquisitionFailed("git clone failed", strategy="source"))
        acquirer = make_acquirer(release_index=FakeReleaseIndex(None), fetcher=fetcher)
        with pytest.raises(AcquisitionFailed) as exc:
            acquirer.acquire(arch_linux)

        assert acquirer.attempts == ["prebuilt", "source"]
        assert acquirer.release_index.queries == 1
        assert fetcher.calls == ["https://github.com/cyrup-ai/kodegen.git"]
        assert exc.value.message.startswith("Both the pre-built release and the source build failed")
        assert any("Pre-built install error" in h for h in exc.value.hints)

    def test_source_strategy_skips_release(self, make_acquirer, arch_linux):
        acquirer = make_acquirer()
        acquirer.acquire(arch_linux, "source")
        assert acquirer.attempts == ["source"]
        assert acquirer.release_index.queries == 0

    def test_unknown_strategy(self, make_acquirer, arch_linux):
        with pytest.raises(ValueError):
            make_acquirer().acquire(arch_linux, "magic")


class TestSource:
    def test_build_records_toolchain_and_output(self, make_acquirer, arch_linux, cargo_bin):
        toolchain = FakeToolchain(cargo_bin, installs=True)
        acquirer = make_acquirer(toolchain=toolchain)
        acquirer.acquire(arch_linux, "source")

        assert toolchain.ensure_calls == 1
        assert toolchain.builds == ["kodegen", "kodegend"]
        assert acquirer.state.toolchain_installed
        assert "Finished release" in acquirer.state.build_log

    def test_failed_build_keeps_compiler_output(self, make_acquirer, arch_linux, cargo_bin):
        acquirer = make_acquirer(toolchain=FakeToolchain(cargo_bin, fail={"kodegend"}))
        with pytest.raises(AcquisitionFailed) as exc:
            acquirer.acquire(arch_linux, "source")

        assert exc.value.returncode == 101
        assert "could not compile" in exc.value.detail
        assert "error: could not compile" in acquirer.state.build_log
        # the first binary was written and recorded before the failure
        assert [a.binary_name for a in acquirer.state.artifacts_installed] == ["kodegen"]

    def test_rebuild_backs_up_previous_binary(self, make_acquirer, arch_linux, cargo_bin):
        previous = make_binary(cargo_bin / "kodegen", ELF_BYTES + b"v0.4")
        acquirer = make_acquirer()
        acquirer.acquire(arch_linux, "source")
        assert str(previous) in acquirer.state.backups
        assert acquirer.state.artifacts_installed[0].preexisting


class TestNativePackages:
    def test_deb_installed_with_root(self, make_acquirer, ubuntu, console, runner, tmp_path):
        deb = "kodegen_0.5.0_amd64.deb"
        index = FakeReleaseIndex(release_with(deb), files={f"https://dl.example/{deb}": b"!<arch>"})
        gate = PrivilegeGate(console, runner=runner, is_root=True, which=lambda n: None)
        native = tmp_path / "usr-bin"

        acquirer = make_acquirer(release_index=index, gate=gate, family="debian", manager="apt")
        acquirer._native_dirs = lambda platform: [native]

        def fake_apt(cmd, **kwargs):
            if cmd[:2] == ["apt-get", "install"]:
                make_binary(native / "kodegen")
                make_binary(native / "kodegend")
            return runner(cmd, **kwargs)

        acquirer.runner = fake_apt
        artifacts = acquirer.acquire(ubuntu)

        assert acquirer.attempts == ["prebuilt"]
        assert all(a.method == "deb" and a.package == "kodegen" for a in artifacts)
        install = runner.calls_to("apt-get", "install")[0]
        assert install["elevated"]

    def test_without_elevation_linux_uses_tarball(self, make_acquirer, ubuntu, console, runner):
        deb = "kodegen_0.5.0_amd64.deb"
        index = FakeReleaseIndex(release_with(deb, TARBALL), files={
            f"https://dl.example/{TARBALL}": make_tarball(["kodegen", "kodegend"]),
        })
        gate = PrivilegeGate(console, runner=runner, is_root=False, which=lambda n: None)
        acquirer = make_acquirer(release_index=index, gate=gate, family="debian", manager="apt")
        artifacts = acquirer.acquire(ubuntu)

        assert all(a.method == "tar" for a in artifacts)
        assert index.downloads == [f"https://dl.example/{TARBALL}"]
        assert not runner.ran("apt-get")

    def test_macos_without_elevation_falls_back_to_source(self, make_acquirer, console, runner, cargo_bin):
        macos_x86 = PlatformDescriptor(
            os_family="macos", architecture="x86_64", target_triple="x86_64-apple-darwin",
        )
        index = FakeReleaseIndex(release_with("kodegen-0.5.0-x86_64.pkg"))
        gate = PrivilegeGate(console, runner=runner, is_root=False, which=lambda n: None)
        toolchain = FakeToolchain(cargo_bin)
        acquirer = make_acquirer(release_index=index, gate=gate, toolchain=toolchain,
                                 family="macos", manager="brew")

        # ELF fakes fail the Mach-O check on macOS: both strategies fail
        with pytest.raises(AcquisitionFailed):
            acquirer.acquire(macos_x86)
        assert acquirer.attempts == ["prebuilt", "source"]
        assert "administrator privileges" in console.text("warn")
