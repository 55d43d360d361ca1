"""
Tests for detection — platform, environment, installed binaries and
system dependency resolution.
"""

from pathlib import Path

import pytest

from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.services.installer.data.constants import SUPPORTED_TRIPLES
from kodegen_setup.core.services.installer.detection import environment
from kodegen_setup.core.services.installer.detection.platform import (
    detect,
    normalize_arch,
    parse_os_release,
    read_os_release,
)
from kodegen_setup.core.services.installer.detection.system_deps import (
    _is_pkg_installed,
    detect_family,
    resolve,
)
from kodegen_setup.core.services.installer.detection.tool_version import (
    find_binary,
    get_tool_version,
    inspect,
)
from kodegen_setup.core.services.installer.domain.errors import UnsupportedPlatform

from tests.fakes import FakePackageManager, FakeRunner, fail, make_binary, ok


def _which(*available: str):
    return lambda name: f"/usr/bin/{name}" if name in available else None


# ── Platform ────────────────────────────────────────────────────


class TestPlatformDetect:
    @pytest.mark.parametrize("system,machine,triple", [
        ("Linux", "x86_64", "x86_64-unknown-linux-gnu"),
        ("Linux", "aarch64", "aarch64-unknown-linux-gnu"),
        ("Linux", "arm64", "aarch64-unknown-linux-gnu"),
        ("Linux", "i686", "i686-unknown-linux-gnu"),
        ("Darwin", "x86_64", "x86_64-apple-darwin"),
        ("Darwin", "arm64", "aarch64-apple-darwin"),
        ("Windows", "AMD64", "x86_64-pc-windows-msvc"),
        ("Windows", "ARM64", "aarch64-pc-windows-msvc"),
        ("Windows", "x86", "i686-pc-windows-msvc"),
    ])
    def test_target_triples(self, system, machine, triple):
        p = detect(system=system, machine=machine, os_release={})
        assert p.target_triple == triple
        assert p.target_triple in SUPPORTED_TRIPLES

    def test_linux_uses_os_release(self):
        p = detect(system="Linux", machine="x86_64",
                   os_release={"ID": "pop", "ID_LIKE": "ubuntu debian"})
        assert p.os_family == "pop"
        assert p.os_family_like == frozenset({"ubuntu", "debian"})
        assert p.is_linux and p.is_like("debian")

    def test_linux_without_os_release(self):
        p = detect(system="Linux", machine="x86_64", os_release={})
        assert p.os_family == "linux"
        assert p.os_family_like == frozenset()

    def test_macos_and_windows_have_no_like(self):
        assert detect(system="Darwin", machine="arm64").os_family_like is None
        assert detect(system="Windows", machine="AMD64").is_windows

    def test_unsupported_architecture(self):
        with pytest.raises(UnsupportedPlatform) as exc:
            detect(system="Linux", machine="armv7l", os_release={})
        assert exc.value.value == "armv7l"

    def test_unsupported_os(self):
        with pytest.raises(UnsupportedPlatform) as exc:
            detect(system="FreeBSD", machine="x86_64")
        assert exc.value.value == "FreeBSD"

    def test_no_32bit_macos(self):
        with pytest.raises(UnsupportedPlatform, match="i686-apple-darwin"):
            detect(system="Darwin", machine="i386")

    def test_normalize_arch_is_case_insensitive(self):
        assert normalize_arch("AMD64") == "x86_64"
        assert normalize_arch(" aarch64 ") == "aarch64"

    def test_parse_os_release(self):
        text = '# comment\nNAME="Fedora Linux"\nID=fedora\nID_LIKE=\'rhel centos\'\n\nBAD LINE\n'
        fields = parse_os_release(text)
        assert fields == {"NAME": "Fedora Linux", "ID": "fedora", "ID_LIKE": "rhel centos"}

    def test_read_os_release_falls_through(self, tmp_path):
        second = tmp_path / "os-release"
        second.write_text("ID=alpine\n")
        assert read_os_release((tmp_path / "missing", second)) == {"ID": "alpine"}
        assert read_os_release((tmp_path / "missing",)) == {}


# ── Environment ─────────────────────────────────────────────────


class TestEnvironment:
    def test_ci_markers(self):
        env = {"CI": "true", "GITHUB_ACTIONS": "true", "JENKINS_URL": ""}
        assert environment.ci_markers(env) == ["CI", "GITHUB_ACTIONS"]
        assert not environment.is_ci({"CI": "false"})

    def test_updates_only_for_humans(self):
        assert environment.updates_allowed(True, {})
        assert not environment.updates_allowed(False, {})
        assert not environment.updates_allowed(True, {"CI": "1"})

    def test_ssh(self):
        assert environment.is_ssh({"SSH_CONNECTION": "1.2.3.4 5 6.7.8.9 22"})
        assert not environment.is_ssh({})

    def test_directories(self, tmp_path):
        env = {"HOME": str(tmp_path)}
        assert environment.cargo_bin_dir(env) == tmp_path / ".cargo" / "bin"
        assert environment.cargo_bin_dir({**env, "CARGO_HOME": "/opt/cargo"}) == Path("/opt/cargo/bin")
        assert environment.default_install_dir(env) == tmp_path / ".local" / "bin"
        assert environment.default_diagnostics_dir(env) == tmp_path / ".kodegen" / "logs"

    def test_search_path_prepends_and_dedupes(self):
        path = environment.search_path([Path("/a"), Path("/b")], {"PATH": "/b:/c"})
        assert path.split(":") == ["/a", "/b", "/c"]


# ── Installed binaries ─────────────────────────────────────────


class TestInspect:
    def test_nothing_installed(self, env):
        existing = inspect(["kodegen", "kodegend"], env=env, runner=FakeRunner())
        assert not existing.any_present
        assert existing.installed_version is None

    def test_finds_binaries_in_extra_dirs(self, env, home, runner):
        cargo_bin = home / ".cargo" / "bin"
        make_binary(cargo_bin / "kodegen")
        make_binary(cargo_bin / "kodegend")
        existing = inspect(["kodegen", "kodegend"], extra_dirs=[cargo_bin], env=env, runner=runner)
        assert existing.all_present
        assert existing.installed_version == "0.5.0"
        assert existing.tools["kodegen"].path == cargo_bin / "kodegen"

    def test_partial(self, env, home, runner):
        make_binary(home / "bin" / "kodegen")
        existing = inspect(["kodegen", "kodegend"], extra_dirs=[home / "bin"], env=env, runner=runner)
        assert existing.any_present and not existing.all_present

    def test_broken_binary_has_no_version(self, env, home):
        binary = make_binary(home / "bin" / "kodegen")
        runner = FakeRunner().on("kodegen", "--version", ok=False, stderr="segfault")
        assert get_tool_version(binary, runner=runner) is None
        assert find_binary("kodegen", extra_dirs=[home / "bin"], env=env) == binary


# ── System dependencies ────────────────────────────────────────


def _platform(os_family, like=()):
    return PlatformDescriptor(
        os_family=os_family,
        os_family_like=frozenset(like),
        architecture="x86_64",
        target_triple="x86_64-unknown-linux-gnu",
    )


class TestDetectFamily:
    @pytest.mark.parametrize("os_family,like,expected", [
        ("ubuntu", (), ("debian", "apt")),
        ("pop", ("ubuntu", "debian"), ("debian", "apt")),
        ("fedora", (), ("fedora", "dnf")),
        ("arch", (), ("arch", "pacman")),
        ("opensuse-leap", ("suse", "opensuse"), ("suse", "zypper")),
        ("opensuse-microos", (), ("suse", "zypper")),
        ("alpine", (), ("alpine", "apk")),
        ("somedistro", ("rhel", "fedora"), ("fedora", "dnf")),
    ])
    def test_known_families(self, os_family, like, expected):
        assert detect_family(_platform(os_family, like), which=_which("dnf")) == expected

    def test_old_rhel_uses_yum(self):
        assert detect_family(_platform("centos"), which=_which("yum")) == ("fedora", "yum")

    def test_unknown_distro_falls_back_to_path(self):
        assert detect_family(_platform("mystery"), which=_which("apk")) == ("alpine", "apk")
        assert detect_family(_platform("mystery"), which=_which()) == ("unknown", "unknown")

    def test_macos(self, macos):
        assert detect_family(macos, which=_which()) == ("macos", "brew")


class TestResolve:
    def test_everything_present(self, ubuntu):
        pm = FakePackageManager("apt", installed={"libssl-dev"})
        missing = resolve(
            ubuntu, manager=pm, which=_which("git", "curl", "gcc", "pkg-config"),
            path_exists=lambda p: False, runner=FakeRunner(default=fail()),
        )
        assert missing.empty
        assert pm.install_calls == []

    def test_fresh_debian_lists_packages_in_order(self, ubuntu):
        pm = FakePackageManager("apt")
        missing = resolve(
            ubuntu, manager=pm, which=_which(), path_exists=lambda p: False,
            runner=FakeRunner(default=fail()),
        )
        assert missing.names == ["git", "curl", "c-compiler", "pkg-config", "tls-dev-headers"]
        assert missing.packages == ["git", "curl", "build-essential", "pkg-config", "libssl-dev"]
        assert missing.manager == "apt"

    def test_packages_are_deduplicated(self, arch_linux):
        missing = resolve(
            arch_linux, manager=FakePackageManager("pacman"), which=_which("git", "curl"),
            path_exists=lambda p: False, runner=FakeRunner(default=fail()),
        )
        assert missing.packages == ["base-devel", "openssl"]

    def test_header_satisfies_tls(self, ubuntu):
        missing = resolve(
            ubuntu, manager=FakePackageManager("apt"),
            which=_which("git", "curl", "cc", "pkg-config"),
            path_exists=lambda p: p == "/usr/include/openssl/ssl.h",
            runner=FakeRunner(default=fail()),
        )
        assert missing.empty

    def test_pkg_config_check_satisfies_tls(self, ubuntu):
        runner = FakeRunner(default=fail()).on("pkg-config", "--exists", "openssl")
        missing = resolve(
            ubuntu, manager=FakePackageManager("apt"),
            which=_which("git", "curl", "cc", "pkg-config"),
            path_exists=lambda p: False, runner=runner,
        )
        assert missing.empty

    def test_installing_only_shrinks_the_set(self, ubuntu):
        pm = FakePackageManager("apt")
        kwargs = dict(manager=pm, path_exists=lambda p: False, runner=FakeRunner(default=fail()))
        before = resolve(ubuntu, which=_which("curl"), **kwargs)
        pm.installed.add("libssl-dev")
        after = resolve(ubuntu, which=_which("curl", "git"), **kwargs)
        assert set(after.names) < set(before.names)

    def test_unknown_family_is_all_manual(self):
        missing = resolve(
            _platform("mystery"), which=_which(),
            path_exists=lambda p: False, runner=FakeRunner(default=fail()),
        )
        assert missing.manager == "unknown"
        assert missing.names == ["git", "curl", "c-compiler", "pkg-config", "tls-dev-headers"]
        assert {r.remediation.kind for r in missing.requirements} == {"manual"}
        assert missing.packages == []

    def test_unknown_family_with_tools_present(self):
        missing = resolve(
            _platform("mystery"), which=_which("git", "curl", "cc", "pkg-config"),
            path_exists=lambda p: p == "/usr/include/openssl/ssl.h",
            runner=FakeRunner(default=fail()),
        )
        assert missing.manager == "unknown"
        assert missing.empty

    def test_macos_special_remediations(self, macos):
        missing = resolve(
            macos, manager=FakePackageManager("brew"), which=_which(),
            path_exists=lambda p: False, runner=FakeRunner(default=fail()),
        )
        assert [r.name for r in missing.special] == ["xcode-clt", "homebrew"]
        assert missing.packages == ["git", "curl", "openssl", "pkg-config"]


class TestPackageQuery:
    def test_apt_requires_installed_status(self):
        runner = FakeRunner().on("dpkg-query", stdout="deinstall ok config-files")
        assert not _is_pkg_installed("git", "apt", runner=runner)
        runner.on("dpkg-query", stdout="install ok installed")
        assert _is_pkg_installed("git", "apt", runner=runner)

    @pytest.mark.parametrize("manager,argv", [
        ("dnf", ("rpm", "-q")),
        ("zypper", ("rpm", "-q")),
        ("apk", ("apk", "info", "-e")),
        ("pacman", ("pacman", "-Q")),
        ("brew", ("brew", "ls", "--versions")),
        ("winget", ("winget", "list", "--id")),
    ])
    def test_query_commands(self, manager, argv):
        runner = FakeRunner()
        assert _is_pkg_installed("openssl", manager, runner=runner)
        assert runner.ran(*argv)

    def test_unknown_manager(self):
        assert not _is_pkg_installed("git", "unknown", runner=FakeRunner(default=ok()))
