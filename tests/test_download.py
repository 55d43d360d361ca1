"""
Tests for downloads, binary verification and release asset selection.
"""

import hashlib
import http.client
from collections import namedtuple

import pytest

from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.services.installer.domain.errors import (
    AcquisitionFailed,
    VerificationFailed,
)
from kodegen_setup.core.services.installer.execution.download import (
    _fmt_size,
    _verify_checksum,
    check_disk_space,
    download_with_retry,
    parse_checksum_file,
)
from kodegen_setup.core.services.installer.execution.native_installer import (
    extract_archive,
    find_in_tree,
    native_install_command,
    package_kind,
    place_binary,
    select_asset,
)
from kodegen_setup.core.services.installer.execution.verification import verify_binary

from tests.fakes import FakeRunner, make_binary, make_tarball, release_with

DiskUsage = namedtuple("DiskUsage", "total used free")
PAYLOAD = b"x" * 2048


def _plenty(_path):
    return DiskUsage(10**12, 0, 10**12)


class FlakyFetch:
    """Fails with the queued errors, then writes PAYLOAD."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self, url, dest, *, timeout):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        dest.write_bytes(PAYLOAD)
        return dest


# ── Download ────────────────────────────────────────────────────


class TestDownloadWithRetry:
    def test_first_attempt_succeeds(self, tmp_path):
        fetch = FlakyFetch()
        path = download_with_retry(fetch, "u", tmp_path / "a.tar.gz", disk_usage=_plenty)
        assert path.read_bytes() == PAYLOAD
        assert fetch.calls == 1

    def test_exponential_backoff(self, tmp_path):
        sleeps = []
        fetch = FlakyFetch(OSError("timed out"), OSError("timed out"))
        download_with_retry(
            fetch, "u", tmp_path / "a", attempts=3, backoff=1.0,
            sleep=sleeps.append, disk_usage=_plenty,
        )
        assert fetch.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_carry_category_and_hints(self, tmp_path):
        fetch = FlakyFetch(*[OSError("[Errno -3] Temporary failure in name resolution")] * 3)
        with pytest.raises(AcquisitionFailed) as exc:
            download_with_retry(fetch, "u", tmp_path / "a", sleep=lambda s: None, disk_usage=_plenty)
        assert exc.value.category == "dns"
        assert exc.value.strategy == "prebuilt"
        assert "DNS" in exc.value.hints[0]
        assert not (tmp_path / "a").exists()

    def test_disk_full_stops_retrying(self, tmp_path):
        sleeps = []
        fetch = FlakyFetch(OSError(28, "No space left on device"))
        with pytest.raises(AcquisitionFailed) as exc:
            download_with_retry(fetch, "u", tmp_path / "a", attempts=3,
                                sleep=sleeps.append, disk_usage=_plenty)
        assert exc.value.category == "disk_full"
        assert "after 1 attempt(s)" in exc.value.message
        assert fetch.calls == 1
        assert sleeps == []

    def test_truncated_body_is_retried(self, tmp_path):
        fetch = FlakyFetch(http.client.IncompleteRead(b"x", 2047))
        path = download_with_retry(
            fetch, "u", tmp_path / "a", sleep=lambda s: None, disk_usage=_plenty,
        )
        assert path.read_bytes() == PAYLOAD
        assert fetch.calls == 2

    def test_dropped_connection_exhausts_retries(self, tmp_path):
        fetch = FlakyFetch(*[http.client.RemoteDisconnected("closed")] * 3)
        with pytest.raises(AcquisitionFailed) as exc:
            download_with_retry(fetch, "u", tmp_path / "a", sleep=lambda s: None, disk_usage=_plenty)
        assert "after 3 attempt(s)" in exc.value.message
        assert exc.value.detail == "closed"

    def test_pre_check_refuses_before_fetching(self, tmp_path):
        fetch = FlakyFetch()
        with pytest.raises(AcquisitionFailed) as exc:
            download_with_retry(fetch, "u", tmp_path / "a",
                                disk_usage=lambda p: DiskUsage(100, 100, 0))
        assert exc.value.category == "disk_full"
        assert fetch.calls == 0

    def test_too_small_is_retried_then_fails(self, tmp_path):
        fetch = FlakyFetch()
        with pytest.raises(AcquisitionFailed, match="after 2 attempt"):
            download_with_retry(fetch, "u", tmp_path / "a", attempts=2, min_size=10_000,
                                sleep=lambda s: None, disk_usage=_plenty)
        assert fetch.calls == 2

    def test_size_mismatch(self, tmp_path):
        with pytest.raises(AcquisitionFailed) as exc:
            download_with_retry(FlakyFetch(), "u", tmp_path / "a", attempts=1,
                                expected_size=999, disk_usage=_plenty)
        assert "Size mismatch" in exc.value.detail

    def test_checksum_verified(self, tmp_path):
        good = "sha256:" + hashlib.sha256(PAYLOAD).hexdigest()
        download_with_retry(FlakyFetch(), "u", tmp_path / "a", expected_hash=good, disk_usage=_plenty)
        with pytest.raises(AcquisitionFailed) as exc:
            download_with_retry(FlakyFetch(), "u", tmp_path / "b", attempts=1,
                                expected_hash="sha256:" + "0" * 64, disk_usage=_plenty)
        assert "Checksum mismatch" in exc.value.detail


class TestDownloadHelpers:
    def test_parse_checksum_file(self):
        digest = "a" * 64
        assert parse_checksum_file(f"{digest}  kodegen.tar.gz\n") == f"sha256:{digest}"
        assert parse_checksum_file(digest.upper()) == f"sha256:{digest}"
        assert parse_checksum_file("not-a-digest") is None
        assert parse_checksum_file("") is None

    def test_verify_checksum(self, tmp_path):
        f = tmp_path / "f"
        f.write_bytes(b"abc")
        assert _verify_checksum(f, "sha256:" + hashlib.sha256(b"abc").hexdigest())
        assert not _verify_checksum(f, "sha256:deadbeef")

    def test_fmt_size(self):
        assert _fmt_size(512) == "512.0 B"
        assert _fmt_size(1536) == "1.5 KB"

    def test_check_disk_space_message(self, tmp_path):
        with pytest.raises(AcquisitionFailed, match="Not enough disk space"):
            check_disk_space(tmp_path, 10, disk_usage=lambda p: DiskUsage(10, 10, 1))


# ── Verification ────────────────────────────────────────────────


class TestVerifyBinary:
    def test_verified(self, tmp_path, ubuntu, runner):
        binary = make_binary(tmp_path / "kodegen")
        artifact = verify_binary("kodegen", binary, ubuntu, runner=runner)
        assert artifact.verified and artifact.executable
        assert artifact.version == "0.5.0"

    def test_missing(self, tmp_path, ubuntu, runner):
        with pytest.raises(VerificationFailed, match="not found"):
            verify_binary("kodegen", tmp_path / "kodegen", ubuntu, runner=runner)

    def test_wrong_format(self, tmp_path, ubuntu, runner):
        binary = make_binary(tmp_path / "kodegen", b"<html>404</html>")
        with pytest.raises(VerificationFailed, match="not a valid executable"):
            verify_binary("kodegen", binary, ubuntu, runner=runner)

    def test_elf_on_macos_is_rejected(self, tmp_path, macos, runner):
        binary = make_binary(tmp_path / "kodegen")
        with pytest.raises(VerificationFailed):
            verify_binary("kodegen", binary, macos, runner=runner)

    def test_not_executable(self, tmp_path, ubuntu, runner):
        binary = make_binary(tmp_path / "kodegen")
        binary.chmod(0o644)
        with pytest.raises(VerificationFailed, match="not executable"):
            verify_binary("kodegen", binary, ubuntu, runner=runner)

    def test_version_failure(self, tmp_path, ubuntu):
        binary = make_binary(tmp_path / "kodegen")
        runner = FakeRunner().on("kodegen", "--version", ok=False, stderr="libssl.so.3: not found",
                                 returncode=127)
        with pytest.raises(VerificationFailed) as exc:
            verify_binary("kodegen", binary, ubuntu, runner=runner)
        assert exc.value.returncode == 127
        assert "libssl" in exc.value.detail


# ── Release assets and native installers ───────────────────────


def _linux(arch="x86_64"):
    return PlatformDescriptor(
        os_family="ubuntu", os_family_like=frozenset({"debian"}),
        architecture=arch, target_triple=f"{arch}-unknown-linux-gnu",
    )


RELEASE = release_with(
    "kodegen_0.5.0_amd64.deb",
    "kodegen_0.5.0_arm64.deb",
    "kodegen-0.5.0-1.x86_64.rpm",
    "kodegen-0.5.0-arm64.pkg",
    "kodegen-0.5.0-x64.msi",
    "kodegen-v0.5.0-x86_64-unknown-linux-gnu.tar.gz",
    "kodegen-v0.5.0-x86_64-unknown-linux-gnu.tar.gz.sha256",
)


class TestAssetSelection:
    def test_package_kinds(self, ubuntu, macos):
        assert package_kind(ubuntu, "debian") == "deb"
        assert package_kind(ubuntu, "fedora") == "rpm"
        assert package_kind(ubuntu, "suse") == "rpm"
        assert package_kind(ubuntu, "arch") == "tar"
        assert package_kind(macos, "macos") == "pkg"

    def test_deb_uses_debian_arch_names(self):
        assert select_asset(RELEASE, "deb", _linux()).name == "kodegen_0.5.0_amd64.deb"
        assert select_asset(RELEASE, "deb", _linux("aarch64")).name == "kodegen_0.5.0_arm64.deb"

    def test_tarball_matches_triple_not_checksum(self):
        asset = select_asset(RELEASE, "tar", _linux())
        assert asset.name == "kodegen-v0.5.0-x86_64-unknown-linux-gnu.tar.gz"

    def test_pkg_accepts_arm64_alias(self, macos):
        assert select_asset(RELEASE, "pkg", macos).name == "kodegen-0.5.0-arm64.pkg"

    def test_missing_asset(self):
        assert select_asset(RELEASE, "tar", _linux("aarch64")) is None

    def test_native_commands(self, tmp_path):
        p = tmp_path / "k.rpm"
        assert native_install_command("deb", p) == ["apt-get", "install", "-y", str(p)]
        assert native_install_command("rpm", p, manager="yum")[:3] == ["yum", "install", "-y"]
        assert native_install_command("rpm", p, manager="zypper")[0] == "zypper"
        assert native_install_command("pkg", p) == ["installer", "-pkg", str(p), "-target", "/"]
        with pytest.raises(ValueError):
            native_install_command("tar", p)


class TestArchives:
    def test_extract_and_place(self, tmp_path):
        archive = tmp_path / "k.tar.gz"
        archive.write_bytes(make_tarball(["kodegen", "kodegend"]))
        extracted = extract_archive(archive, tmp_path / "out")
        source = find_in_tree(extracted, "kodegend")
        assert source is not None

        placed = place_binary(source, tmp_path / "bin")
        assert placed == tmp_path / "bin" / "kodegend"
        assert placed.stat().st_mode & 0o111
        assert find_in_tree(extracted, "nope") is None
