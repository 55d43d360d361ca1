"""
Tests for the pure domain layer — versions, pre-flight table, stages,
failure diagnosis, errors and elevation grants.
"""

from pathlib import Path

import pytest

from kodegen_setup.core.models.state import ExistingInstallation, ToolPresence
from kodegen_setup.core.services.installer.domain.diagnosis import (
    classify_failure,
    remediation_for,
)
from kodegen_setup.core.services.installer.domain.elevation import (
    NO_ELEVATION,
    Elevation,
    ElevationMethod,
)
from kodegen_setup.core.services.installer.domain.errors import (
    AcquisitionFailed,
    ClientConfigFailed,
    DependencyUnavailable,
    InstallerError,
    ServiceConfigFailed,
    UnsupportedPlatform,
)
from kodegen_setup.core.services.installer.domain.preflight import (
    PreflightAction,
    decide,
    needs_update_check,
)
from kodegen_setup.core.services.installer.domain.stages import (
    Stage,
    can_transition,
    validate_transition,
)
from kodegen_setup.core.services.installer.domain.version import (
    compare_versions,
    extract_version,
    is_newer,
    parse_version,
)


def _existing(**versions):
    """ExistingInstallation from name=version (None → missing)."""
    return ExistingInstallation(tools={
        name: ToolPresence(present=True, version=v, path=Path(f"/bin/{name}"))
        if v is not False else ToolPresence()
        for name, v in versions.items()
    })


# ── Versions ────────────────────────────────────────────────────


class TestVersions:
    @pytest.mark.parametrize("a,b,expected", [
        ("1.2.3", "1.2.3", "equal"),
        ("v1.2.3", "1.2.3", "equal"),
        ("1.2.4", "1.2.3", "greater"),
        ("1.10.0", "1.9.9", "greater"),
        ("0.9.0", "1.0.0", "less"),
        ("2.0", "2.0.0", "equal"),
        ("1.2.3-rc.1", "1.2.3", "equal"),
        ("1.2.3+build5", "1.2.2", "greater"),
    ])
    def test_compare(self, a, b, expected):
        assert compare_versions(a, b) == expected

    def test_comparison_is_antisymmetric(self):
        assert compare_versions("1.0.0", "2.0.0") == "less"
        assert compare_versions("2.0.0", "1.0.0") == "greater"

    def test_parse_strips_prefix_and_suffix(self):
        assert parse_version("v0.5.1-beta") == (0, 5, 1)
        assert parse_version("kodegen 3") == (3, 0, 0)
        assert parse_version("") is None
        assert parse_version("no digits") is None

    def test_extract_version_from_tool_output(self):
        assert extract_version("kodegen 0.5.0 (abc1234 2026-01-01)") == "0.5.0"
        assert extract_version("rustc 1.83.0-nightly") == "1.83.0"
        assert extract_version("nothing here") is None

    def test_equal_is_not_newer(self):
        assert not is_newer("0.5.0", "v0.5.0")
        assert is_newer("0.5.1", "0.5.0")


# ── Pre-flight decision table ──────────────────────────────────


class TestPreflight:
    def test_nothing_installed_installs(self):
        d = decide(_existing(kodegen=False, kodegend=False), force=False, updates_allowed=True)
        assert d.action is PreflightAction.INSTALL
        assert d.reason == "not installed"

    def test_partial_install_reinstalls_without_asking(self):
        d = decide(_existing(kodegen="0.5.0", kodegend=False), force=False, updates_allowed=True)
        assert d.action is PreflightAction.INSTALL
        assert d.reason == "partial installation"

    def test_force_reinstalls(self):
        d = decide(_existing(kodegen="0.5.0", kodegend="0.5.0"), force=True, updates_allowed=True)
        assert d.action is PreflightAction.REINSTALL
        assert d.proceeds

    def test_non_interactive_is_noop(self):
        d = decide(_existing(kodegen="0.5.0", kodegend="0.5.0"), force=False, updates_allowed=False)
        assert d.action is PreflightAction.NOOP
        assert not d.proceeds

    def test_up_to_date_is_noop(self):
        d = decide(_existing(kodegen="0.5.0", kodegend="0.5.0"), force=False,
                   updates_allowed=True, latest_version="0.5.0")
        assert d.action is PreflightAction.NOOP
        assert d.reason == "already up to date"

    def test_newer_release_prompts(self):
        d = decide(_existing(kodegen="0.5.0", kodegend="0.5.0"), force=False,
                   updates_allowed=True, latest_version="0.6.0")
        assert d.action is PreflightAction.PROMPT_UPDATE
        assert d.latest_version == "0.6.0"
        assert "0.6.0" in d.reason

    def test_query_failure_is_treated_as_current(self):
        d = decide(_existing(kodegen="0.5.0", kodegend="0.5.0"), force=False,
                   updates_allowed=True, query_failed=True)
        assert d.action is PreflightAction.NOOP

    def test_unknown_installed_version_is_noop(self):
        d = decide(_existing(kodegen=None, kodegend=None), force=False,
                   updates_allowed=True, latest_version="9.9.9")
        assert d.action is PreflightAction.NOOP

    def test_update_check_only_when_everything_present(self):
        full = _existing(kodegen="0.5.0", kodegend="0.5.0")
        partial = _existing(kodegen="0.5.0", kodegend=False)
        assert needs_update_check(full, force=False, updates_allowed=True)
        assert not needs_update_check(full, force=True, updates_allowed=True)
        assert not needs_update_check(full, force=False, updates_allowed=False)
        assert not needs_update_check(partial, force=False, updates_allowed=True)


# ── Stages ──────────────────────────────────────────────────────


class TestStages:
    def test_happy_path_is_legal(self):
        path = ["idle", "inspecting", "resolving", "elevating", "acquiring",
                "configuring_services", "done"]
        for cur, nxt in zip(path, path[1:]):
            assert can_transition(cur, nxt), f"{cur} → {nxt}"

    def test_shortcuts(self):
        assert can_transition("inspecting", "done")
        assert can_transition("resolving", "done")
        assert can_transition("resolving", "acquiring")

    def test_rolled_back_from_any_active_stage(self):
        for stage in ("idle", "inspecting", "resolving", "elevating", "acquiring",
                      "configuring_services"):
            assert can_transition(stage, "rolled_back")

    def test_terminal_stages_are_final(self):
        for target in Stage:
            assert not can_transition("done", target)
            assert not can_transition("rolled_back", target)

    def test_no_skipping_acquisition(self):
        assert not can_transition("resolving", "configuring_services")
        assert not can_transition("idle", "acquiring")

    def test_validate_raises_on_illegal_move(self):
        assert validate_transition("idle", "inspecting") is Stage.INSPECTING
        with pytest.raises(ValueError, match="Illegal installer transition"):
            validate_transition("done", "inspecting")

    def test_unknown_stage_names(self):
        assert not can_transition("bogus", "done")


# ── Diagnosis ───────────────────────────────────────────────────


class TestDiagnosis:
    @pytest.mark.parametrize("text,category", [
        ("[Errno 28] No space left on device", "disk_full"),
        ("<urlopen error [Errno -2] Name or service not known>", "dns"),
        ("<urlopen error [Errno 111] Connection refused>", "connection_refused"),
        ("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed", "tls"),
        ("The read operation timed out", "timeout"),
        ("HTTP Error 429: Too Many Requests", "rate_limited"),
        ("HTTP Error 404: Not Found", "http_not_found"),
        ("something odd", "unknown"),
        ("", "unknown"),
    ])
    def test_classify(self, text, category):
        assert classify_failure(text) == category

    def test_remediation_mentions_fallback_for_prebuilt(self):
        hints = remediation_for("dns", "prebuilt")
        assert "DNS" in hints[0]
        assert "source" in hints[-1]

    def test_unknown_category_gets_generic_hint(self):
        assert "--debug" in remediation_for("weird")[0]


# ── Errors ──────────────────────────────────────────────────────


class TestErrors:
    def test_fatality(self):
        assert InstallerError("x").fatal
        assert AcquisitionFailed("x").fatal
        assert not DependencyUnavailable("x").fatal
        assert not ServiceConfigFailed("x").fatal
        assert not ClientConfigFailed("x").fatal

    def test_detail_is_truncated_to_tail(self):
        err = InstallerError("boom", detail="a" * 1000 + "b" * 2000)
        assert len(err.detail) == 2000
        assert set(err.detail) == {"b"}

    def test_to_dict(self):
        err = AcquisitionFailed("nope", strategy="prebuilt", returncode=3, hints=["retry"])
        d = err.to_dict()
        assert d["type"] == "AcquisitionFailed"
        assert d["operation"] == "prebuilt acquisition"
        assert d["returncode"] == 3
        assert d["hints"] == ["retry"]

    def test_unsupported_platform_carries_value(self):
        err = UnsupportedPlatform("bad arch", value="armv7l")
        assert err.value == "armv7l"
        assert err.hints


# ── Elevation ───────────────────────────────────────────────────


class TestElevation:
    def test_prefixes(self):
        assert NO_ELEVATION.prefix() == []
        assert Elevation(ElevationMethod.ROOT).prefix() == []
        assert Elevation(ElevationMethod.SUDO_CACHED).prefix() == ["sudo", "-n"]
        assert Elevation(ElevationMethod.SUDO_PASSWORD, "pw").prefix() == ["sudo", "-S", "-k"]

    def test_password_only_piped_for_password_method(self):
        assert Elevation(ElevationMethod.SUDO_PASSWORD, "pw").stdin() == "pw\n"
        assert Elevation(ElevationMethod.SUDO_CACHED).stdin() is None

    def test_password_not_in_repr(self):
        assert "hunter2" not in repr(Elevation(ElevationMethod.SUDO_PASSWORD, "hunter2"))

    def test_privileged(self):
        assert not NO_ELEVATION.is_privileged
        assert Elevation(ElevationMethod.ROOT).is_privileged
