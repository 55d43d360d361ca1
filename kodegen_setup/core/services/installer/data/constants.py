"""
L0 Data — Installer constants.

Static lookup tables shared across layers.  No logic, no I/O.
"""

from __future__ import annotations

# Subprocess timeouts in seconds, by kind of call.
TIMEOUTS: dict[str, int] = {
    "check": 10,
    "package": 600,
    "build": 3600,
    "service": 120,
    "download": 60,
}

# Environment variables whose presence marks a CI runner.
CI_MARKERS: tuple[str, ...] = (
    "CI",
    "CONTINUOUS_INTEGRATION",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "BUILDKITE",
    "CIRCLECI",
    "TRAVIS",
    "JENKINS_URL",
    "TF_BUILD",
    "TEAMCITY_VERSION",
    "BITBUCKET_BUILD_NUMBER",
    "CODEBUILD_BUILD_ID",
)

# platform.machine() → canonical architecture.
_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "i386": "i686",
    "i686": "i686",
    "x86": "i686",
}

# Canonical architecture → Debian package architecture.
_DEB_ARCH_MAP: dict[str, str] = {
    "x86_64": "amd64",
    "aarch64": "arm64",
    "i686": "i386",
}

# Every triple the installer knows how to describe.
SUPPORTED_TRIPLES: frozenset[str] = frozenset({
    "x86_64-unknown-linux-gnu",
    "aarch64-unknown-linux-gnu",
    "i686-unknown-linux-gnu",
    "x86_64-apple-darwin",
    "aarch64-apple-darwin",
    "x86_64-pc-windows-msvc",
    "aarch64-pc-windows-msvc",
    "i686-pc-windows-msvc",
})

# Triples for which release binaries are published.
PREBUILT_TRIPLES: frozenset[str] = frozenset({
    "x86_64-unknown-linux-gnu",
    "aarch64-unknown-linux-gnu",
    "x86_64-apple-darwin",
    "aarch64-apple-darwin",
    "x86_64-pc-windows-msvc",
})

USER_AGENT = "kodegen-setup/0.1"
GITHUB_API = "https://api.github.com"

HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
# Where the Homebrew installer puts brew (Apple Silicon, Intel).
HOMEBREW_BREW_PATHS: tuple[str, ...] = ("/opt/homebrew/bin/brew", "/usr/local/bin/brew")
RUSTUP_INIT_URL = "https://sh.rustup.rs"
RUSTUP_INIT_WINDOWS_URL = "https://win.rustup.rs/x86_64"

# Xcode Command Line Tools GUI installer polling.
XCODE_POLL_INTERVAL = 5
XCODE_MAX_WAIT = 300

# Free space required on top of the expected download size.
DISK_HEADROOM_BYTES = 50 * 1024 * 1024

# Lines of build output written to the diagnostic bundle.
DIAGNOSTIC_TAIL_LINES = 50

# Lines of failing tool output echoed to the console.
DETAIL_TAIL_LINES = 20

# Tools whose versions go into the diagnostic bundle.
DIAGNOSTIC_TOOLS: tuple[str, ...] = ("git", "curl", "cc", "rustc", "cargo")

# Environment variable names containing any of these are redacted.
SECRET_MARKERS: tuple[str, ...] = (
    "TOKEN", "SECRET", "PASSWORD", "PASSWD", "KEY", "CREDENTIAL", "AUTH", "COOKIE",
)

# Output fragments that mean "this needed root".
PERMISSION_MARKERS: tuple[str, ...] = (
    "permission denied",
    "operation not permitted",
    "access denied",
    "must be run as root",
    "requires root",
    "are you root",
    "interactive authentication required",
)
