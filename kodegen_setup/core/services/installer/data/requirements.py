"""
L0 Data — System requirements per platform family.

Each family maps to exactly one package manager and an ordered list of
requirements.  Requirement order drives package order, so the package
lists below come out exactly as a human would type them, e.g.
``apt-get install -y git curl build-essential pkg-config libssl-dev``.
"""

from __future__ import annotations

from kodegen_setup.core.models.dependency import Check, Remediation, Requirement

# os-release ID / ID_LIKE → family.
DISTRO_FAMILIES: dict[str, str] = {
    "debian": "debian",
    "ubuntu": "debian",
    "linuxmint": "debian",
    "pop": "debian",
    "elementary": "debian",
    "raspbian": "debian",
    "kali": "debian",
    "neon": "debian",
    "zorin": "debian",
    "fedora": "fedora",
    "rhel": "fedora",
    "centos": "fedora",
    "rocky": "fedora",
    "almalinux": "fedora",
    "ol": "fedora",
    "amzn": "fedora",
    "arch": "arch",
    "manjaro": "arch",
    "endeavouros": "arch",
    "garuda": "arch",
    "opensuse": "suse",
    "opensuse-leap": "suse",
    "opensuse-tumbleweed": "suse",
    "sles": "suse",
    "suse": "suse",
    "alpine": "alpine",
    "macos": "macos",
    "windows": "windows",
}

# Family → package manager.
FAMILY_MANAGERS: dict[str, str] = {
    "debian": "apt",
    "fedora": "dnf",
    "arch": "pacman",
    "suse": "zypper",
    "alpine": "apk",
    "macos": "brew",
    "windows": "winget",
    "unknown": "unknown",
}

# Unknown Linux: first binary found on PATH wins.
FALLBACK_MANAGERS: tuple[tuple[str, str, str], ...] = (
    # (binary, manager, family)
    ("apt-get", "apt", "debian"),
    ("dnf", "dnf", "fedora"),
    ("yum", "yum", "fedora"),
    ("apk", "apk", "alpine"),
)

# Manager → install command prefix (package names are appended).
INSTALL_COMMANDS: dict[str, list[str]] = {
    "apt":    ["apt-get", "install", "-y"],
    "dnf":    ["dnf", "install", "-y"],
    "yum":    ["yum", "install", "-y"],
    "zypper": ["zypper", "install", "-y"],
    "pacman": ["pacman", "-S", "--needed", "--noconfirm"],
    "apk":    ["apk", "add", "--no-cache"],
    "brew":   ["brew", "install"],
    "winget": ["winget", "install", "--exact", "--silent",
               "--accept-source-agreements", "--accept-package-agreements", "--id"],
}

# Commands run once before installing (index refresh).
PRE_INSTALL_COMMANDS: dict[str, list[str]] = {
    "apt": ["apt-get", "update", "-qq"],
}

# Managers that install into user-owned prefixes or elevate on their own.
NO_ELEVATION_MANAGERS: frozenset[str] = frozenset({"brew", "winget"})

MANUAL_INSTRUCTIONS = (
    "Could not detect package manager. "
    "Please install: git, curl, gcc, make, pkg-config, openssl-dev"
)


def _cmd(name: str) -> Check:
    return Check(kind="command", target=name)


def _runs(*argv: str) -> Check:
    return Check(kind="command_succeeds", argv=list(argv))


def _pkg(name: str) -> Check:
    return Check(kind="package", target=name)


def _header(path: str) -> Check:
    return Check(kind="header", target=path)


def _needs(*packages: str) -> Remediation:
    return Remediation(kind="packages", packages=list(packages))


_OPENSSL_HEADERS = (
    _header("/usr/include/openssl/ssl.h"),
    _runs("pkg-config", "--exists", "openssl"),
)


def _linux(
    *,
    compiler: tuple[str, ...],
    pkg_config: tuple[str, ...],
    tls: str,
    tls_packages: tuple[str, ...] | None = None,
) -> list[Requirement]:
    return [
        Requirement(name="git", checks=[_cmd("git")], remediation=_needs("git")),
        Requirement(name="curl", checks=[_cmd("curl")], remediation=_needs("curl")),
        Requirement(
            name="c-compiler",
            checks=[_cmd("cc"), _cmd("gcc"), _cmd("clang")],
            remediation=_needs(*compiler),
        ),
        Requirement(
            name="pkg-config",
            checks=[_cmd("pkg-config"), _cmd("pkgconf")],
            remediation=_needs(*pkg_config),
        ),
        Requirement(
            name="tls-dev-headers",
            checks=[_pkg(tls), *_OPENSSL_HEADERS],
            remediation=_needs(*(tls_packages or (tls,))),
        ),
    ]


REQUIREMENTS: dict[str, list[Requirement]] = {
    "debian": _linux(
        compiler=("build-essential",),
        pkg_config=("pkg-config",),
        tls="libssl-dev",
    ),
    "fedora": _linux(
        compiler=("gcc", "gcc-c++", "make"),
        pkg_config=("pkgconfig",),
        tls="openssl-devel",
    ),
    "arch": _linux(
        compiler=("base-devel",),
        pkg_config=("base-devel",),
        tls="openssl",
    ),
    "suse": _linux(
        compiler=("gcc", "gcc-c++", "make"),
        pkg_config=("pkg-config",),
        tls="libopenssl-devel",
    ),
    "alpine": _linux(
        compiler=("build-base",),
        pkg_config=("pkgconfig",),
        tls="openssl-dev",
    ),
    "macos": [
        Requirement(
            name="xcode-clt",
            checks=[_runs("xcode-select", "-p")],
            remediation=Remediation(
                kind="xcode-clt", instructions="xcode-select --install",
            ),
        ),
        Requirement(
            name="homebrew",
            checks=[_cmd("brew")],
            remediation=Remediation(
                kind="homebrew",
                instructions='/bin/bash -c "$(curl -fsSL '
                             'https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"',
            ),
        ),
        Requirement(name="git", checks=[_cmd("git")], remediation=_needs("git")),
        Requirement(name="curl", checks=[_cmd("curl")], remediation=_needs("curl")),
        Requirement(
            name="tls-dev-headers",
            checks=[_pkg("openssl"), _runs("pkg-config", "--exists", "openssl")],
            remediation=_needs("openssl"),
        ),
        Requirement(
            name="pkg-config",
            checks=[_cmd("pkg-config"), _cmd("pkgconf")],
            remediation=_needs("pkg-config"),
        ),
    ],
    "windows": [
        Requirement(name="git", checks=[_cmd("git")], remediation=_needs("Git.Git")),
        Requirement(
            name="msvc-build-tools",
            checks=[
                _cmd("cl"),
                _header(
                    r"C:\Program Files (x86)\Microsoft Visual Studio\2022\BuildTools"
                    r"\VC\Auxiliary\Build\vcvarsall.bat"
                ),
            ],
            remediation=_needs("Microsoft.VisualStudio.2022.BuildTools"),
        ),
    ],
    # No package manager: same checks as any Linux, manual remediation.
    "unknown": [
        req.model_copy(update={
            "checks": [c for c in req.checks if c.kind != "package"],
            "remediation": Remediation(kind="manual", instructions=MANUAL_INSTRUCTIONS),
        })
        for req in _linux(compiler=(), pkg_config=(), tls="openssl")
    ],
}


def requirements_for(family: str) -> list[Requirement]:
    """Ordered requirements for *family* (deep copies, safe to mutate)."""
    return [r.model_copy(deep=True) for r in REQUIREMENTS.get(family, REQUIREMENTS["unknown"])]


def install_command(manager: str, packages: list[str]) -> list[str]:
    """Full install argv for *manager*, or ``[]`` if it has none."""
    prefix = INSTALL_COMMANDS.get(manager)
    if not prefix or not packages:
        return []
    return prefix + list(packages)
