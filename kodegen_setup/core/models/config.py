"""
InstallerConfig — the optional installer.yml schema.

Every field has a default, so an absent file means "install KODEGEN from
the official repository".  The file only exists to point the installer
at a fork, a mirror, or a different install directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class BinarySpec(BaseModel):
    """One binary produced by the project."""

    name: str
    subpath: str
    role: Literal["client", "daemon"] = "client"


def _default_binaries() -> list[BinarySpec]:
    return [
        BinarySpec(name="kodegen", subpath="packages/server", role="client"),
        BinarySpec(name="kodegend", subpath="packages/daemon", role="daemon"),
    ]


class DownloadConfig(BaseModel):
    """Retry and integrity limits for release downloads."""

    attempts: int = Field(default=3, ge=1, le=10)
    backoff_seconds: float = Field(default=1.0, ge=0)
    timeout_seconds: int = Field(default=60, ge=1)
    min_size_bytes: int = Field(default=100_000, ge=1)


class InstallerConfig(BaseModel):
    """Top-level installer configuration."""

    repository: str = "cyrup-ai/kodegen"
    git_url: str = "https://github.com/cyrup-ai/kodegen.git"
    package_name: str = "kodegen"
    binaries: list[BinarySpec] = Field(default_factory=_default_binaries)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    rust_channel: str = "nightly"
    install_dir: Path | None = None
    diagnostics_dir: Path | None = None

    @field_validator("repository")
    @classmethod
    def repository_is_owner_slash_name(cls, v: str) -> str:
        parts = v.strip().strip("/").split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"repository must be 'owner/name', got {v!r}")
        return "/".join(parts)

    @field_validator("binaries")
    @classmethod
    def binaries_not_empty(cls, v: list[BinarySpec]) -> list[BinarySpec]:
        if not v:
            raise ValueError("at least one binary is required")
        names = [b.name for b in v]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate binary names: {names}")
        return v

    @property
    def binary_names(self) -> list[str]:
        return [b.name for b in self.binaries]

    def binary_for_role(self, role: str) -> BinarySpec | None:
        for b in self.binaries:
            if b.role == role:
                return b
        return None
