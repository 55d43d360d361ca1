"""
Artifact models — what acquisition produces and how it was planned.

Both acquisition strategies return the same ``InstalledArtifact`` shape,
so nothing downstream can tell a prebuilt binary from a source build.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class InstalledArtifact(BaseModel):
    """A binary found on PATH or written to disk by this run."""

    binary_name: str
    install_path: Path
    version: str | None = None
    executable: bool = False
    verified: bool = False

    # True if a file already sat at install_path before this run touched it.
    preexisting: bool = False
    # Native package that owns the file (prebuilt .deb/.rpm/.pkg/.msi installs).
    package: str | None = None
    # How the file got there: deb, rpm, pkg, msi, tar, cargo ("" = untouched).
    method: str = ""


class PrebuiltRelease(BaseModel):
    """Fetch a published release asset and install it natively."""

    kind: Literal["prebuilt"] = "prebuilt"
    download_url: str
    asset_name: str
    expected_min_size: int
    expected_size: int | None = None
    optional_hash: str | None = None   # "sha256:<hex>"
    version: str | None = None


class SourceBuild(BaseModel):
    """Clone the repository and build every sub-package with cargo."""

    kind: Literal["source"] = "source"
    repository_url: str
    subpaths: list[str] = Field(default_factory=list)


AcquisitionPlan = Annotated[
    Union[PrebuiltRelease, SourceBuild],
    Field(discriminator="kind"),
]


class ReleaseAsset(BaseModel):
    """One downloadable file attached to a release."""

    name: str
    url: str
    size: int = 0


class Release(BaseModel):
    """Metadata returned by the release index for one tag."""

    tag: str
    assets: list[ReleaseAsset] = Field(default_factory=list)

    @property
    def version(self) -> str:
        return self.tag.lstrip("vV")

    def find_asset(self, name: str) -> ReleaseAsset | None:
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None
