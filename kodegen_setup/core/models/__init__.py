"""
Core domain models for the installer.

All models are Pydantic BaseModel subclasses for validation.
"""

from kodegen_setup.core.models.artifact import (
    AcquisitionPlan,
    InstalledArtifact,
    PrebuiltRelease,
    Release,
    ReleaseAsset,
    SourceBuild,
)
from kodegen_setup.core.models.config import BinarySpec, DownloadConfig, InstallerConfig
from kodegen_setup.core.models.dependency import Check, MissingSet, Remediation, Requirement
from kodegen_setup.core.models.platform import PlatformDescriptor
from kodegen_setup.core.models.state import ExistingInstallation, InstallationState, ToolPresence

__all__ = [
    "AcquisitionPlan",
    "BinarySpec",
    "Check",
    "DownloadConfig",
    "ExistingInstallation",
    "InstallationState",
    "InstallerConfig",
    "InstalledArtifact",
    "MissingSet",
    "PlatformDescriptor",
    "PrebuiltRelease",
    "Release",
    "ReleaseAsset",
    "Remediation",
    "Requirement",
    "SourceBuild",
    "ToolPresence",
]
