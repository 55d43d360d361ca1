"""
Installer service — package re-exports.

Each symbol lives in its single-responsibility module inside the
appropriate onion layer (data → domain → detection → execution →
orchestration)::

    from kodegen_setup.core.services.installer import run_install
"""

# ── L1: Domain ──
from kodegen_setup.core.services.installer.domain.errors import (  # noqa: F401
    AcquisitionFailed,
    ClientConfigFailed,
    DependencyUnavailable,
    ElevationDenied,
    InstallerError,
    InstallInterrupted,
    ServiceConfigFailed,
    UnsupportedPlatform,
    VerificationFailed,
)
from kodegen_setup.core.services.installer.domain.stages import Stage  # noqa: F401
from kodegen_setup.core.services.installer.domain.version import compare_versions  # noqa: F401

# ── L3: Detection ──
from kodegen_setup.core.services.installer.detection.platform import detect  # noqa: F401
from kodegen_setup.core.services.installer.detection.system_deps import resolve  # noqa: F401
from kodegen_setup.core.services.installer.detection.tool_version import inspect  # noqa: F401

# ── L5: Orchestration ──
from kodegen_setup.core.services.installer.orchestration.orchestrator import (  # noqa: F401
    InstallOptions,
    InstallResult,
    get_status,
    run_install,
)
