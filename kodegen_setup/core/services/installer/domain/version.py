"""
L1 Domain — Version parsing and comparison (pure).

No I/O, no subprocess.
"""

from __future__ import annotations

import re
from typing import Literal

Comparison = Literal["greater", "equal", "less"]

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(text: str | None) -> tuple[int, int, int] | None:
    """Extract ``(major, minor, patch)`` from a version-ish string.

    A leading ``v`` is ignored, as is anything after the numeric core
    (pre-release and build suffixes like ``-rc.1`` or ``+abc``).
    Missing minor/patch fields count as 0.

    >>> parse_version("v1.2.3-beta+build")
    (1, 2, 3)
    >>> parse_version("kodegen 0.4")
    (0, 4, 0)
    """
    if not text:
        return None
    m = _VERSION_RE.search(text.strip().lstrip("vV"))
    if not m:
        return None
    return tuple(int(part) if part else 0 for part in m.groups())  # type: ignore[return-value]


def extract_version(output: str) -> str | None:
    """Return the first ``X.Y[.Z]`` substring of command output, or None."""
    m = re.search(r"\d+\.\d+(?:\.\d+)?", output or "")
    return m.group(0) if m else None


def compare_versions(a: str, b: str) -> Comparison:
    """Compare two versions numerically.

    Returns ``"greater"`` if *a* > *b*, ``"less"`` if *a* < *b*, else
    ``"equal"``.  Unparseable input compares as ``0.0.0``.
    """
    va = parse_version(a) or (0, 0, 0)
    vb = parse_version(b) or (0, 0, 0)
    if va > vb:
        return "greater"
    if va < vb:
        return "less"
    return "equal"


def is_newer(candidate: str, installed: str) -> bool:
    """Strict greater-than: an equal version is current."""
    return compare_versions(candidate, installed) == "greater"
