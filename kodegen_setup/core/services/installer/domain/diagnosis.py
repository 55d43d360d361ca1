"""
L1 Domain — Network failure diagnosis (pure).

Classifies the error text of a failed download or clone into a small
set of categories and suggests remediation.  No I/O, no subprocess.
"""

from __future__ import annotations

# Order matters: first matching category wins.
_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("disk_full", (
        "no space left on device",
        "errno 28",
        "disk full",
        "insufficient disk space",
        "not enough space",
    )),
    ("dns", (
        "name or service not known",
        "nodename nor servname",
        "temporary failure in name resolution",
        "getaddrinfo failed",
        "could not resolve host",
        "no address associated with hostname",
    )),
    ("connection_refused", (
        "connection refused",
        "errno 111",
        "winerror 10061",
        "failed to connect",
    )),
    ("tls", (
        "certificate verify failed",
        "ssl:",
        "sslerror",
        "tlsv1",
        "ssl certificate problem",
    )),
    ("timeout", (
        "timed out",
        "timeout",
        "operation too slow",
    )),
    ("rate_limited", (
        "http error 429",
        "rate limit",
        "too many requests",
    )),
    ("http_not_found", (
        "http error 404",
        "404 not found",
        "not found",
    )),
)

DOWNLOAD_REMEDIATIONS: dict[str, str] = {
    "dns": "DNS lookup failed. Check your network connection and DNS settings",
    "connection_refused": "Connection refused. Check proxy or firewall settings (HTTPS_PROXY)",
    "disk_full": "Not enough disk space. Free up space in your temp directory and retry",
    "timeout": "The connection timed out. Retry on a faster or more stable network",
    "tls": "TLS verification failed. Check the system clock and CA certificates",
    "http_not_found": "The release asset does not exist for this platform",
    "rate_limited": "GitHub API rate limit reached. Wait a few minutes or set GITHUB_TOKEN",
    "unknown": "Unexpected network error. Re-run with --debug for details",
}

_STRATEGY_SUFFIX: dict[str, str] = {
    "prebuilt": "Falling back to building from source",
    "source": "Source builds need network access to github.com and crates.io",
}


def classify_failure(text: str) -> str:
    """Return the failure category for an error message."""
    lowered = (text or "").lower()
    for category, needles in _PATTERNS:
        if any(n in lowered for n in needles):
            return category
    return "unknown"


def remediation_for(category: str, strategy: str = "") -> list[str]:
    """Actionable hints for *category*, specialised by acquisition strategy."""
    hints = [DOWNLOAD_REMEDIATIONS.get(category, DOWNLOAD_REMEDIATIONS["unknown"])]
    suffix = _STRATEGY_SUFFIX.get(strategy)
    if suffix:
        hints.append(suffix)
    return hints
