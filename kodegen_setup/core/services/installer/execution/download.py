"""
L4 Execution — Download with retry and integrity checks.

Retries, disk-space pre-check, size checks and checksum verification
around a single-attempt fetch function (``ReleaseIndex.download`` in
production).
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import shutil
import time
import urllib.request
from collections.abc import Callable
from pathlib import Path

from kodegen_setup.core.services.installer.data.constants import (
    DISK_HEADROOM_BYTES,
    USER_AGENT,
)
from kodegen_setup.core.services.installer.domain.diagnosis import (
    classify_failure,
    remediation_for,
)
from kodegen_setup.core.services.installer.domain.errors import AcquisitionFailed

logger = logging.getLogger(__name__)

Fetch = Callable[..., Path]


def _fmt_size(n: int | float) -> str:
    """Format byte count to human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def _verify_checksum(path: Path, expected: str) -> bool:
    """Verify file checksum.  Format: ``algo:hex``.

    Args:
        path: Path to the downloaded file.
        expected: Checksum string like ``sha256:abc123...``.

    Returns:
        True if the file's computed digest matches ``expected``.
    """
    algo, expected_hash = expected.split(":", 1)
    h = hashlib.new(algo)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest() == expected_hash.strip().lower()


def parse_checksum_file(text: str) -> str | None:
    """Extract the hex digest from a ``<asset>.sha256`` file.

    Accepts both ``<hex>`` and the ``sha256sum`` format ``<hex>  name``.
    """
    token = (text or "").strip().split()
    if not token:
        return None
    digest = token[0].lower()
    if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
        return None
    return f"sha256:{digest}"


def fetch_url(url: str, dest: Path, *, timeout: int = 60) -> Path:
    """Single-attempt HTTP GET of *url* into *dest*.

    Raises:
        OSError: Network or filesystem failure (``URLError`` included).
    """
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + ".part")
    with urllib.request.urlopen(req, timeout=timeout) as resp, open(tmp, "wb") as f:
        shutil.copyfileobj(resp, f, length=64 * 1024)
    tmp.replace(dest)
    return dest


def check_disk_space(
    directory: Path,
    needed: int,
    *,
    disk_usage: Callable[[str], object] = shutil.disk_usage,
) -> None:
    """Raise ``AcquisitionFailed`` (disk_full) if *directory* lacks *needed* bytes."""
    free = disk_usage(str(directory)).free  # type: ignore[attr-defined]
    if free < needed:
        raise AcquisitionFailed(
            f"Not enough disk space in {directory}: {_fmt_size(free)} free, "
            f"{_fmt_size(needed)} needed",
            strategy="prebuilt",
            category="disk_full",
            detail="No space left on device",
            hints=remediation_for("disk_full", "prebuilt"),
        )


def _validate(path: Path, *, min_size: int, expected_size: int | None, expected_hash: str | None) -> None:
    size = path.stat().st_size
    if size < min_size:
        raise ValueError(f"Downloaded file is too small ({size} bytes < {min_size})")
    if expected_size and size != expected_size:
        raise ValueError(f"Size mismatch: got {size} bytes, index reports {expected_size}")
    if expected_hash and not _verify_checksum(path, expected_hash):
        raise ValueError(f"Checksum mismatch for {path.name}")


def download_with_retry(
    fetch: Fetch,
    url: str,
    dest: Path,
    *,
    attempts: int = 3,
    backoff: float = 1.0,
    timeout: int = 60,
    min_size: int = 1,
    expected_size: int | None = None,
    expected_hash: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
    disk_usage: Callable[[str], object] = shutil.disk_usage,
) -> Path:
    """Download *url* to *dest* with bounded retries and verification.

    Backoff is exponential: ``backoff``, ``2*backoff``, ... between
    attempts.  A disk-full condition is not retried: it fails after the
    first attempt so the caller can fall back to another strategy at once.

    Raises:
        AcquisitionFailed: All attempts failed.  ``category`` holds the
            diagnosis (dns, disk_full, timeout...).
    """
    needed = max(expected_size or 0, min_size) + DISK_HEADROOM_BYTES
    check_disk_space(dest.parent, needed, disk_usage=disk_usage)

    last_error = ""
    made = 0
    for attempt in range(1, attempts + 1):
        made = attempt
        try:
            fetch(url, dest, timeout=timeout)
            _validate(dest, min_size=min_size, expected_size=expected_size, expected_hash=expected_hash)
            logger.info("Downloaded %s (%s)", dest.name, _fmt_size(dest.stat().st_size))
            return dest
        except (OSError, ValueError, http.client.HTTPException) as e:
            last_error = str(e) or type(e).__name__
            logger.warning("Download attempt %d/%d failed: %s", attempt, attempts, last_error)
            dest.unlink(missing_ok=True)
            if classify_failure(last_error) == "disk_full":
                break
            if attempt < attempts:
                sleep(backoff * (2 ** (attempt - 1)))

    category = classify_failure(last_error)
    raise AcquisitionFailed(
        f"Download failed after {made} attempt(s): {url}",
        strategy="prebuilt",
        category=category,
        detail=last_error,
        hints=remediation_for(category, "prebuilt"),
    )
