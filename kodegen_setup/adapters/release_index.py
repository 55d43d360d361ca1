"""
Release index adapter — GitHub Releases over the REST API.

Metadata is one small JSON request; the repository is never cloned to
find out what the latest version is.
"""

from __future__ import annotations

import http.client
import json
import logging
import os
import urllib.error
import urllib.request
from pathlib import Path

from kodegen_setup.adapters.base import ReleaseIndex
from kodegen_setup.core.models.artifact import Release, ReleaseAsset
from kodegen_setup.core.services.installer.data.constants import GITHUB_API, USER_AGENT
from kodegen_setup.core.services.installer.domain.diagnosis import (
    classify_failure,
    remediation_for,
)
from kodegen_setup.core.services.installer.domain.errors import AcquisitionFailed
from kodegen_setup.core.services.installer.execution.download import fetch_url

logger = logging.getLogger(__name__)


class GitHubReleaseIndex(ReleaseIndex):
    """Reads ``/repos/{owner}/{name}/releases/latest``.

    ``GITHUB_TOKEN`` is sent when set, which lifts the anonymous rate limit.
    """

    def __init__(self, *, api_url: str = GITHUB_API, timeout: int = 15, token: str | None = None) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.token = token if token is not None else os.environ.get("GITHUB_TOKEN", "")

    def latest_release(self, repo: str) -> Release:
        url = f"{self.api_url}/repos/{repo}/releases/latest"
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            req = urllib.request.Request(url, headers=headers)
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                data = json.loads(resp.read())
        except (OSError, ValueError, http.client.HTTPException) as e:
            category = classify_failure(str(e))
            raise AcquisitionFailed(
                f"Failed to fetch release metadata for {repo}",
                strategy="prebuilt",
                operation="release index query",
                category=category,
                detail=str(e),
                hints=remediation_for(category),
            ) from e

        return parse_release(data)

    def download(self, url: str, dest: Path, *, timeout: int) -> Path:
        return fetch_url(url, dest, timeout=timeout)


def parse_release(data: dict) -> Release:
    """Convert a GitHub release JSON document into a ``Release``."""
    assets = [
        ReleaseAsset(
            name=a.get("name", ""),
            url=a.get("browser_download_url", ""),
            size=int(a.get("size") or 0),
        )
        for a in data.get("assets", [])
        if a.get("name") and a.get("browser_download_url")
    ]
    release = Release(tag=data.get("tag_name", ""), assets=assets)
    logger.debug("Latest release %s with %d assets", release.tag, len(assets))
    return release
