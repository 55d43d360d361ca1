"""
Version control adapter — shallow git clone.
"""

from __future__ import annotations

import logging
from pathlib import Path

from kodegen_setup.adapters.base import SourceFetcher
from kodegen_setup.core.services.installer.data.constants import TIMEOUTS
from kodegen_setup.core.services.installer.domain.diagnosis import (
    classify_failure,
    remediation_for,
)
from kodegen_setup.core.services.installer.domain.errors import AcquisitionFailed
from kodegen_setup.core.services.installer.execution.subprocess_runner import (
    Runner,
    _run_subprocess,
    command_output,
)

logger = logging.getLogger(__name__)


class GitSourceFetcher(SourceFetcher):
    """``git clone --depth 1 URL DEST``."""

    def __init__(self, *, runner: Runner = _run_subprocess) -> None:
        self.runner = runner

    def fetch(self, url: str, dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        result = self.runner(
            ["git", "clone", "--depth", "1", url, str(dest)],
            timeout=TIMEOUTS["package"],
            env_overrides={"GIT_TERMINAL_PROMPT": "0"},
        )
        if not result["ok"]:
            output = command_output(result)
            category = classify_failure(output)
            raise AcquisitionFailed(
                "Failed to clone repository",
                strategy="source",
                operation="git clone",
                category=category,
                detail=output,
                returncode=result.get("returncode"),
                hints=remediation_for(category, "source"),
            )
        logger.info("Cloned %s into %s", url, dest)
        return dest
