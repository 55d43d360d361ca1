"""
Dependency models — requirements, their checks, and the missing-set.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CheckKind = Literal["command", "command_succeeds", "package", "header"]
RemediationKind = Literal["packages", "xcode-clt", "homebrew", "manual"]


class Check(BaseModel):
    """A single satisfaction probe.

    - ``command``: ``target`` is on PATH
    - ``command_succeeds``: ``argv`` exits 0
    - ``package``: ``target`` is in the package database
    - ``header``: file ``target`` exists
    """

    kind: CheckKind
    target: str = ""
    argv: list[str] = Field(default_factory=list)

    @property
    def cost(self) -> int:
        """Relative cost — cheaper checks run first."""
        return {"command": 0, "command_succeeds": 1, "package": 2, "header": 3}[self.kind]


class Remediation(BaseModel):
    """How to satisfy a missing requirement."""

    kind: RemediationKind = "packages"
    packages: list[str] = Field(default_factory=list)
    instructions: str = ""


class Requirement(BaseModel):
    """A named prerequisite (``git``, ``c-compiler``, ``tls-dev-headers``...).

    Satisfied if ANY of its checks passes.
    """

    name: str
    checks: list[Check] = Field(default_factory=list)
    remediation: Remediation = Field(default_factory=Remediation)

    def ordered_checks(self) -> list[Check]:
        return sorted(self.checks, key=lambda c: c.cost)


class MissingSet(BaseModel):
    """Requirements that are not satisfied on this machine."""

    family: str
    manager: str
    requirements: list[Requirement] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.requirements

    @property
    def names(self) -> list[str]:
        return [r.name for r in self.requirements]

    @property
    def packages(self) -> list[str]:
        """De-duplicated, ordered package names across all remediations."""
        seen: list[str] = []
        for req in self.requirements:
            if req.remediation.kind != "packages":
                continue
            for pkg in req.remediation.packages:
                if pkg not in seen:
                    seen.append(pkg)
        return seen

    @property
    def special(self) -> list[Requirement]:
        """Requirements that need a non-package remediation (Xcode, Homebrew)."""
        return [r for r in self.requirements if r.remediation.kind in ("xcode-clt", "homebrew")]

    def to_dict(self) -> dict:
        return {
            "family": self.family,
            "manager": self.manager,
            "missing": self.names,
            "packages": self.packages,
        }
