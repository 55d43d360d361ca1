"""
L1 Domain — Installer state machine (pure).

    idle → inspecting → resolving → elevating → acquiring
         → configuring_services → done

Shortcuts: inspecting → done (already current), resolving → done
(dry run), resolving → acquiring (nothing missing).  Any non-terminal
stage can go to rolled_back.
"""

from __future__ import annotations

from enum import StrEnum


class Stage(StrEnum):
    IDLE = "idle"
    INSPECTING = "inspecting"
    RESOLVING = "resolving"
    ELEVATING = "elevating"
    ACQUIRING = "acquiring"
    CONFIGURING_SERVICES = "configuring_services"
    DONE = "done"
    ROLLED_BACK = "rolled_back"


TERMINAL: frozenset[Stage] = frozenset({Stage.DONE, Stage.ROLLED_BACK})

TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.IDLE: frozenset({Stage.INSPECTING}),
    Stage.INSPECTING: frozenset({Stage.RESOLVING, Stage.DONE}),
    Stage.RESOLVING: frozenset({Stage.ELEVATING, Stage.ACQUIRING, Stage.DONE}),
    Stage.ELEVATING: frozenset({Stage.ACQUIRING}),
    Stage.ACQUIRING: frozenset({Stage.CONFIGURING_SERVICES}),
    Stage.CONFIGURING_SERVICES: frozenset({Stage.DONE}),
    Stage.DONE: frozenset(),
    Stage.ROLLED_BACK: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Whether ``current → target`` is a legal move."""
    try:
        cur, nxt = Stage(current), Stage(target)
    except ValueError:
        return False
    if nxt is Stage.ROLLED_BACK:
        return cur not in TERMINAL
    return nxt in TRANSITIONS[cur]


def validate_transition(current: str, target: str) -> Stage:
    """Return ``Stage(target)`` or raise ``ValueError`` on an illegal move."""
    if not can_transition(current, target):
        raise ValueError(f"Illegal installer transition: {current} → {target}")
    return Stage(target)
