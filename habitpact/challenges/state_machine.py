"""Challenge and participant lifecycle state machines.

Challenge:   draft → active → completed
             draft | active → cancelled
Participant: invited → active | withdrawn
             active → withdrawn | failed | completed

This module is the only place transition legality is defined.
"""

from __future__ import annotations

from uuid import UUID

from habitpact.challenges.exceptions import InvalidStateError

CHALLENGE_TRANSITIONS: dict[str, list[str]] = {
    "draft": ["active", "cancelled"],
    "active": ["completed", "cancelled"],
    "completed": [],    # terminal
    "cancelled": [],    # terminal
}

PARTICIPANT_TRANSITIONS: dict[str, list[str]] = {
    "invited": ["active", "withdrawn"],
    "active": ["withdrawn", "failed", "completed"],
    "withdrawn": [],    # terminal
    "failed": [],       # terminal
    "completed": [],    # terminal
}

# Cascade applied to participants when their challenge completes
COMPLETION_CASCADE: dict[str, str] = {
    "active": "completed",
    "invited": "withdrawn",
}


def can_transition(current: str, target: str) -> bool:
    """Check if a challenge state transition is valid."""
    return target in CHALLENGE_TRANSITIONS.get(current, [])


def validate_transition(current: str, target: str, challenge_id: str | UUID = "") -> None:
    """Validate a challenge state transition, raising InvalidStateError if invalid."""
    if not can_transition(current, target):
        raise InvalidStateError("challenge", challenge_id, current, target)


def can_transition_participant(current: str, target: str) -> bool:
    """Check if a participant state transition is valid."""
    return target in PARTICIPANT_TRANSITIONS.get(current, [])


def validate_participant_transition(
    current: str,
    target: str,
    participant_id: str | UUID = "",
) -> None:
    """Validate a participant state transition, raising InvalidStateError if invalid."""
    if not can_transition_participant(current, target):
        raise InvalidStateError("participant", participant_id, current, target)
