"""Pydantic v2 schemas and enums for the challenge system."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import Field

from habitpact.shared.schemas.base import BaseSchema


class ChallengeStatus(str, Enum):
    """Lifecycle status of a challenge."""

    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    """Enrollment status of a participant within one challenge."""

    INVITED = "invited"
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    FAILED = "failed"
    COMPLETED = "completed"


class InviteResponse(str, Enum):
    """Answer an invitee gave to their invitation."""

    ACCEPTED = "accepted"
    DECLINED = "declined"


class RequirementKind(str, Enum):
    """Kinds of daily log a challenge can require."""

    WORKOUT = "workout"
    DIET = "diet"
    REFLECTION = "reflection"


# Challenge statuses in which participants may still join, leave or verify stakes
OPEN_CHALLENGE_STATUSES = frozenset({ChallengeStatus.DRAFT.value, ChallengeStatus.ACTIVE.value})

# Participant statuses that must have a verified stake before a challenge starts
STAKE_REQUIRED_PARTICIPANT_STATUSES = frozenset(
    {ParticipantStatus.INVITED.value, ParticipantStatus.ACTIVE.value}
)


# ===========================================
# COMMANDS
# ===========================================


class StakeTerms(BaseSchema):
    """Per-person stake declared on a challenge. Metadata only."""

    amount_per_person: Decimal


class ChallengeConfig(BaseSchema):
    """Configuration for a new challenge.

    Range and amount checks are enforced by the challenge store so that
    they apply to every write path, not only HTTP input.
    """

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    start_date: date
    end_date: date
    requirements: set[RequirementKind] = Field(
        default_factory=lambda: set(RequirementKind)
    )
    stake_terms: StakeTerms | None = None


class InviteRequest(BaseSchema):
    user_id: UUID


class RespondToInviteRequest(BaseSchema):
    accept: bool


class MissedLogEvent(BaseSchema):
    """Emitted by the daily-log collaborator when a required log was missed past cutoff."""

    challenge_id: UUID
    user_id: UUID
    missed_on: date | None = None
    kind: RequirementKind | None = None


# ===========================================
# RESPONSES
# ===========================================


class ParticipantResponse(BaseSchema):
    """Participant row as seen by the presentation layer."""

    challenge_id: UUID
    user_id: UUID
    status: ParticipantStatus
    stake_verified: bool
    invite_response: InviteResponse | None = None
    created_at: datetime | None = None


class ChallengeResponse(BaseSchema):
    """Challenge details."""

    id: UUID
    creator_id: UUID
    name: str
    description: str | None
    start_date: date
    end_date: date
    duration_days: int
    requirements: list[RequirementKind]
    has_stakes: bool
    stake_amount: Decimal | None
    status: ChallengeStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChallengeDetailResponse(BaseSchema):
    """Challenge plus its participants in insertion order."""

    challenge: ChallengeResponse
    participants: list[ParticipantResponse]
