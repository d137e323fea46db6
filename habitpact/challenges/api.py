"""REST API endpoints for the challenge lifecycle."""

from __future__ import annotations

from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from habitpact.challenges.exceptions import ChallengeServiceError, raise_http_exception
from habitpact.challenges.schemas import (
    ChallengeConfig,
    ChallengeDetailResponse,
    ChallengeResponse,
    ChallengeStatus,
    InviteRequest,
    MissedLogEvent,
    ParticipantResponse,
    RespondToInviteRequest,
)
from habitpact.challenges.service import ChallengeLifecycleManager, get_lifecycle_manager
from habitpact.shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/challenges", tags=["challenges"])


def get_actor_id(x_user_id: str | None = Header(default=None)) -> UUID:
    """Caller identity as asserted by the upstream identity provider."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed user identity",
        ) from None


def _fail(operation: str, error: ChallengeServiceError) -> NoReturn:
    logger.warning(
        "challenge_operation_rejected",
        operation=operation,
        error_type=error.error_type,
        details=error.details,
    )
    raise_http_exception(error)


# ===========================================
# QUERIES
# ===========================================


@router.get("/mine", response_model=list[ChallengeResponse])
async def list_my_challenges(
    challenge_status: ChallengeStatus | None = Query(default=None, alias="status"),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Challenges the caller participates in."""
    try:
        challenges = await manager.list_challenges_for_user(
            actor_id,
            status=challenge_status.value if challenge_status else None,
            limit=limit,
            offset=offset,
        )
    except ChallengeServiceError as e:
        _fail("list_my_challenges", e)
    return [ChallengeResponse.model_validate(c) for c in challenges]


@router.get("/{challenge_id}", response_model=ChallengeDetailResponse)
async def get_challenge(
    challenge_id: UUID,
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Challenge with its participants in insertion order."""
    try:
        challenge = await manager.get_challenge_detail(challenge_id)
    except ChallengeServiceError as e:
        _fail("get_challenge", e)
    return ChallengeDetailResponse(
        challenge=ChallengeResponse.model_validate(challenge),
        participants=[ParticipantResponse.model_validate(p) for p in challenge.participants],
    )


@router.get("/{challenge_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(
    challenge_id: UUID,
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        participants = await manager.list_participants(challenge_id)
    except ChallengeServiceError as e:
        _fail("list_participants", e)
    return [ParticipantResponse.model_validate(p) for p in participants]


# ===========================================
# CHALLENGE COMMANDS
# ===========================================


@router.post("", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    body: ChallengeConfig,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Create a draft challenge; the caller is enrolled as its first participant."""
    try:
        challenge = await manager.create_challenge_with_creator(body, actor_id)
    except ChallengeServiceError as e:
        _fail("create_challenge", e)
    return ChallengeResponse.model_validate(challenge)


@router.post("/{challenge_id}/start", response_model=ChallengeResponse)
async def start_challenge(
    challenge_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        challenge = await manager.start_challenge(challenge_id, actor_id)
    except ChallengeServiceError as e:
        _fail("start_challenge", e)
    return ChallengeResponse.model_validate(challenge)


@router.post("/{challenge_id}/complete", response_model=ChallengeResponse)
async def complete_challenge(
    challenge_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        challenge = await manager.complete_challenge(challenge_id, actor_id)
    except ChallengeServiceError as e:
        _fail("complete_challenge", e)
    return ChallengeResponse.model_validate(challenge)


@router.post("/{challenge_id}/cancel", response_model=ChallengeResponse)
async def cancel_challenge(
    challenge_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        challenge = await manager.cancel_challenge(challenge_id, actor_id)
    except ChallengeServiceError as e:
        _fail("cancel_challenge", e)
    return ChallengeResponse.model_validate(challenge)


# ===========================================
# PARTICIPANT COMMANDS
# ===========================================


@router.post(
    "/{challenge_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_participant(
    challenge_id: UUID,
    body: InviteRequest,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        participant = await manager.invite(challenge_id, body.user_id, actor_id)
    except ChallengeServiceError as e:
        _fail("invite", e)
    return ParticipantResponse.model_validate(participant)


@router.post("/{challenge_id}/invitation", response_model=ParticipantResponse)
async def respond_to_invite(
    challenge_id: UUID,
    body: RespondToInviteRequest,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Accept or decline the caller's own invitation."""
    try:
        participant = await manager.respond_to_invite(challenge_id, actor_id, body.accept)
    except ChallengeServiceError as e:
        _fail("respond_to_invite", e)
    return ParticipantResponse.model_validate(participant)


@router.post("/{challenge_id}/withdraw", response_model=ParticipantResponse)
async def withdraw(
    challenge_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        participant = await manager.withdraw(challenge_id, actor_id, actor_id)
    except ChallengeServiceError as e:
        _fail("withdraw", e)
    return ParticipantResponse.model_validate(participant)


@router.post(
    "/{challenge_id}/participants/{user_id}/stake",
    response_model=ParticipantResponse,
)
async def verify_stake(
    challenge_id: UUID,
    user_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Creator attests that the participant has put up their stake."""
    try:
        participant = await manager.verify_stake(challenge_id, user_id, actor_id)
    except ChallengeServiceError as e:
        _fail("verify_stake", e)
    return ParticipantResponse.model_validate(participant)


@router.post("/events/missed-log", response_model=ParticipantResponse)
async def record_missed_log(
    event: MissedLogEvent,
    manager: ChallengeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Hook for the daily-log service: a required log was missed past cutoff."""
    try:
        participant = await manager.record_missed_log(event)
    except ChallengeServiceError as e:
        _fail("record_missed_log", e)
    return ParticipantResponse.model_validate(participant)
