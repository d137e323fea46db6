"""State transitions for challenges and participants.

Every mutating operation runs as one transaction that locks the challenge
row first, so precondition checks always see committed state and cascades
are never observable half-applied.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from datetime import date
from functools import lru_cache
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from habitpact.challenges.config import ChallengeSettings, get_challenge_settings
from habitpact.challenges.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StakeNotVerifiedError,
    StorageTimeoutError,
)
from habitpact.challenges.schemas import (
    OPEN_CHALLENGE_STATUSES,
    STAKE_REQUIRED_PARTICIPANT_STATUSES,
    ChallengeConfig,
    ChallengeStatus,
    InviteResponse,
    MissedLogEvent,
    ParticipantStatus,
)
from habitpact.challenges.state_machine import (
    COMPLETION_CASCADE,
    validate_participant_transition,
    validate_transition,
)
from habitpact.infrastructure.database.models import Challenge, ChallengeParticipant
from habitpact.repositories.unit_of_work import UnitOfWork
from habitpact.shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ChallengeLifecycleManager:
    """Sole writer of challenge and participant status."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession],
        settings: ChallengeSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_challenge_settings()
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()

    # ==========================================
    # CHALLENGE TRANSITIONS
    # ==========================================

    async def create_challenge_with_creator(
        self,
        config: ChallengeConfig,
        creator_id: UUID,
    ) -> Challenge:
        """Create a draft challenge and enroll its creator as an active participant."""

        async def work(uow: UnitOfWork) -> Challenge:
            challenge = await uow.challenges.create_challenge(creator_id, config)
            await uow.challenges.upsert_participant(
                challenge.id, creator_id, ParticipantStatus.ACTIVE.value
            )
            return challenge

        challenge = await self._run("create_challenge", work)
        logger.info(
            "challenge_created",
            challenge_id=str(challenge.id),
            creator_id=str(creator_id),
            has_stakes=challenge.has_stakes,
        )
        return challenge

    async def start_challenge(self, challenge_id: UUID, actor_id: UUID) -> Challenge:
        """Move a draft challenge to active once every required stake is verified."""

        async def work(uow: UnitOfWork) -> Challenge:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            self._require_creator(challenge, actor_id, "start the challenge")
            validate_transition(challenge.status, ChallengeStatus.ACTIVE.value, challenge_id)

            if challenge.has_stakes:
                participants = await uow.challenges.list_participants(challenge_id)
                unverified = [
                    p.user_id
                    for p in participants
                    if p.status in STAKE_REQUIRED_PARTICIPANT_STATUSES and not p.stake_verified
                ]
                if unverified:
                    raise StakeNotVerifiedError(challenge_id, unverified)

            return await uow.challenges.update_challenge_status(
                challenge_id, ChallengeStatus.ACTIVE.value
            )

        challenge = await self._run("start_challenge", work, challenge_id)
        logger.info("challenge_started", challenge_id=str(challenge_id), actor_id=str(actor_id))
        return challenge

    async def complete_challenge(
        self,
        challenge_id: UUID,
        actor_id: UUID | None = None,
    ) -> Challenge:
        """Complete an active challenge and cascade to its participants.

        ``actor_id=None`` is the system trigger used when the end date passes.
        """

        async def work(uow: UnitOfWork) -> tuple[Challenge, dict[str, int]]:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            if actor_id is not None:
                self._require_creator(challenge, actor_id, "complete the challenge")
            validate_transition(challenge.status, ChallengeStatus.COMPLETED.value, challenge_id)

            moved: dict[str, int] = {}
            for from_status, to_status in COMPLETION_CASCADE.items():
                moved[from_status] = await uow.challenges.bulk_transition_participants(
                    challenge_id, from_status, to_status
                )
            challenge = await uow.challenges.update_challenge_status(
                challenge_id, ChallengeStatus.COMPLETED.value
            )
            return challenge, moved

        challenge, moved = await self._run("complete_challenge", work, challenge_id)
        logger.info(
            "challenge_completed",
            challenge_id=str(challenge_id),
            actor_id=str(actor_id) if actor_id else "system",
            participants_completed=moved.get(ParticipantStatus.ACTIVE.value, 0),
            invitations_withdrawn=moved.get(ParticipantStatus.INVITED.value, 0),
        )
        return challenge

    async def cancel_challenge(self, challenge_id: UUID, actor_id: UUID) -> Challenge:
        """Cancel a draft or active challenge. Participant rows are kept as they are."""

        async def work(uow: UnitOfWork) -> Challenge:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            self._require_creator(challenge, actor_id, "cancel the challenge")
            validate_transition(challenge.status, ChallengeStatus.CANCELLED.value, challenge_id)
            return await uow.challenges.update_challenge_status(
                challenge_id, ChallengeStatus.CANCELLED.value
            )

        challenge = await self._run("cancel_challenge", work, challenge_id)
        logger.info("challenge_cancelled", challenge_id=str(challenge_id), actor_id=str(actor_id))
        return challenge

    # ==========================================
    # PARTICIPANT TRANSITIONS
    # ==========================================

    async def invite(
        self,
        challenge_id: UUID,
        user_id: UUID,
        actor_id: UUID,
    ) -> ChallengeParticipant:
        """Invite a user. Creator only; draft challenges, or active ones without stakes."""

        async def work(uow: UnitOfWork) -> ChallengeParticipant:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            self._require_creator(challenge, actor_id, "invite participants")
            self._require_open(challenge, "invite")
            # A staked challenge only admits participants whose stake was verified before start
            if challenge.has_stakes and challenge.status == ChallengeStatus.ACTIVE.value:
                raise InvalidStateError(
                    "challenge",
                    challenge_id,
                    challenge.status,
                    "invite",
                    message=f"Cannot invite into staked challenge '{challenge_id}' after it started",
                )

            existing = await uow.challenges.get_participant(challenge_id, user_id, for_update=True)
            if existing is not None:
                raise ConflictError(
                    f"User {user_id} is already a participant of challenge {challenge_id}",
                    challenge_id=challenge_id,
                    user_id=user_id,
                    status=existing.status,
                )
            return await uow.challenges.upsert_participant(
                challenge_id, user_id, ParticipantStatus.INVITED.value
            )

        participant = await self._run("invite", work, challenge_id)
        logger.info(
            "participant_invited",
            challenge_id=str(challenge_id),
            user_id=str(user_id),
            actor_id=str(actor_id),
        )
        return participant

    async def respond_to_invite(
        self,
        challenge_id: UUID,
        user_id: UUID,
        accept: bool,
    ) -> ChallengeParticipant:
        """Accept or decline an invitation.

        Repeating the response that was already given returns the row unchanged
        while it is still in the state that response produced.
        """
        target = ParticipantStatus.ACTIVE.value if accept else ParticipantStatus.WITHDRAWN.value
        response = InviteResponse.ACCEPTED.value if accept else InviteResponse.DECLINED.value

        async def work(uow: UnitOfWork) -> tuple[ChallengeParticipant, bool]:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            participant = await uow.challenges.get_participant(
                challenge_id, user_id, for_update=True
            )
            if (
                participant is not None
                and participant.invite_response == response
                and participant.status == target
            ):
                return participant, False
            if participant is None or participant.status != ParticipantStatus.INVITED.value:
                raise NotFoundError("invitation", user_id, challenge_id=challenge_id)
            if accept:
                self._require_open(challenge, "accept an invitation")

            validate_participant_transition(participant.status, target, user_id)
            participant = await uow.challenges.upsert_participant(
                challenge_id, user_id, target, invite_response=response
            )
            return participant, True

        participant, changed = await self._run("respond_to_invite", work, challenge_id)
        if changed:
            logger.info(
                "invitation_answered",
                challenge_id=str(challenge_id),
                user_id=str(user_id),
                accepted=accept,
            )
        return participant

    async def verify_stake(
        self,
        challenge_id: UUID,
        user_id: UUID,
        actor_id: UUID,
    ) -> ChallengeParticipant:
        """Record the creator's attestation that a participant has put up their stake."""

        async def work(uow: UnitOfWork) -> ChallengeParticipant:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            if not challenge.has_stakes:
                raise InvalidStateError(
                    "challenge",
                    challenge_id,
                    challenge.status,
                    "verify_stake",
                    message=f"Challenge '{challenge_id}' has no stake terms",
                )
            self._require_creator(challenge, actor_id, "verify stakes")
            self._require_open(challenge, "verify a stake")

            participant = await uow.challenges.get_participant(
                challenge_id, user_id, for_update=True
            )
            if participant is None:
                raise NotFoundError("participant", user_id, challenge_id=challenge_id)
            if participant.status not in STAKE_REQUIRED_PARTICIPANT_STATUSES:
                raise InvalidStateError(
                    "participant", user_id, participant.status, "verify_stake"
                )
            if participant.stake_verified:
                return participant
            return await uow.challenges.set_stake_verified(challenge_id, user_id, True)

        participant = await self._run("verify_stake", work, challenge_id)
        logger.info(
            "stake_verified",
            challenge_id=str(challenge_id),
            user_id=str(user_id),
            actor_id=str(actor_id),
        )
        return participant

    async def withdraw(
        self,
        challenge_id: UUID,
        user_id: UUID,
        actor_id: UUID,
    ) -> ChallengeParticipant:
        """Let a participant leave a draft or active challenge."""

        async def work(uow: UnitOfWork) -> ChallengeParticipant:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            if actor_id != user_id:
                raise AuthorizationError(actor_id, "withdraw another participant", challenge_id)
            self._require_open(challenge, "withdraw")

            participant = await uow.challenges.get_participant(
                challenge_id, user_id, for_update=True
            )
            if participant is None:
                raise NotFoundError("participant", user_id, challenge_id=challenge_id)
            validate_participant_transition(
                participant.status, ParticipantStatus.WITHDRAWN.value, user_id
            )
            return await uow.challenges.upsert_participant(
                challenge_id, user_id, ParticipantStatus.WITHDRAWN.value
            )

        participant = await self._run("withdraw", work, challenge_id)
        logger.info("participant_withdrawn", challenge_id=str(challenge_id), user_id=str(user_id))
        return participant

    async def record_missed_log(self, event: MissedLogEvent) -> ChallengeParticipant:
        """Fail an active participant who missed a required log past the cutoff."""
        challenge_id = event.challenge_id
        user_id = event.user_id

        async def work(uow: UnitOfWork) -> tuple[ChallengeParticipant, bool]:
            challenge = await uow.challenges.get_challenge(challenge_id, for_update=True)
            if challenge.status != ChallengeStatus.ACTIVE.value:
                raise InvalidStateError(
                    "challenge",
                    challenge_id,
                    challenge.status,
                    "fail_participant",
                    message=f"Challenge '{challenge_id}' is not active",
                )
            participant = await uow.challenges.get_participant(
                challenge_id, user_id, for_update=True
            )
            if participant is None:
                raise NotFoundError("participant", user_id, challenge_id=challenge_id)
            if participant.status == ParticipantStatus.FAILED.value:
                return participant, False
            validate_participant_transition(
                participant.status, ParticipantStatus.FAILED.value, user_id
            )
            participant = await uow.challenges.upsert_participant(
                challenge_id, user_id, ParticipantStatus.FAILED.value
            )
            return participant, True

        participant, changed = await self._run("record_missed_log", work, challenge_id)
        if changed:
            logger.info(
                "participant_failed",
                challenge_id=str(challenge_id),
                user_id=str(user_id),
                missed_on=str(event.missed_on) if event.missed_on else None,
                kind=event.kind,
            )
        return participant

    # ==========================================
    # READ QUERIES
    # ==========================================

    async def get_challenge(self, challenge_id: UUID) -> Challenge:
        async def work(uow: UnitOfWork) -> Challenge:
            return await uow.challenges.get_challenge(challenge_id)

        return await self._run("get_challenge", work)

    async def list_participants(self, challenge_id: UUID) -> list[ChallengeParticipant]:
        async def work(uow: UnitOfWork) -> list[ChallengeParticipant]:
            await uow.challenges.get_challenge(challenge_id)
            return await uow.challenges.list_participants(challenge_id)

        return await self._run("list_participants", work)

    async def get_challenge_detail(self, challenge_id: UUID) -> Challenge:
        """Challenge with ``participants`` loaded in insertion order."""

        async def work(uow: UnitOfWork) -> Challenge:
            return await uow.challenges.get_challenge_with_participants(challenge_id)

        return await self._run("get_challenge_detail", work)

    async def list_challenges_for_user(
        self,
        user_id: UUID,
        status: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Challenge]:
        limit = min(limit or self._settings.default_page_size, self._settings.max_page_size)

        async def work(uow: UnitOfWork) -> list[Challenge]:
            return await uow.challenges.list_challenges_for_user(
                user_id, status=status, limit=limit, offset=max(offset, 0)
            )

        return await self._run("list_challenges_for_user", work)

    async def list_challenges_due_for_completion(self, today: date) -> list[UUID]:
        async def work(uow: UnitOfWork) -> list[UUID]:
            return await uow.challenges.list_challenges_due_for_completion(today)

        return await self._run("list_challenges_due_for_completion", work)

    # ==========================================
    # HELPERS
    # ==========================================

    @staticmethod
    def _require_creator(challenge: Challenge, actor_id: UUID, action: str) -> None:
        if actor_id != challenge.creator_id:
            raise AuthorizationError(actor_id, action, challenge.id)

    @staticmethod
    def _require_open(challenge: Challenge, action: str) -> None:
        if challenge.status not in OPEN_CHALLENGE_STATUSES:
            raise InvalidStateError(
                "challenge",
                challenge.id,
                challenge.status,
                action,
                message=f"Cannot {action} while challenge '{challenge.id}' is {challenge.status}",
            )

    def _lock_for(self, challenge_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(challenge_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[challenge_id] = lock
        return lock

    async def _run(
        self,
        operation: str,
        work: Callable[[UnitOfWork], Awaitable[T]],
        challenge_id: UUID | None = None,
    ) -> T:
        """Run ``work`` in one transaction, bounded by the storage timeout."""
        timeout = self._settings.storage_timeout_seconds
        try:
            return await asyncio.wait_for(self._execute(work, challenge_id), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                "operation_timed_out",
                operation=operation,
                challenge_id=str(challenge_id) if challenge_id else None,
                timeout=timeout,
            )
            raise StorageTimeoutError(operation, timeout=timeout) from e
        except OperationalError as e:
            logger.error("storage_unavailable", operation=operation, error=type(e).__name__)
            raise StorageTimeoutError(operation, reason=type(e).__name__) from e

    async def _execute(
        self,
        work: Callable[[UnitOfWork], Awaitable[T]],
        challenge_id: UUID | None,
    ) -> T:
        if challenge_id is None:
            return await self._transaction(work)
        lock = self._lock_for(challenge_id)
        async with lock:
            return await self._transaction(work)

    async def _transaction(self, work: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        async with UnitOfWork(self._session_factory) as uow:
            result = await work(uow)
            await uow.commit()
            return result


@lru_cache
def get_lifecycle_manager() -> ChallengeLifecycleManager:
    """Get the process-wide lifecycle manager bound to the default database."""
    from habitpact.infrastructure.database.session import get_session_factory

    return ChallengeLifecycleManager(get_session_factory())
