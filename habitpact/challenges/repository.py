"""Challenge store: persistence and lookups for challenges and participants.

No business rules live here beyond the record-level checks that keep a row
valid on its own (date range, positive stake, unique participant pair).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from habitpact.challenges.exceptions import ConflictError, NotFoundError, ValidationError
from habitpact.challenges.schemas import ChallengeConfig, ChallengeStatus, RequirementKind
from habitpact.infrastructure.database.models import Challenge, ChallengeParticipant
from habitpact.shared.utils.datetime_utils import utcnow
from habitpact.shared.utils.logging import get_logger

logger = get_logger(__name__)

# Matches the Numeric(10, 2) stake_amount column
STAKE_QUANTUM = Decimal("0.01")
MAX_STAKE_AMOUNT = Decimal("100000000")


def validate_config(config: ChallengeConfig) -> None:
    """Reject configurations that can never form a valid challenge row."""
    if config.start_date > config.end_date:
        raise ValidationError(
            f"start_date {config.start_date} is after end_date {config.end_date}",
            field="start_date",
        )
    if config.stake_terms is not None:
        validate_stake_amount(config.stake_terms.amount_per_person)


def validate_stake_amount(amount: Decimal) -> None:
    """Stake amounts must be positive and fit the stored precision exactly."""
    field = "stake_terms.amount_per_person"
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Stake amount per person must be positive", field=field)
    if amount >= MAX_STAKE_AMOUNT:
        raise ValidationError(
            f"Stake amount {amount} must be below {MAX_STAKE_AMOUNT}", field=field
        )
    if amount != amount.quantize(STAKE_QUANTUM):
        raise ValidationError(
            f"Stake amount {amount} has more than two decimal places", field=field
        )


class ChallengeRepository:
    """Repository for challenge and participant rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==========================================
    # CHALLENGES
    # ==========================================

    async def create_challenge(self, creator_id: UUID, config: ChallengeConfig) -> Challenge:
        """Insert a new challenge in 'draft' status."""
        validate_config(config)
        requirements = {RequirementKind(r).value for r in config.requirements}

        challenge = Challenge(
            creator_id=creator_id,
            name=config.name,
            description=config.description,
            start_date=config.start_date,
            end_date=config.end_date,
            requires_workout_log=RequirementKind.WORKOUT.value in requirements,
            requires_diet_log=RequirementKind.DIET.value in requirements,
            requires_reflection=RequirementKind.REFLECTION.value in requirements,
            stake_amount=config.stake_terms.amount_per_person if config.stake_terms else None,
            status=ChallengeStatus.DRAFT.value,
        )
        self.session.add(challenge)
        await self.session.flush()
        return challenge

    async def get_challenge(self, challenge_id: UUID, for_update: bool = False) -> Challenge:
        """Get a challenge by id, raising NotFoundError if absent.

        With ``for_update`` the row stays locked until the transaction ends.
        """
        query = select(Challenge).where(Challenge.id == challenge_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        challenge = result.scalar_one_or_none()
        if challenge is None:
            raise NotFoundError("challenge", challenge_id)
        return challenge

    async def get_challenge_with_participants(self, challenge_id: UUID) -> Challenge:
        """Load a challenge and all its participants in one batched read."""
        query = (
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .options(selectinload(Challenge.participants))
        )
        result = await self.session.execute(query)
        challenge = result.scalar_one_or_none()
        if challenge is None:
            raise NotFoundError("challenge", challenge_id)
        return challenge

    async def update_challenge_status(self, challenge_id: UUID, new_status: str) -> Challenge:
        challenge = await self.get_challenge(challenge_id)
        challenge.status = new_status
        challenge.updated_at = utcnow()
        await self.session.flush()
        return challenge

    async def list_challenges_for_user(
        self,
        user_id: UUID,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Challenge]:
        """Challenges the user participates in, newest start date first."""
        query = (
            select(Challenge)
            .join(ChallengeParticipant, ChallengeParticipant.challenge_id == Challenge.id)
            .where(ChallengeParticipant.user_id == user_id)
        )
        if status:
            query = query.where(Challenge.status == status)
        query = (
            query.order_by(Challenge.start_date.desc(), Challenge.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_challenges_due_for_completion(self, today: date) -> list[UUID]:
        """Ids of active challenges whose last day is before ``today``."""
        query = (
            select(Challenge.id)
            .where(
                Challenge.status == ChallengeStatus.ACTIVE.value,
                Challenge.end_date < today,
            )
            .order_by(Challenge.end_date)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ==========================================
    # PARTICIPANTS
    # ==========================================

    async def list_participants(self, challenge_id: UUID) -> list[ChallengeParticipant]:
        """Participants of a challenge in insertion order."""
        query = (
            select(ChallengeParticipant)
            .where(ChallengeParticipant.challenge_id == challenge_id)
            .order_by(ChallengeParticipant.seq)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_participant(
        self,
        challenge_id: UUID,
        user_id: UUID,
        for_update: bool = False,
    ) -> ChallengeParticipant | None:
        query = select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert_participant(
        self,
        challenge_id: UUID,
        user_id: UUID,
        status: str,
        invite_response: str | None = None,
    ) -> ChallengeParticipant:
        """Update the status of the existing row, or insert a new one.

        A concurrent insert of the same pair surfaces as ConflictError.
        """
        existing = await self.get_participant(challenge_id, user_id, for_update=True)
        if existing is not None:
            existing.status = status
            if invite_response is not None:
                existing.invite_response = invite_response
            existing.updated_at = utcnow()
            await self.session.flush()
            return existing

        exists = await self.session.execute(
            select(Challenge.id).where(Challenge.id == challenge_id)
        )
        if exists.scalar_one_or_none() is None:
            raise NotFoundError("challenge", challenge_id)

        participant = ChallengeParticipant(
            challenge_id=challenge_id,
            user_id=user_id,
            status=status,
            stake_verified=False,
            invite_response=invite_response,
            seq=await self._next_seq(challenge_id),
        )
        self.session.add(participant)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "participant_insert_conflict",
                challenge_id=str(challenge_id),
                user_id=str(user_id),
            )
            raise ConflictError(
                f"Participant {user_id} already exists in challenge {challenge_id}",
                challenge_id=challenge_id,
                user_id=user_id,
            ) from e
        return participant

    async def set_stake_verified(
        self,
        challenge_id: UUID,
        user_id: UUID,
        verified: bool,
    ) -> ChallengeParticipant:
        participant = await self.get_participant(challenge_id, user_id, for_update=True)
        if participant is None:
            raise NotFoundError("participant", user_id, challenge_id=challenge_id)
        participant.stake_verified = verified
        participant.updated_at = utcnow()
        await self.session.flush()
        return participant

    async def bulk_transition_participants(
        self,
        challenge_id: UUID,
        from_status: str,
        to_status: str,
    ) -> int:
        """Move every participant in ``from_status`` to ``to_status`` with one UPDATE."""
        result = await self.session.execute(
            update(ChallengeParticipant)
            .where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.status == from_status,
            )
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        await self.session.flush()
        return result.rowcount or 0

    async def _next_seq(self, challenge_id: UUID) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(ChallengeParticipant.seq), 0)).where(
                ChallengeParticipant.challenge_id == challenge_id
            )
        )
        return (result.scalar() or 0) + 1
