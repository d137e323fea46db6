"""SQLAlchemy ORM models for the challenge database."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from habitpact.shared.utils.datetime_utils import utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""


# ===========================================
# CHALLENGE TABLES
# ===========================================


class Challenge(Base):
    """A time-boxed commitment with daily requirements and optional stakes."""

    __tablename__ = "challenges"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    creator_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    requires_workout_log: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_diet_log: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_reflection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    stake_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    participants: Mapped[list["ChallengeParticipant"]] = relationship(
        back_populates="challenge",
        order_by="ChallengeParticipant.seq",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_challenge_date_range"),
        CheckConstraint(
            "stake_amount IS NULL OR stake_amount > 0",
            name="ck_challenge_stake_positive",
        ),
        CheckConstraint(
            "status IN ('draft', 'active', 'completed', 'cancelled')",
            name="ck_challenge_status",
        ),
        Index("idx_challenges_creator", "creator_id"),
        Index("idx_challenges_status_end", "status", "end_date"),
    )

    @property
    def has_stakes(self) -> bool:
        return self.stake_amount is not None

    @property
    def requirements(self) -> list[str]:
        """Required daily log kinds, in a stable order."""
        flags = (
            ("workout", self.requires_workout_log),
            ("diet", self.requires_diet_log),
            ("reflection", self.requires_reflection),
        )
        return [kind for kind, required in flags if required]

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def __repr__(self) -> str:
        return f"<Challenge {self.id} status={self.status}>"


class ChallengeParticipant(Base):
    """A user's enrollment in one challenge."""

    __tablename__ = "challenge_participants"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(
        ForeignKey("challenges.id", ondelete="RESTRICT"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="invited")
    stake_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invite_response: Mapped[str | None] = mapped_column(String(10))
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    challenge: Mapped[Challenge] = relationship(back_populates="participants", lazy="raise")

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_participant_challenge_user"),
        UniqueConstraint("challenge_id", "seq", name="uq_participant_challenge_seq"),
        CheckConstraint(
            "status IN ('invited', 'active', 'withdrawn', 'failed', 'completed')",
            name="ck_participant_status",
        ),
        CheckConstraint(
            "invite_response IS NULL OR invite_response IN ('accepted', 'declined')",
            name="ck_participant_invite_response",
        ),
        Index("idx_participants_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<ChallengeParticipant {self.challenge_id}/{self.user_id} status={self.status}>"
