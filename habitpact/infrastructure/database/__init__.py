"""Database models and session management."""

from habitpact.infrastructure.database.models import Base, Challenge, ChallengeParticipant
from habitpact.infrastructure.database.session import (
    close_db,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "Challenge",
    "ChallengeParticipant",
    "close_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
