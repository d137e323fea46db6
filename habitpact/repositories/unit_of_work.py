"""Unit of Work pattern implementation.

Provides transaction management and repository coordination
for atomic operations across challenge and participant rows.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from habitpact.challenges.exceptions import ConflictError, StorageTimeoutError
from habitpact.challenges.repository import ChallengeRepository
from habitpact.shared.utils.logging import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """Unit of Work pattern for coordinating repository operations.

    Provides a single transaction boundary for multiple repository operations,
    ensuring atomicity and consistency.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            challenge = await uow.challenges.create_challenge(...)
            await uow.challenges.upsert_participant(...)
            await uow.commit()

    If an exception occurs, the transaction is automatically rolled back.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession],
    ) -> None:
        """Initialize the Unit of Work.

        Args:
            session_factory: Factory function or sessionmaker for creating database sessions
        """
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._challenges: ChallengeRepository | None = None

    @property
    def session(self) -> AsyncSession:
        """Get the current database session.

        Raises:
            RuntimeError: If the Unit of Work has not been entered
        """
        if self._session is None:
            raise RuntimeError("Unit of Work not started. Use 'async with' context manager.")
        return self._session

    @property
    def challenges(self) -> ChallengeRepository:
        """Get the challenge store."""
        if self._challenges is None:
            self._challenges = ChallengeRepository(self.session)
        return self._challenges

    # ===========================================
    # TRANSACTION MANAGEMENT
    # ===========================================

    async def __aenter__(self) -> UnitOfWork:
        self._session = self._session_factory()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit the Unit of Work context.

        Anything not explicitly committed is rolled back.
        """
        if self._session is None:
            return

        try:
            await self.rollback()
            if exc_type is not None:
                logger.debug("transaction_rolled_back", exception_type=exc_type.__name__)
        finally:
            await self._session.close()
            self._session = None
            self._challenges = None

    async def commit(self) -> None:
        """Commit the current transaction.

        Raises:
            ConflictError: If a uniqueness constraint rejects the commit
            StorageTimeoutError: If the database is unavailable
        """
        if self._session is None:
            raise RuntimeError("Unit of Work not started")

        try:
            await self._session.commit()
            logger.debug("transaction_committed")
        except IntegrityError as e:
            await self.rollback()
            raise ConflictError("Commit rejected by a uniqueness constraint") from e
        except OperationalError as e:
            await self.rollback()
            raise StorageTimeoutError("commit", reason=type(e).__name__) from e

    async def rollback(self) -> None:
        """Roll back the current transaction."""
        if self._session is not None:
            await self._session.rollback()


@asynccontextmanager
async def create_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession],
) -> AsyncGenerator[UnitOfWork, None]:
    """Create a Unit of Work context manager.

    Example:
        async with create_unit_of_work(session_factory) as uow:
            challenge = await uow.challenges.get_challenge(challenge_id)
    """
    uow = UnitOfWork(session_factory)
    async with uow:
        yield uow
