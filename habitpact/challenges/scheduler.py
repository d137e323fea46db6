"""Automatic completion of challenges whose end date has passed.

Registered with the periodic scheduler in ``habitpact.main``. Each tick
completes every active challenge whose last day is before today.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from habitpact.challenges.exceptions import ChallengeServiceError
from habitpact.challenges.service import ChallengeLifecycleManager, get_lifecycle_manager
from habitpact.shared.utils.datetime_utils import utc_today
from habitpact.shared.utils.logging import get_logger

logger = get_logger(__name__)


async def challenge_scheduler_tick(
    manager: ChallengeLifecycleManager | None = None,
    today: date | None = None,
) -> dict:
    """Complete active challenges past their end date.

    A challenge that fails to complete (for example because it was
    cancelled concurrently) is reported and the tick moves on.

    Returns:
        ``{"completed": [...], "failed": [...]}``.
    """
    manager = manager or get_lifecycle_manager()
    today = today or utc_today()

    completed: list[UUID] = []
    failed: list[dict[str, str]] = []

    for challenge_id in await manager.list_challenges_due_for_completion(today):
        try:
            await manager.complete_challenge(challenge_id, actor_id=None)
            completed.append(challenge_id)
        except ChallengeServiceError as exc:
            logger.error(
                "auto_complete_failed",
                challenge_id=str(challenge_id),
                error_type=exc.error_type,
                error=exc.message,
            )
            failed.append({"challenge_id": str(challenge_id), "error_type": exc.error_type})

    if completed or failed:
        logger.info(
            "challenge_scheduler_tick",
            completed=len(completed),
            failed=len(failed),
            today=str(today),
        )

    return {"completed": completed, "failed": failed}


__all__ = ["challenge_scheduler_tick"]
