"""Error taxonomy for the challenge lifecycle core.

Every error carries a stable ``error_type`` and a ``details`` dict with the
offending entity ids so the presentation layer can render a message.
"""

from typing import Any, NoReturn
from uuid import UUID

from fastapi import HTTPException, status


class ChallengeServiceError(Exception):
    """Base exception for challenge core errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "challenge_service_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(ChallengeServiceError):
    """Raised for malformed input such as an inverted date range."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        super().__init__(message, "validation_error", details)
        self.field = field


class NotFoundError(ChallengeServiceError):
    """Raised when a referenced challenge or participant is absent."""

    def __init__(self, entity_type: str, entity_id: str | UUID, **lookup: Any) -> None:
        details = {"entity_type": entity_type, "entity_id": str(entity_id)}
        details.update({k: str(v) for k, v in lookup.items()})
        super().__init__(
            f"{entity_type} '{entity_id}' not found",
            "not_found",
            details,
        )
        self.entity_type = entity_type
        self.entity_id = str(entity_id)


class ConflictError(ChallengeServiceError):
    """Raised on a uniqueness or concurrent-write violation."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, "conflict", {k: str(v) for k, v in details.items()})


class AuthorizationError(ChallengeServiceError):
    """Raised when the actor lacks rights for a transition."""

    def __init__(self, actor_id: str | UUID, action: str, challenge_id: str | UUID) -> None:
        super().__init__(
            f"User {actor_id} is not allowed to {action}",
            "authorization_error",
            {"actor_id": str(actor_id), "action": action, "challenge_id": str(challenge_id)},
        )
        self.actor_id = str(actor_id)
        self.action = action


class InvalidStateError(ChallengeServiceError):
    """Raised when a transition is illegal from the current status."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str | UUID,
        current_status: str,
        target: str,
        error_type: str = "invalid_state",
        message: str | None = None,
    ) -> None:
        super().__init__(
            message
            or f"Cannot move {entity_type} '{entity_id}' from '{current_status}' to '{target}'",
            error_type,
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "current_status": current_status,
                "target": target,
            },
        )
        self.entity_type = entity_type
        self.current_status = current_status
        self.target = target


class StakeNotVerifiedError(InvalidStateError):
    """Raised by start when stake-required participants are unverified."""

    def __init__(self, challenge_id: str | UUID, user_ids: list[UUID]) -> None:
        names = ", ".join(str(u) for u in user_ids)
        super().__init__(
            "challenge",
            challenge_id,
            "draft",
            "active",
            error_type="stake_not_verified",
            message=f"Challenge '{challenge_id}' has unverified stakes: {names}",
        )
        self.user_ids = list(user_ids)
        self.details["unverified_user_ids"] = [str(u) for u in user_ids]


class StorageTimeoutError(ChallengeServiceError):
    """Raised when the durability layer does not answer in time."""

    def __init__(self, operation: str, timeout: float | None = None, reason: str | None = None) -> None:
        details: dict[str, Any] = {"operation": operation}
        if timeout is not None:
            details["timeout_seconds"] = timeout
        if reason:
            details["reason"] = reason
        super().__init__(
            f"Storage unavailable during '{operation}'",
            "storage_timeout",
            details,
        )
        self.operation = operation


STATUS_MAP = {
    "validation_error": 422,  # status.HTTP_422_UNPROCESSABLE_ENTITY is deprecated
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "authorization_error": status.HTTP_403_FORBIDDEN,
    "invalid_state": status.HTTP_409_CONFLICT,
    "stake_not_verified": status.HTTP_409_CONFLICT,
    "storage_timeout": status.HTTP_503_SERVICE_UNAVAILABLE,
    "challenge_service_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_http_exception(error: ChallengeServiceError) -> NoReturn:
    """Convert ChallengeServiceError to HTTPException."""
    code = STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(
        status_code=code,
        detail={
            "type": error.error_type,
            "title": error.error_type.replace("_", " ").title(),
            "status": code,
            "detail": error.message,
            "details": error.details,
        },
    ) from error
