"""Transaction boundary for repository operations."""

from habitpact.repositories.unit_of_work import UnitOfWork, create_unit_of_work

__all__ = [
    "UnitOfWork",
    "create_unit_of_work",
]
