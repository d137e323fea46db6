from habitpact.shared.schemas.base import BaseSchema

__all__ = ["BaseSchema"]
