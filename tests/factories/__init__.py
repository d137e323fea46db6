"""Test data factories for habitpact."""

from tests.factories.challenge_factory import (
    make_challenge_config,
    make_challenge_payload,
    make_user_id,
)

__all__ = [
    "make_challenge_config",
    "make_challenge_payload",
    "make_user_id",
]
