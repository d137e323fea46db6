"""Challenges module: challenge lifecycle and participant/stake consistency.

Provides the challenge store (repository), the lifecycle manager that owns
every status transition, the state machines, and the HTTP router.
"""
