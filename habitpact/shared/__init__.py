"""Shared utilities and schemas."""
