"""Persistence adapters."""

from .sqlite import SqliteDigestRepository

__all__ = ["SqliteDigestRepository"]
