"""Digest scheduling and the per-user pipeline."""

from .digest import RUN_GUARD, DigestError, DigestScheduler, RunGuard
from .pipeline import DigestPipeline

__all__ = [
    "DigestError",
    "DigestPipeline",
    "DigestScheduler",
    "RUN_GUARD",
    "RunGuard",
]
