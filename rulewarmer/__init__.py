"""Warm the Qlik Sense repository security-rule cache for a list of users."""

from __future__ import annotations

from .config import ConfigurationError, WarmerConfig, build_config
from .models import UserIdentity
from .pool import BatchSummary, JobQueue, WorkerPool
from .progress import ProgressCounters
from .runner import run

__all__ = [
    "BatchSummary",
    "ConfigurationError",
    "JobQueue",
    "ProgressCounters",
    "UserIdentity",
    "WarmerConfig",
    "WorkerPool",
    "build_config",
    "run",
]
