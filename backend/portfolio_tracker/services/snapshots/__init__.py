# backend/portfolio_tracker/services/snapshots/__init__.py
"""
Snapshot package: storage, recompute orchestration and scheduled captures.

Architecture:
    snapshots/
    ├── store.py         # SnapshotStore: raw captures + daily mean
    ├── orchestrator.py  # RecomputeOrchestrator: forward replay, job slot
    └── scheduler.py     # SnapshotScheduler: market open/close captures
"""

from portfolio_tracker.services.snapshots.orchestrator import (
    JobState,
    OrchestratorStatus,
    RecomputeJob,
    RecomputeOrchestrator,
    RecomputeProgress,
    RecomputeReport,
)
from portfolio_tracker.services.snapshots.scheduler import SnapshotScheduler
from portfolio_tracker.services.snapshots.store import SnapshotStore

__all__ = [
    "SnapshotStore",
    "RecomputeOrchestrator",
    "RecomputeJob",
    "RecomputeProgress",
    "RecomputeReport",
    "OrchestratorStatus",
    "JobState",
    "SnapshotScheduler",
]
