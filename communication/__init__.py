"""
Communication module for Lockstep training.

Provides the collective operations workers use to stay in lockstep:
- Barrier: Wait until every worker reaches the same point
- All-reduce: Combine per-worker values into one global value
- Aggregator: Per-statistic sum handle built on all-reduce
"""

from communication.collectives import CollectiveCoordinator, CollectiveOps
from communication.aggregator import Aggregator

__version__ = "0.1.0"

__all__ = [
    "CollectiveCoordinator",
    "CollectiveOps",
    "Aggregator",
]
