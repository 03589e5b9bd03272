"""
Local Cluster Simulation

Runs a data-parallel job on a single machine: one thread per worker, each
with its own WorkerContext, all sharing one CollectiveCoordinator. In a real
deployment the workers would be separate processes or hosts.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, TypeVar

from communication.collectives import CollectiveCoordinator
from worker.context import WorkerContext


logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalCluster:
    """
    Coordinates multiple workers in a simulated distributed environment.

    run() executes the same task on every worker (SPMD). If any worker raises,
    all barriers are aborted so the others stop too, and the first worker's
    exception is re-raised; a job either completes on every worker or fails.
    """

    def __init__(
        self,
        world_size: int,
        coordinator_rank: int = 0,
        latency_ms: float = 0.0,
        barrier_timeout: Optional[float] = None,
    ):
        """
        Args:
            world_size: Number of workers
            coordinator_rank: Rank of the designated single-writer worker
            latency_ms: Simulated network latency per collective
            barrier_timeout: Seconds before a stuck barrier breaks (None waits forever)
        """
        if world_size <= 0:
            raise ValueError(f"world_size must be positive, got {world_size}")
        if not 0 <= coordinator_rank < world_size:
            raise ValueError(
                f"Coordinator rank {coordinator_rank} out of range for world_size {world_size}"
            )

        self.world_size = world_size
        self.coordinator_rank = coordinator_rank
        self.latency_ms = latency_ms
        self.collective_coordinator = CollectiveCoordinator(world_size, timeout=barrier_timeout)

        # Statistics
        self.stats = {
            'jobs_run': 0,
            'jobs_failed': 0,
            'last_job_time': 0.0,
        }

    def context(self, rank: int) -> WorkerContext:
        """Build the context of one worker."""
        return WorkerContext(
            rank=rank,
            world_size=self.world_size,
            collectives=self.collective_coordinator.get_collective_ops(
                rank, latency_ms=self.latency_ms
            ),
            coordinator_rank=self.coordinator_rank,
        )

    def run(self, task: Callable[[WorkerContext], T]) -> List[T]:
        """
        Execute task on every worker and wait for all of them.

        Args:
            task: Function called with each worker's context

        Returns:
            Per-rank results, in rank order

        Raises:
            The first exception raised by any worker
        """
        self.collective_coordinator.reset()

        results: List[Optional[T]] = [None] * self.world_size
        errors: List[Optional[BaseException]] = [None] * self.world_size
        failure_lock = threading.Lock()
        first_failure: List[int] = []

        def worker_main(rank: int):
            try:
                results[rank] = task(self.context(rank))
            except threading.BrokenBarrierError as exc:
                errors[rank] = exc
            except BaseException as exc:
                errors[rank] = exc
                with failure_lock:
                    if not first_failure:
                        first_failure.append(rank)
                        logger.error(f"Worker {rank} failed: {exc!r}")
                        self.collective_coordinator.abort()

        threads = [
            threading.Thread(target=worker_main, args=(rank,), name=f"worker-{rank}", daemon=True)
            for rank in range(self.world_size)
        ]

        start_time = time.time()
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.stats['jobs_run'] += 1
        self.stats['last_job_time'] = time.time() - start_time

        if first_failure:
            self.stats['jobs_failed'] += 1
            raise errors[first_failure[0]]

        # Broken barriers without a root cause (e.g. a barrier timeout)
        for error in errors:
            if error is not None:
                self.stats['jobs_failed'] += 1
                raise error

        return results

    def get_stats(self) -> dict:
        """Get cluster statistics"""
        return dict(self.stats)
