"""
Collective Communication Operations for Lockstep Training

Implements the barrier and all-reduce primitives that separate training
rounds. This in-process version runs each worker on its own thread and
exchanges values through shared slots guarded by barriers, the way an
MPI or Gloo backend would between processes.
"""

import logging
import threading
import time
from typing import Dict, List, Optional

import torch


logger = logging.getLogger(__name__)

_REDUCE_OPS = {
    "sum": torch.add,
    "mean": torch.add,
    "max": torch.maximum,
    "min": torch.minimum,
}


class CollectiveOps:
    """
    Collective operations as seen by a single worker.

    Every worker must call the same sequence of collectives; each call blocks
    until all workers have reached it.
    """

    def __init__(self,
                 rank: int,
                 world_size: int,
                 latency_ms: float = 0.0):
        """
        Args:
            rank: This worker's rank (0 to world_size-1)
            world_size: Total number of workers
            latency_ms: Simulated delay per collective, in milliseconds
        """
        if not 0 <= rank < world_size:
            raise ValueError(f"Rank {rank} out of range for world_size {world_size}")

        self.rank = rank
        self.world_size = world_size
        self.latency_ms = latency_ms

        # Shared slots and barriers (set by coordinator)
        self.shared_slots: Optional[List[Optional[torch.Tensor]]] = None
        self.barriers: Optional[Dict[str, threading.Barrier]] = None

    def _simulate_latency(self):
        """Simulate network latency"""
        if self.latency_ms > 0:
            time.sleep(self.latency_ms / 1000.0)

    def _require_storage(self):
        if self.shared_slots is None or self.barriers is None:
            raise RuntimeError("Shared storage not initialized. Use set_shared_storage().")

    def barrier(self, name: str = "sync"):
        """
        Block until every worker has called barrier() with the same name.

        Args:
            name: Barrier name ('sync', 'snapshot', 'round')
        """
        self._require_storage()

        if name not in self.barriers:
            raise ValueError(f"Unknown barrier: {name}")

        self._simulate_latency()
        self.barriers[name].wait()

    def all_reduce(self,
                   tensor: torch.Tensor,
                   op: str = "sum") -> torch.Tensor:
        """
        Combine one tensor per worker; every worker receives the combined value.

        Every worker receives an identical result, summed in rank order.

        Args:
            tensor: This worker's contribution
            op: 'sum', 'mean', 'max' or 'min'

        Returns:
            A new tensor shaped like the input
        """
        self._require_storage()

        if op not in _REDUCE_OPS:
            raise ValueError(f"Unknown reduction op: {op}")

        # Latency is paid once per collective
        self._simulate_latency()

        # Publish this worker's slot
        self.shared_slots[self.rank] = tensor.detach().clone()

        # Every slot is filled past this point
        self.barriers['all_reduce_write'].wait()

        # Fold in rank order
        contributions = [self.shared_slots[i] for i in range(self.world_size)]
        result = contributions[0].clone()

        combine = _REDUCE_OPS[op]
        for other in contributions[1:]:
            result = combine(result, other)

        if op == "mean":
            result /= self.world_size

        # No slot may be overwritten before every worker has read it
        self.barriers['all_reduce_read'].wait()

        return result

    def broadcast(self,
                  tensor: torch.Tensor,
                  src: int = 0) -> torch.Tensor:
        """
        Copy the tensor held by rank src to every worker.

        Args:
            tensor: Value to send (ignored on ranks other than src)
            src: Rank whose tensor is sent

        Returns:
            The tensor of rank src
        """
        self._require_storage()

        self._simulate_latency()

        # Only src publishes
        if self.rank == src:
            self.shared_slots[src] = tensor.detach().clone()

        # src's slot is filled past this point
        self.barriers['broadcast_write'].wait()

        result = self.shared_slots[src].clone()

        # Keep the slot alive until every worker has copied it
        self.barriers['broadcast_read'].wait()

        return result

    def set_shared_storage(self, shared_slots: List[Optional[torch.Tensor]],
                           barriers: Dict[str, threading.Barrier]):
        """
        Attach the slots and barriers shared by all workers of the job.

        Args:
            shared_slots: List of slots (one per worker)
            barriers: Named barriers, one party per worker
        """
        self.shared_slots = shared_slots
        self.barriers = barriers


class CollectiveCoordinator:
    """
    Owner of the shared slots and barriers behind every worker's CollectiveOps.
    """

    BARRIER_NAMES = (
        'sync',
        'snapshot',
        'round',
        'all_reduce_write',
        'all_reduce_read',
        'broadcast_write',
        'broadcast_read',
    )

    def __init__(self, world_size: int, timeout: Optional[float] = None):
        """
        Args:
            world_size: Number of workers
            timeout: Seconds a worker may wait at a barrier before it breaks
                (None waits forever)
        """
        if world_size <= 0:
            raise ValueError(f"world_size must be positive, got {world_size}")

        self.world_size = world_size
        self.timeout = timeout

        self.shared_slots: List[Optional[torch.Tensor]] = [None] * world_size
        self.barriers: Dict[str, threading.Barrier] = {}
        self.reset()

    def reset(self):
        """Recreate all barriers and clear the shared slots."""
        for i in range(self.world_size):
            self.shared_slots[i] = None

        # Update in place so CollectiveOps handed out earlier see the new barriers
        self.barriers.clear()
        for name in self.BARRIER_NAMES:
            self.barriers[name] = threading.Barrier(self.world_size, timeout=self.timeout)

    def abort(self):
        """
        Break every barrier.

        Workers blocked in (or later entering) a collective get
        threading.BrokenBarrierError instead of waiting forever.
        """
        logger.warning("Aborting all collective barriers")
        for barrier in self.barriers.values():
            barrier.abort()

    def get_collective_ops(self, rank: int, latency_ms: float = 0.0) -> CollectiveOps:
        """
        Hand out the collective handle of one worker.

        Args:
            rank: Worker rank
            latency_ms: Simulated delay per collective, in milliseconds

        Returns:
            CollectiveOps bound to the shared slots and barriers
        """
        ops = CollectiveOps(rank, self.world_size, latency_ms=latency_ms)
        ops.set_shared_storage(self.shared_slots, self.barriers)
        return ops
