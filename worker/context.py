"""
Per-worker execution context.

Carries a worker's identity within the job (rank, world size), its handle on
the collective operations, and which rank is the designated single writer
for coordinator-only steps such as regularization decay.
"""

from dataclasses import dataclass

from communication.collectives import CollectiveCoordinator, CollectiveOps


@dataclass
class WorkerContext:
    """
    Identity and communication handle of one worker.

    Attributes:
        rank: Worker rank (0 to world_size-1)
        world_size: Total number of workers
        collectives: This worker's collective operations
        coordinator_rank: Rank of the designated single-writer worker
    """

    rank: int
    world_size: int
    collectives: CollectiveOps
    coordinator_rank: int = 0

    def __post_init__(self):
        if not 0 <= self.coordinator_rank < self.world_size:
            raise ValueError(
                f"Coordinator rank {self.coordinator_rank} out of range "
                f"for world_size {self.world_size}"
            )

    @property
    def is_coordinator(self) -> bool:
        """Whether this worker performs coordinator-only steps."""
        return self.rank == self.coordinator_rank

    @classmethod
    def local(cls) -> 'WorkerContext':
        """Context for a single worker running without peers."""
        coordinator = CollectiveCoordinator(world_size=1)
        return cls(rank=0, world_size=1, collectives=coordinator.get_collective_ops(0))

    def __repr__(self) -> str:
        return (
            f"WorkerContext(rank={self.rank}, world_size={self.world_size}, "
            f"coordinator={self.is_coordinator})"
        )
