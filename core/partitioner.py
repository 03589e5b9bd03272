"""
Data Partitioner for data-parallel training

This module splits a training set into disjoint partitions, one per worker.
Each worker holds its partition for the whole job and only ever iterates
its own examples.
"""

import logging
from typing import List, Sequence, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

SHARDING_STRATEGIES = ("contiguous", "interleaved")


class DataPartition:
    """Represents the examples held by a single worker"""

    def __init__(self, rank: int, world_size: int, indices: List[int]):
        """
        Args:
            rank: Worker rank (0 to world_size-1)
            world_size: Total number of workers
            indices: Global example indices held by this worker
        """
        self.rank = rank
        self.world_size = world_size
        self.indices = indices
        self.num_examples = len(indices)

    def __repr__(self):
        return (f"DataPartition(rank={self.rank}, "
                f"size={self.num_examples})")


class DataPartitioner:
    """
    Partitions example indices across workers.

    Strategies:
    - contiguous: worker r holds one consecutive block; the first
      num_examples % world_size workers hold one extra example
    - interleaved: worker r holds every world_size-th example starting at r
    """

    def __init__(self, num_examples: int, world_size: int, strategy: str = "contiguous"):
        """
        Args:
            num_examples: Size of the global training set
            world_size: Number of workers to partition across
            strategy: 'contiguous' or 'interleaved'
        """
        if world_size <= 0:
            raise ValueError(f"world_size must be positive, got {world_size}")
        if num_examples < 0:
            raise ValueError(f"num_examples must be non-negative, got {num_examples}")
        if strategy not in SHARDING_STRATEGIES:
            raise ValueError(
                f"Unknown sharding strategy '{strategy}'. Choose from: {list(SHARDING_STRATEGIES)}"
            )

        self.num_examples = num_examples
        self.world_size = world_size
        self.strategy = strategy
        self.partitions: List[DataPartition] = []

        self._create_partitions()

    def _create_partitions(self):
        if self.strategy == "interleaved":
            for rank in range(self.world_size):
                indices = list(range(rank, self.num_examples, self.world_size))
                self.partitions.append(DataPartition(rank, self.world_size, indices))
            return

        chunk_size = self.num_examples // self.world_size
        remainder = self.num_examples % self.world_size

        for rank in range(self.world_size):
            # Handle uneven division
            if rank < remainder:
                start = rank * (chunk_size + 1)
                end = start + chunk_size + 1
            else:
                start = rank * chunk_size + remainder
                end = start + chunk_size
            self.partitions.append(DataPartition(rank, self.world_size, list(range(start, end))))

    def get_partition(self, rank: int) -> DataPartition:
        """Get the partition for a specific worker rank"""
        if rank < 0 or rank >= len(self.partitions):
            raise ValueError(f"Rank {rank} out of range (max: {len(self.partitions)-1})")
        return self.partitions[rank]

    def shard(self, examples: Sequence[T], rank: int) -> List[T]:
        """
        Select the examples held by a worker.

        Args:
            examples: The global example list
            rank: Worker rank

        Returns:
            The worker's examples, in global order
        """
        if len(examples) != self.num_examples:
            raise ValueError(
                f"Partitioner built for {self.num_examples} examples, got {len(examples)}"
            )
        return [examples[i] for i in self.get_partition(rank).indices]

    def log_partition_info(self):
        """Log a summary of the partitioning"""
        logger.info(
            f"Partitioned {self.num_examples} examples across {self.world_size} workers "
            f"({self.strategy})"
        )
        for partition in self.partitions:
            share = partition.num_examples / self.num_examples * 100 if self.num_examples else 0.0
            logger.debug(f"  Rank {partition.rank}: {partition.num_examples} examples ({share:.1f}%)")
