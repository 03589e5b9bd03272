"""
Tests for data partitioning across workers
"""

import pytest

from core.partitioner import DataPartition, DataPartitioner


class TestDataPartition:
    """Test DataPartition"""

    def test_partition_creation(self):
        """Test creating a partition"""
        partition = DataPartition(rank=1, world_size=4, indices=[3, 4, 5])

        assert partition.rank == 1
        assert partition.world_size == 4
        assert partition.num_examples == 3


class TestDataPartitioner:
    """Test DataPartitioner strategies"""

    def test_contiguous_uneven_split(self):
        """Test that the first remainder workers hold one extra example"""
        partitioner = DataPartitioner(num_examples=10, world_size=4)

        sizes = [p.num_examples for p in partitioner.partitions]
        assert sizes == [3, 3, 2, 2]
        assert partitioner.get_partition(1).indices == [3, 4, 5]
        assert partitioner.get_partition(3).indices == [8, 9]

    def test_interleaved(self):
        partitioner = DataPartitioner(num_examples=10, world_size=4, strategy="interleaved")

        assert partitioner.get_partition(0).indices == [0, 4, 8]
        assert partitioner.get_partition(1).indices == [1, 5, 9]
        assert partitioner.get_partition(3).indices == [3, 7]

    @pytest.mark.parametrize("strategy", ["contiguous", "interleaved"])
    @pytest.mark.parametrize("num_examples,world_size", [(10, 4), (3, 5), (0, 2), (16, 1)])
    def test_partitions_cover_all_examples(self, strategy, num_examples, world_size):
        """Test that every example is held by exactly one worker"""
        partitioner = DataPartitioner(num_examples, world_size, strategy)

        held = sorted(i for p in partitioner.partitions for i in p.indices)
        assert held == list(range(num_examples))

    def test_more_workers_than_examples(self):
        """Test that surplus workers hold empty partitions"""
        partitioner = DataPartitioner(num_examples=2, world_size=4)

        sizes = [p.num_examples for p in partitioner.partitions]
        assert sizes == [1, 1, 0, 0]

    def test_shard(self):
        partitioner = DataPartitioner(num_examples=5, world_size=2)
        examples = ["a", "b", "c", "d", "e"]

        assert partitioner.shard(examples, 0) == ["a", "b", "c"]
        assert partitioner.shard(examples, 1) == ["d", "e"]

    def test_shard_size_mismatch(self):
        partitioner = DataPartitioner(num_examples=5, world_size=2)
        with pytest.raises(ValueError):
            partitioner.shard(["a", "b"], 0)

    def test_get_partition_invalid_rank(self):
        """Test that invalid ranks raise errors"""
        partitioner = DataPartitioner(num_examples=10, world_size=4)

        with pytest.raises(ValueError):
            partitioner.get_partition(4)
        with pytest.raises(ValueError):
            partitioner.get_partition(-1)

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            DataPartitioner(num_examples=10, world_size=0)
        with pytest.raises(ValueError):
            DataPartitioner(num_examples=-1, world_size=2)
        with pytest.raises(ValueError):
            DataPartitioner(num_examples=10, world_size=2, strategy="random")
