"""
Tests for the local cluster simulation
"""

import pytest

from sim.cluster import LocalCluster


class TestLocalCluster:
    """Test SPMD execution across worker threads"""

    def test_results_in_rank_order(self):
        cluster = LocalCluster(world_size=4)
        assert cluster.run(lambda context: context.rank * 2) == [0, 2, 4, 6]

    def test_contexts(self):
        """Test that every worker sees the right identity"""
        cluster = LocalCluster(world_size=3, coordinator_rank=1)

        results = cluster.run(lambda context: (context.rank, context.world_size, context.is_coordinator))

        assert results == [(0, 3, False), (1, 3, True), (2, 3, False)]

    def test_worker_failure_propagates(self):
        """Test that one failing worker fails the job instead of hanging the others"""
        cluster = LocalCluster(world_size=4)

        def task(context):
            if context.rank == 1:
                raise KeyError("boom")
            context.collectives.barrier("sync")
            return context.rank

        with pytest.raises(KeyError):
            cluster.run(task)

        assert cluster.get_stats()['jobs_failed'] == 1

    def test_base_exception_aborts_barriers(self):
        """Test that a worker exiting with SystemExit still releases the others"""
        cluster = LocalCluster(world_size=3)

        def task(context):
            if context.rank == 2:
                raise SystemExit(3)
            context.collectives.barrier("sync")

        with pytest.raises(SystemExit):
            cluster.run(task)

    def test_reusable_after_failure(self):
        cluster = LocalCluster(world_size=2)

        def failing(context):
            if context.rank == 0:
                raise RuntimeError("fail")
            context.collectives.barrier("sync")

        with pytest.raises(RuntimeError):
            cluster.run(failing)

        def ok(context):
            context.collectives.barrier("sync")
            return "done"

        assert cluster.run(ok) == ["done", "done"]
        assert cluster.get_stats()['jobs_run'] == 2

    def test_invalid_world_size(self):
        with pytest.raises(ValueError):
            LocalCluster(world_size=0)

    def test_invalid_coordinator_rank(self):
        with pytest.raises(ValueError):
            LocalCluster(world_size=2, coordinator_rank=2)
