"""
Tests for the shared parameter vector
"""

import itertools
import logging
import threading

import pytest
import torch

from core.errors import ConfigurationError
from core.parameters import ParameterVector


class TestParameterVectorBasics:
    """Test construction, reads and bounds checks"""

    def test_initial_fill(self):
        """Test that every parameter starts at the fill value"""
        params = ParameterVector(4, fill=1.5)

        assert params.num_params == 4
        assert params.param_count() == 4
        assert len(params) == 4
        assert all(params.get(i) == 1.5 for i in range(4))

    def test_default_fill_is_zero(self):
        params = ParameterVector(3)
        assert torch.equal(params.snapshot(), torch.zeros(3, dtype=torch.float64))

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_size_rejected(self, size):
        """Test that a zero or negative parameter count is a configuration error"""
        with pytest.raises(ConfigurationError):
            ParameterVector(size)

    def test_get_out_of_range(self):
        """Test that reading past the end raises IndexError"""
        params = ParameterVector(3)

        with pytest.raises(IndexError):
            params.get(3)
        with pytest.raises(IndexError):
            params.get(-1)

    def test_update_out_of_range(self):
        params = ParameterVector(3)

        with pytest.raises(IndexError):
            params.update(5, 1.0)
        with pytest.raises(IndexError):
            params.update_many([0, 3], [1.0, 1.0])


class TestParameterVectorUpdates:
    """Test add-delta semantics"""

    def test_update_adds_delta(self):
        params = ParameterVector(3, fill=1.0)
        params.update(1, 0.5)
        params.update(1, -2.0)

        assert params.get(0) == 1.0
        assert params.get(1) == -0.5

    def test_update_many_accumulates_repeated_indices(self):
        """Test that a batch with repeated indices adds every delta"""
        params = ParameterVector(3)
        params.update_many([0, 2, 0], [1.0, 2.0, 3.0])

        assert torch.equal(params.snapshot(), torch.tensor([4.0, 0.0, 2.0], dtype=torch.float64))

    def test_update_many_length_mismatch(self):
        params = ParameterVector(3)
        with pytest.raises(ValueError):
            params.update_many([0, 1], [1.0])

    def test_update_many_empty_is_noop(self):
        params = ParameterVector(2, fill=3.0)
        params.update_many(torch.empty(0, dtype=torch.long), torch.empty(0))
        assert params.get(0) == 3.0

    def test_order_independence(self):
        """Test that any ordering of updates yields the sum of all deltas"""
        updates = [(0, 0.5), (1, -1.25), (0, 2.0), (2, 0.75), (1, 4.0)]
        expected = None

        for ordering in itertools.permutations(updates):
            params = ParameterVector(3)
            for index, delta in ordering:
                params.update(index, delta)

            result = params.snapshot()
            if expected is None:
                expected = result
            assert torch.equal(result, expected)

        assert torch.equal(expected, torch.tensor([2.5, 2.75, 0.75], dtype=torch.float64))

    def test_concurrent_updates_not_lost(self):
        """Test that concurrent updates from many threads are all applied exactly once"""
        params = ParameterVector(2)
        num_threads = 8
        updates_per_thread = 500

        def worker():
            for _ in range(updates_per_thread):
                params.update(0, 1.0)
                params.update_many([1, 1], [0.5, 0.5])

        threads = [threading.Thread(target=worker) for _ in range(num_threads)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert params.get(0) == num_threads * updates_per_thread
        assert params.get(1) == num_threads * updates_per_thread


class TestSnapshot:
    """Test whole-vector snapshots"""

    def test_snapshot_is_isolated(self):
        """Test that later updates do not show through an earlier snapshot"""
        params = ParameterVector(3)
        snapshot = params.snapshot()

        params.update(0, 1.0)

        assert snapshot[0].item() == 0.0
        assert params.snapshot()[0].item() == 1.0

    def test_modifying_snapshot_leaves_store_untouched(self):
        params = ParameterVector(2)
        snapshot = params.snapshot()
        snapshot += 10.0

        assert params.get(0) == 0.0

    def test_present_logs_each_parameter(self, caplog):
        params = ParameterVector(3, fill=0.25)

        with caplog.at_level(logging.INFO, logger="core.parameters"):
            params.present()

        messages = [record.getMessage() for record in caplog.records]
        assert any("param[2]" in message for message in messages)
