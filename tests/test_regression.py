"""
Tests for the regression round loop and early stopping
"""

import math

import pytest
import torch

from core.dataset import (
    LabeledExample,
    LocalPartition,
    ShardedDataset,
    SparseVector,
    make_classification,
    make_regression,
)
from core.errors import ConfigurationError, EmptyDatasetError, UnsupportedOperationError
from core.optimizer import GradientDescentOptimizer
from core.parameters import ParameterVector
from core.regression import LinearRegression, LogisticRegression, Regression
from core.strategies import ErrorStrategy, GradientStrategy, MisclassificationError
from sim.cluster import LocalCluster


class CountingGradient(GradientStrategy):
    """Zero direction; records how often it was evaluated."""

    def __init__(self):
        self.calls = 0

    def __call__(self, example, weights):
        self.calls += 1
        return SparseVector.zeros(weights.numel())


class ScriptedError(ErrorStrategy):
    """Returns a fixed sequence of errors, one per call."""

    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def __call__(self, example, weights):
        value = self.values[self.calls]
        self.calls += 1
        return value


class PlainGD(GradientDescentOptimizer):
    """Gradient descent variant without regularization support."""

    def update_params(self, data, params, num_global_samples, round_index=0, apply_regularization=None):
        self._check_ready(num_global_samples)
        current = params.snapshot()
        data.context.collectives.barrier("snapshot")
        step = self.rate_at(round_index) / num_global_samples
        for example in data:
            grad = self.gradient(example, current)
            params.update_many(grad.indices, grad.values * step)
        data.context.collectives.barrier("round")


def scripted_model(errors):
    return Regression(2, gradient=CountingGradient(), error=ScriptedError(errors))


def one_example():
    return LocalPartition.local([LabeledExample([1.0], 1)])


class TestEarlyStopping:
    """Test the held-out stopping rule"""

    def test_stops_on_increase(self):
        """Test that the round showing the increase is the last one run"""
        model = scripted_model([0.5, 0.3, 0.4, 0.2, 0.1])

        history = model.train_with_early_stop(one_example(), one_example(), 10, 0.1)

        assert history.rounds_completed == 3
        assert model.gradient_strategy.calls == 3
        assert history.held_out_errors == [0.5, 0.3, 0.4]
        assert history.stopped_early
        assert model.trained

    def test_stops_on_zero_error(self):
        model = scripted_model([0.0, 0.5])

        history = model.train_with_early_stop(one_example(), one_example(), 10, 0.1)

        assert history.rounds_completed == 1
        assert history.stopped_early

    def test_equal_error_keeps_training(self):
        model = scripted_model([0.5, 0.5, 0.5])

        history = model.train_with_early_stop(one_example(), one_example(), 3, 0.1)

        assert history.rounds_completed == 3
        assert not history.stopped_early

    def test_first_round_never_compared(self):
        """Test that a non-zero first error does not stop training"""
        model = scripted_model([0.9, 0.8])

        history = model.train_with_early_stop(one_example(), one_example(), 2, 0.1)

        assert history.rounds_completed == 2
        assert history.held_out_errors == [0.9, 0.8]

    def test_distributed_workers_stop_together(self):
        """Test that every worker stops after the same round"""
        examples = make_classification(40, 3, seed=9, label_noise=0.3)
        train = ShardedDataset(examples[:30], world_size=3)
        held_out = ShardedDataset(examples[30:], world_size=3)
        params = ParameterVector(4)
        cluster = LocalCluster(world_size=3)

        def task(context):
            model = LogisticRegression(3, params=params)
            history = model.train_with_early_stop(
                train.local(context), held_out.local(context), 50, 2.0
            )
            return history.rounds_completed, history.held_out_errors

        results = cluster.run(task)

        assert all(result == results[0] for result in results)
        assert 1 <= results[0][0] <= 50


class TestTrain:
    """Test fixed-length training"""

    def test_runs_every_round(self):
        model = scripted_model([])

        history = model.train(one_example(), 4, 0.1)

        assert history.rounds_completed == 4
        assert model.gradient_strategy.calls == 4
        assert history.training_errors == []
        assert model.trained

    def test_reports_each_round(self):
        model = scripted_model([0.4, 0.3, 0.2])
        model.report_per_round = True

        history = model.train(one_example(), 3, 0.1)

        assert history.training_errors == [0.4, 0.3, 0.2]

    def test_missing_gradient(self):
        model = Regression(2, error=MisclassificationError())
        with pytest.raises(ConfigurationError, match="Gradient function is not specified."):
            model.train(one_example(), 1, 0.1)

    def test_missing_error(self):
        model = Regression(2, gradient=CountingGradient())
        with pytest.raises(ConfigurationError, match="Error function is not specified."):
            model.train(one_example(), 1, 0.1)

    def test_missing_parameters(self):
        model = Regression(gradient=CountingGradient(), error=MisclassificationError())
        with pytest.raises(ConfigurationError, match="The number of parameters is 0."):
            model.train(one_example(), 1, 0.1)

    def test_zero_learning_rate(self):
        model = scripted_model([])
        with pytest.raises(ConfigurationError, match="Learning rate is set to 0."):
            model.train(one_example(), 1, 0.0)

    def test_empty_dataset(self):
        model = scripted_model([])
        with pytest.raises(EmptyDatasetError):
            model.train(LocalPartition.local([]), 1, 0.1)

    def test_custom_optimizer(self):
        model = LinearRegression(1)
        data = LocalPartition.local([LabeledExample([1.0], 2.0)])

        model.train(data, 1, 0.5, optimizer_cls=PlainGD)

        assert torch.allclose(model.params.snapshot(), torch.tensor([1.0, 1.0], dtype=torch.float64))

    def test_regularization_needs_support(self):
        """Test that an optimizer without decay support rejects regularization"""
        model = LinearRegression(1)
        model.set_regularization(2, 0.1)

        with pytest.raises(UnsupportedOperationError):
            model.train(one_example(), 1, 0.1, optimizer_cls=PlainGD)

    def test_inverse_schedule(self):
        model = LinearRegression(1)
        model.learning_rate_schedule = "inverse"
        data = LocalPartition.local([LabeledExample([0.0], 1.0)])

        model.train(data, 2, 1.0)

        # Bias moves by 1.0 * 1 in round one; the residual is then 0
        assert model.params.get(1) == pytest.approx(1.0)


class TestLinearModels:
    """Test that the concrete models learn"""

    def test_linear_regression_fits_noiseless_data(self):
        examples = make_regression(200, 3, seed=0)
        model = LinearRegression(3)
        data = LocalPartition.local(examples)

        model.train(data, 100, 0.5)

        assert model.num_params == 4
        assert model.average_error(data) < 1e-6

    def test_linear_regression_distributed(self):
        """Test that sharded training matches single-worker training"""
        examples = make_regression(30, 2, seed=6)

        single = LinearRegression(2)
        single.train(LocalPartition.local(examples), 5, 0.3)

        params = ParameterVector(3)
        dataset = ShardedDataset(examples, world_size=4)
        LocalCluster(world_size=4).run(
            lambda context: LinearRegression(2, params=params).train(dataset.local(context), 5, 0.3)
        )

        assert torch.allclose(single.params.snapshot(), params.snapshot(), rtol=0, atol=1e-10)

    def test_logistic_regression_separates(self):
        examples = make_classification(200, 3, seed=3)
        model = LogisticRegression(3)
        data = LocalPartition.local(examples)

        model.train(data, 100, 1.0)

        assert model.average_error(data) <= 0.1

    def test_logistic_regression_reports_loss(self):
        """Test that the per-round report is the mean logistic loss"""
        model = LogisticRegression(1)
        model.report_per_round = True
        data = LocalPartition.local([LabeledExample([1.0], 1)])

        history = model.train(data, 1, 1.0)

        # Direction at zero weights is (0.5, 0.5), so the score becomes 1
        assert model.report_name == "loss"
        assert history.training_errors == [pytest.approx(math.log1p(math.exp(-1.0)))]
