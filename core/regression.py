"""
Regression models trained with synchronous data-parallel gradient descent.

Regression drives the round loop: it counts the global training set, hands
each round to an optimizer, and optionally reports the training error or
stops early on a held-out set. LinearRegression and LogisticRegression plug
concrete strategies into it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Type

from communication.aggregator import Aggregator
from core.dataset import LabeledExample, LocalPartition
from core.errors import ConfigurationError, EmptyDatasetError, UnsupportedOperationError
from core.model import Model
from core.optimizer import SGD, GradientDescentOptimizer, Regularization
from core.parameters import ParameterVector
from core.strategies import (
    ErrorStrategy,
    LinearPredictor,
    LogisticGradient,
    LogisticLoss,
    MisclassificationError,
    SignPredictor,
    SquaredError,
    SquaredErrorGradient,
)


logger = logging.getLogger(__name__)


@dataclass
class TrainingHistory:
    """
    What happened during one training call.

    Attributes:
        rounds_completed: Number of rounds whose updates were applied
        training_errors: Per-round training error/loss (only when reported)
        held_out_errors: Per-round held-out error (early-stopping training only)
        stopped_early: Whether the early-stopping rule ended training
        elapsed: Wall-clock seconds spent in the round loop
    """

    rounds_completed: int = 0
    training_errors: List[float] = field(default_factory=list)
    held_out_errors: List[float] = field(default_factory=list)
    stopped_early: bool = False
    elapsed: float = 0.0

    def to_dict(self) -> dict:
        return {
            'rounds_completed': self.rounds_completed,
            'training_errors': list(self.training_errors),
            'held_out_errors': list(self.held_out_errors),
            'stopped_early': self.stopped_early,
            'elapsed': self.elapsed,
        }


class Regression(Model):
    """
    Base class for regression-style models.

    Subclasses (or callers) assign the strategies; train() and
    train_with_early_stop() must be called by every worker of the job.
    """

    # Name used when logging the per-round statistic
    report_name = "error"

    def __init__(self, num_params: Optional[int] = None, params: Optional[ParameterVector] = None, **strategies):
        super().__init__(num_params, params=params, **strategies)
        self.regularization: Optional[Regularization] = None
        self.learning_rate_schedule = "constant"

    def set_regularization(self, norm: int, strength: float):
        """Decay parameters every round (applied by the coordinator only)."""
        self.regularization = Regularization(norm, strength)

    @property
    def report_strategy(self) -> ErrorStrategy:
        """Per-example statistic reported after every round."""
        return self.error_strategy

    def _check_ready(self):
        if self.num_params <= 0:
            raise ConfigurationError("The number of parameters is 0.")
        if self.gradient_strategy is None:
            raise ConfigurationError("Gradient function is not specified.")
        if self.error_strategy is None:
            raise ConfigurationError("Error function is not specified.")

    def _count_samples(self, data: LocalPartition) -> int:
        num_samples_agg = Aggregator(data.context.collectives, 0.0)
        num_samples_agg.contribute(data.local_size)
        num_samples = int(num_samples_agg.barrier_and_sum())

        if num_samples == 0:
            raise EmptyDatasetError("Cannot train on an empty dataset.")

        if data.context.is_coordinator:
            logger.info(f"Training set size = {num_samples}")
        return num_samples

    def _make_optimizer(
        self,
        learning_rate: float,
        optimizer_cls: Type[GradientDescentOptimizer],
    ) -> GradientDescentOptimizer:
        optimizer = optimizer_cls(
            self.gradient_strategy, learning_rate, schedule=self.learning_rate_schedule
        )
        if self.regularization is not None:
            if not hasattr(optimizer, "set_regularization"):
                raise UnsupportedOperationError(
                    f"{optimizer_cls.__name__} does not support regularization."
                )
            optimizer.set_regularization(self.regularization.norm, self.regularization.strength)
        return optimizer

    def _report_round(self, data: LocalPartition, num_samples: int) -> float:
        """
        Mean report statistic over the training set.

        Computed from the parameters already updated in this round.
        """
        strategy = self.report_strategy
        stat_agg = Aggregator(data.context.collectives, 0.0)
        weights = self.params.snapshot()

        def accumulate(example: LabeledExample):
            stat_agg.contribute(strategy(example, weights))

        data.for_each_local(accumulate)
        return stat_agg.barrier_and_sum() / num_samples

    def train(
        self,
        data: LocalPartition,
        iterations: int,
        learning_rate: float,
        optimizer_cls: Type[GradientDescentOptimizer] = SGD,
    ) -> TrainingHistory:
        """
        Run exactly `iterations` rounds.

        Args:
            data: This worker's training partition
            iterations: Number of rounds
            learning_rate: Base step size
            optimizer_cls: Gradient-descent variant

        Returns:
            TrainingHistory (identical on every worker)
        """
        self._check_ready()
        context = data.context

        num_samples = self._count_samples(data)
        optimizer = self._make_optimizer(learning_rate, optimizer_cls)
        history = TrainingHistory()

        start_time = time.time()
        for round_index in range(iterations):
            optimizer.update_params(data, self.params, num_samples, round_index)
            history.rounds_completed += 1

            if self.report_per_round:
                value = self._report_round(data, num_samples)
                history.training_errors.append(value)
                if context.is_coordinator:
                    logger.info(f"Iteration {round_index + 1}: {self.report_name} = {value:.6f}")

        history.elapsed = time.time() - start_time
        self.trained = True

        if context.is_coordinator:
            logger.info(f"Training completed: {history.rounds_completed} rounds in {history.elapsed:.3f}s")
        return history

    def train_with_early_stop(
        self,
        data: LocalPartition,
        held_out: LocalPartition,
        iterations: int,
        learning_rate: float,
        optimizer_cls: Type[GradientDescentOptimizer] = SGD,
    ) -> TrainingHistory:
        """
        Train for at most `iterations` rounds, stopping on the held-out error.

        After every round the held-out error is computed. Training stops when
        it is exactly 0, or (from the second round on) when it is strictly
        greater than the previous round's. The round that showed the increase
        keeps its updates.

        Args:
            data: This worker's training partition
            held_out: This worker's held-out partition
            iterations: Maximum number of rounds
            learning_rate: Base step size
            optimizer_cls: Gradient-descent variant

        Returns:
            TrainingHistory (identical on every worker)
        """
        self._check_ready()
        context = data.context

        num_samples = self._count_samples(data)
        optimizer = self._make_optimizer(learning_rate, optimizer_cls)
        history = TrainingHistory()
        past_error = 0.0

        start_time = time.time()
        for round_index in range(iterations):
            optimizer.update_params(data, self.params, num_samples, round_index)
            history.rounds_completed += 1

            current_error = self.average_error(held_out)
            history.held_out_errors.append(current_error)

            if self.report_per_round and context.is_coordinator:
                logger.info(f"The error in iteration {round_index + 1}: {current_error:.6f}")

            # TODO: tolerate a single noisy uptick (patience) before stopping
            if current_error == 0.0 or (round_index != 0 and current_error > past_error):
                if context.is_coordinator:
                    logger.info("Early stopping invoked. Training is completed.")
                history.stopped_early = True
                break
            past_error = current_error

        history.elapsed = time.time() - start_time
        self.trained = True
        return history


class LinearRegression(Regression):
    """Least-squares linear regression; parameters are [w, b]."""

    def __init__(self, num_features: int, params: Optional[ParameterVector] = None):
        super().__init__(
            num_features + 1,
            params=params,
            gradient=SquaredErrorGradient(),
            error=SquaredError(),
            predict=LinearPredictor(),
        )
        self.num_features = num_features


class LogisticRegression(Regression):
    """
    Binary logistic regression for labels in {-1, +1}; parameters are [w, b].

    The error is the misclassification indicator; the per-round report is the
    mean logistic loss after the round's update.
    """

    report_name = "loss"

    def __init__(self, num_features: int, params: Optional[ParameterVector] = None):
        super().__init__(
            num_features + 1,
            params=params,
            gradient=LogisticGradient(),
            error=MisclassificationError(),
            predict=SignPredictor(),
        )
        self.num_features = num_features
        self._logistic_loss = LogisticLoss()

    @property
    def report_strategy(self) -> ErrorStrategy:
        return self._logistic_loss
