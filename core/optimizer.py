"""
Gradient-descent optimizers for data-parallel training.

An optimizer runs one training round per update_params() call. All workers
call it together; the barriers inside keep every worker's snapshot and
updates within the same round.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import torch

from core.dataset import LabeledExample, LocalPartition
from core.errors import ConfigurationError, EmptyDatasetError, UnsupportedOperationError
from core.parameters import ParameterVector
from core.strategies import GradientStrategy


logger = logging.getLogger(__name__)

LEARNING_RATE_SCHEDULES = ("constant", "inverse")


@dataclass
class Regularization:
    """
    Parameter decay applied once per round by a single worker.

    Attributes:
        norm: 1 (L1, w -= rate * strength * sign(w)) or 2 (L2, w -= rate * strength * w)
        strength: Regularization factor lambda
    """

    norm: int
    strength: float

    def __post_init__(self):
        if self.norm not in (1, 2):
            raise UnsupportedOperationError(
                f"Regularization norm {self.norm} is not supported (use 1 or 2)."
            )
        if self.strength < 0:
            raise ConfigurationError(
                f"Regularization strength must be non-negative, got {self.strength}."
            )

    def decay(self, weights: torch.Tensor, rate: float) -> torch.Tensor:
        """The deltas to add to every parameter."""
        if self.norm == 1:
            return -rate * self.strength * torch.sign(weights)
        return -rate * self.strength * weights


class GradientDescentOptimizer(ABC):
    """
    Base class for gradient-descent variants.

    Holds the gradient strategy, learning rate and schedule; variants define
    what one round does.
    """

    def __init__(
        self,
        gradient: Optional[GradientStrategy],
        learning_rate: float,
        schedule: str = "constant",
    ):
        """
        Args:
            gradient: Per-example gradient strategy
            learning_rate: Base step size
            schedule: 'constant' or 'inverse' (learning_rate / (round + 1))
        """
        if schedule not in LEARNING_RATE_SCHEDULES:
            raise ConfigurationError(
                f"Unknown learning rate schedule '{schedule}'. "
                f"Choose from: {list(LEARNING_RATE_SCHEDULES)}"
            )

        self.gradient = gradient
        self.learning_rate = learning_rate
        self.schedule = schedule

    def rate_at(self, round_index: int) -> float:
        """Step size used in the given round."""
        if self.schedule == "inverse":
            return self.learning_rate / (round_index + 1)
        return self.learning_rate

    def _check_ready(self, num_global_samples: int):
        if self.learning_rate == 0:
            raise ConfigurationError("Learning rate is set to 0.")
        if self.gradient is None:
            raise ConfigurationError("Gradient function is not specified.")
        if num_global_samples <= 0:
            raise EmptyDatasetError("Cannot train on an empty dataset.")

    @abstractmethod
    def update_params(
        self,
        data: LocalPartition,
        params: ParameterVector,
        num_global_samples: int,
        round_index: int = 0,
        apply_regularization: Optional[bool] = None,
    ):
        """
        Run one training round.

        Args:
            data: This worker's partition
            params: The shared parameter store
            num_global_samples: Number of examples across all workers
            round_index: Zero-based round number
            apply_regularization: Whether this worker applies the decay step;
                defaults to "this worker is the coordinator"
        """


class SGD(GradientDescentOptimizer):
    """
    Synchronous data-parallel stochastic gradient descent.

    One round:
    1. Snapshot the shared parameters, then wait for every worker to do the same
    2. The designated worker applies regularization decay
    3. Every worker adds rate * g / num_global_samples for each local example
       gradient g, evaluated against its snapshot. Per worker that is the local
       mean gradient weighted by the worker's share of the global set, so the
       summed step does not depend on how the data is partitioned
    4. Wait for every worker to finish its updates
    """

    def __init__(
        self,
        gradient: Optional[GradientStrategy],
        learning_rate: float,
        schedule: str = "constant",
    ):
        super().__init__(gradient, learning_rate, schedule)
        self.regularization: Optional[Regularization] = None

    def set_regularization(self, norm: int, strength: float):
        """
        Enable parameter decay.

        Args:
            norm: 1 or 2
            strength: Regularization factor lambda
        """
        self.regularization = Regularization(norm, strength)

    def update_params(
        self,
        data: LocalPartition,
        params: ParameterVector,
        num_global_samples: int,
        round_index: int = 0,
        apply_regularization: Optional[bool] = None,
    ):
        self._check_ready(num_global_samples)

        context = data.context
        rate = self.rate_at(round_index)

        # 1. Consistent local copy of the parameters
        current = params.snapshot()
        context.collectives.barrier("snapshot")

        # 2. Single-writer decay
        if apply_regularization is None:
            apply_regularization = context.is_coordinator
        if self.regularization is not None and apply_regularization:
            self._regularize(params, current, rate)

        # 3. Local gradients against the snapshot
        num_local_samples = data.local_size
        # local mean (1 / num_local) weighted by the local share (num_local / num_global)
        step = rate / num_global_samples

        def apply_gradient(example: LabeledExample):
            grad = self.gradient(example, current)
            if grad.nnz == 0:
                return
            params.update_many(grad.indices, grad.values * step)

        data.for_each_local(apply_gradient)

        # 4. Round boundary
        context.collectives.barrier("round")

        logger.debug(
            f"Rank {context.rank}: round {round_index + 1} applied "
            f"{num_local_samples}/{num_global_samples} examples (rate={rate})"
        )

    def _regularize(self, params: ParameterVector, current: torch.Tensor, rate: float):
        deltas = self.regularization.decay(current, rate)
        params.update_many(torch.arange(current.numel()), deltas)
