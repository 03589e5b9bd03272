"""
Pluggable model functions.

A model is assembled from three strategies evaluated against a parameter
snapshot `weights` laid out as [w_0 .. w_{n-1}, b] (bias last):

- GradientStrategy: the descent direction for one example, as a SparseVector
  over the whole parameter vector. The optimizer adds it, scaled by the step.
- ErrorStrategy: a per-example error, averaged by Model.average_error().
- PredictStrategy: the predicted label for one example.
"""

import math
from abc import ABC, abstractmethod

import torch

from core.dataset import LabeledExample, SparseVector
from core.errors import ConfigurationError


def check_width(example: LabeledExample, num_params: int):
    """Reject examples with features that would reach the bias slot."""
    if example.num_features > num_params - 1:
        raise ConfigurationError(
            f"Example has {example.num_features} features, "
            f"model has {num_params - 1} weights."
        )


def linear_score(example: LabeledExample, weights: torch.Tensor) -> float:
    """w.x + b with the bias stored in the last parameter."""
    check_width(example, weights.numel())
    return example.dot(weights) + float(weights[-1])


def with_bias(example: LabeledExample, coefficient: float, num_params: int) -> SparseVector:
    """coefficient * (x, 1) as a SparseVector of length num_params."""
    check_width(example, num_params)
    features = example.sparse_features()
    bias_index = num_params - 1
    indices = torch.cat([features.indices, torch.tensor([bias_index], dtype=torch.long)])
    values = torch.cat([
        features.values * coefficient,
        torch.tensor([coefficient], dtype=torch.float64),
    ])
    return SparseVector(indices=indices, values=values, size=num_params)


class GradientStrategy(ABC):
    """Computes the descent direction for one example."""

    @abstractmethod
    def __call__(self, example: LabeledExample, weights: torch.Tensor) -> SparseVector:
        ...


class ErrorStrategy(ABC):
    """Computes the error of one example."""

    @abstractmethod
    def __call__(self, example: LabeledExample, weights: torch.Tensor) -> float:
        ...


class PredictStrategy(ABC):
    """Computes the predicted label of one example."""

    @abstractmethod
    def __call__(self, example: LabeledExample, weights: torch.Tensor) -> float:
        ...


class HingeGradient(GradientStrategy):
    """
    Hinge-loss subgradient.

    With margin = y (w.x + b): inside the margin (margin < 1) the direction is
    (y x, y); on or beyond it the zero vector.
    """

    def __call__(self, example, weights):
        y = example.label
        margin = y * linear_score(example, weights)
        if margin < 1:
            return with_bias(example, y, weights.numel())
        return SparseVector.zeros(weights.numel())


class SquaredErrorGradient(GradientStrategy):
    """Least-squares direction (y - s)(x, 1) with s = w.x + b."""

    def __call__(self, example, weights):
        residual = example.label - linear_score(example, weights)
        if residual == 0:
            return SparseVector.zeros(weights.numel())
        return with_bias(example, residual, weights.numel())


class LogisticGradient(GradientStrategy):
    """Logistic-loss direction y * sigmoid(-y s) * (x, 1) for labels in {-1, +1}."""

    def __call__(self, example, weights):
        y = example.label
        coefficient = y * _sigmoid(-y * linear_score(example, weights))
        return with_bias(example, coefficient, weights.numel())


class MisclassificationError(ErrorStrategy):
    """1 if y (w.x + b) <= 0, else 0. A score of exactly zero counts as an error."""

    def __call__(self, example, weights):
        if example.label * linear_score(example, weights) <= 0:
            return 1.0
        return 0.0


class SquaredError(ErrorStrategy):
    def __call__(self, example, weights):
        residual = example.label - linear_score(example, weights)
        return residual * residual


class HingeLoss(ErrorStrategy):
    """max(0, 1 - y (w.x + b))"""

    def __call__(self, example, weights):
        return max(0.0, 1.0 - example.label * linear_score(example, weights))


class LogisticLoss(ErrorStrategy):
    """log(1 + exp(-y (w.x + b)))"""

    def __call__(self, example, weights):
        z = -example.label * linear_score(example, weights)
        # log1p(exp(z)) without overflow for large z
        if z > 0:
            return z + math.log1p(math.exp(-z))
        return math.log1p(math.exp(z))


class SignPredictor(PredictStrategy):
    """+1 if w.x + b >= 0, else -1."""

    def __call__(self, example, weights):
        return 1.0 if linear_score(example, weights) >= 0 else -1.0


class LinearPredictor(PredictStrategy):
    def __call__(self, example, weights):
        return linear_score(example, weights)


def _sigmoid(z: float) -> float:
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    e = math.exp(z)
    return e / (1.0 + e)
