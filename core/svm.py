"""
Linear support vector machine.

Parameters are laid out as [w_0 .. w_{n-1}, b]. Training minimizes the hinge
loss with data-parallel SGD, optionally with L2 decay applied once per round
by the coordinator.
"""

from typing import Optional

from core.errors import ConfigurationError
from core.parameters import ParameterVector
from core.regression import Regression
from core.strategies import HingeGradient, HingeLoss, MisclassificationError, SignPredictor


class SVM(Regression):
    """
    Binary linear SVM for labels in {-1, +1}.

    The error is the misclassification indicator; the per-round report is the
    mean hinge loss after the round's update.
    """

    report_name = "loss"

    def __init__(
        self,
        num_features: int,
        regularization: float = 0.0,
        params: Optional[ParameterVector] = None,
    ):
        """
        Args:
            num_features: Number of features (the model has num_features + 1 parameters)
            regularization: L2 factor lambda (0 disables decay)
            params: Shared parameter store
        """
        super().__init__(
            num_features + 1,
            params=params,
            gradient=HingeGradient(),
            error=MisclassificationError(),
            predict=SignPredictor(),
        )
        self.num_features = num_features
        self._hinge_loss = HingeLoss()
        self.set_regularization_factor(regularization)

    def set_regularization_factor(self, strength: float):
        """Set lambda for L2 decay; 0 disables it."""
        if strength < 0:
            raise ConfigurationError(f"Regularization factor must be non-negative, got {strength}.")
        if strength > 0:
            self.set_regularization(2, strength)
        else:
            self.regularization = None
        self.regularization_factor = strength

    @property
    def report_strategy(self):
        return self._hinge_loss

    @property
    def weights(self):
        """Current weight block w (without the bias)."""
        return self.params.snapshot()[:self.num_features]

    @property
    def bias(self) -> float:
        return self.params.get(self.num_features)
