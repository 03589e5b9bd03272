"""
Base class for distributed linear models.

A Model holds the parameter store shared by all workers of a job plus the
strategies that define the model: how to compute a gradient, an error and a
prediction for one example. Every operation works on a LocalPartition; the
cross-worker parts go through the partition's collective handle.
"""

import logging
from typing import Optional

from communication.aggregator import Aggregator
from core.dataset import LabeledExample, LocalPartition
from core.errors import ConfigurationError, EmptyDatasetError
from core.parameters import ParameterVector
from core.strategies import ErrorStrategy, GradientStrategy, PredictStrategy


logger = logging.getLogger(__name__)


class Model:
    """
    Pluggable-strategy container around a shared ParameterVector.

    Each worker builds its own Model, but when `params` is passed, all of
    them reference the same store for the lifetime of the job.
    """

    def __init__(
        self,
        num_params: Optional[int] = None,
        gradient: Optional[GradientStrategy] = None,
        error: Optional[ErrorStrategy] = None,
        predict: Optional[PredictStrategy] = None,
        params: Optional[ParameterVector] = None,
    ):
        """
        Args:
            num_params: Number of parameters to allocate (ignored if params is given)
            gradient: Gradient strategy
            error: Error strategy
            predict: Predict strategy
            params: Existing (shared) parameter store
        """
        self.gradient_strategy = gradient
        self.error_strategy = error
        self.predict_strategy = predict

        self.params: Optional[ParameterVector] = None
        if params is not None:
            if num_params is not None and params.num_params != num_params:
                raise ConfigurationError(
                    f"Shared parameter store has {params.num_params} parameters, "
                    f"model needs {num_params}."
                )
            self.params = params
        elif num_params is not None:
            self.set_num_params(num_params)

        self.trained = False
        self.report_per_round = False

    def set_num_params(self, num_params: int):
        """Allocate a fresh, zero-filled parameter store."""
        if num_params <= 0:
            raise ConfigurationError(
                f"The number of parameters must be positive, got {num_params}."
            )
        self.params = ParameterVector(num_params, 0.0)

    @property
    def num_params(self) -> int:
        if self.params is None:
            return 0
        return self.params.num_params

    def set_gradient_strategy(self, strategy: GradientStrategy):
        self.gradient_strategy = strategy

    def set_error_strategy(self, strategy: ErrorStrategy):
        self.error_strategy = strategy

    def set_predict_strategy(self, strategy: PredictStrategy):
        self.predict_strategy = strategy

    def _require_params(self):
        if self.params is None:
            raise ConfigurationError("The number of parameters is 0.")

    def predict(self, data: LocalPartition):
        """
        Overwrite the label of every local record with the model's prediction.

        Parameters are not modified.
        """
        if self.predict_strategy is None:
            raise ConfigurationError("Predict function is not specified.")
        self._require_params()

        weights = self.params.snapshot()

        def assign(example: LabeledExample):
            example.label = self.predict_strategy(example, weights)

        data.for_each_local(assign)

    def average_error(self, data: LocalPartition) -> float:
        """
        Mean error over the global dataset.

        All workers evaluate against their snapshot of the same parameters,
        so every worker receives the identical result.

        Raises:
            ConfigurationError: If no error strategy is set
            EmptyDatasetError: If no worker holds any example
        """
        if self.error_strategy is None:
            raise ConfigurationError("Error function is not specified.")
        self._require_params()

        collectives = data.context.collectives
        error_agg = Aggregator(collectives, 0.0)
        num_samples_agg = Aggregator(collectives, 0.0)
        weights = self.params.snapshot()

        def accumulate(example: LabeledExample):
            error_agg.contribute(self.error_strategy(example, weights))
            num_samples_agg.contribute(1)

        data.for_each_local(accumulate)

        global_error = error_agg.barrier_and_sum()
        num_samples = int(num_samples_agg.barrier_and_sum())

        if num_samples == 0:
            raise EmptyDatasetError("Cannot average the error over an empty dataset.")

        return global_error / num_samples

    def present_params(self):
        """Log the parameters once the model is trained."""
        if self.trained:
            self.params.present()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(num_params={self.num_params}, "
            f"trained={self.trained})"
        )
