"""
Distributed training driver.

Builds a simulated cluster, shards the data, allocates the parameter store
shared by all workers, and runs the chosen model's training on every worker.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import torch

from core.dataset import LabeledExample, ShardedDataset
from core.errors import ConfigurationError
from core.parameters import ParameterVector
from core.regression import LinearRegression, LogisticRegression, Regression, TrainingHistory
from core.svm import SVM
from sim.cluster import LocalCluster
from worker.config import TrainingConfig
from worker.context import WorkerContext


logger = logging.getLogger(__name__)


@dataclass
class TrainingResult:
    """
    Outcome of a training job.

    Attributes:
        history: Training history (as seen by the coordinator)
        params: Final parameters [w, b]
        test_error: Average error on the test set, if one was given
    """

    history: TrainingHistory
    params: torch.Tensor
    test_error: Optional[float] = None

    @property
    def weights(self) -> torch.Tensor:
        return self.params[:-1]

    @property
    def bias(self) -> float:
        return float(self.params[-1])


class DistributedTrainer:
    """
    Runs one model across a LocalCluster.

    The parameter store lives from fit() until the trainer is discarded;
    evaluate() and predict() reuse it.
    """

    def __init__(self, config: TrainingConfig, cluster: Optional[LocalCluster] = None):
        """
        Args:
            config: Training configuration
            cluster: Optional pre-built cluster (must match config.world_size)
        """
        if cluster is not None and cluster.world_size != config.world_size:
            raise ConfigurationError(
                f"Cluster has {cluster.world_size} workers, config expects {config.world_size}"
            )

        self.config = config
        self.cluster = cluster or LocalCluster(
            world_size=config.world_size,
            coordinator_rank=config.coordinator_rank,
            latency_ms=config.latency_ms,
            barrier_timeout=config.barrier_timeout,
        )
        self.params: Optional[ParameterVector] = None

        logger.info(
            f"Distributed trainer initialized: model={config.model}, "
            f"workers={config.world_size}, features={config.num_features}"
        )

    def build_model(self, params: ParameterVector) -> Regression:
        """
        Create one worker's model around the shared parameter store.

        Args:
            params: Shared parameter store

        Returns:
            Configured model
        """
        config = self.config

        if config.model == "svm":
            model = SVM(config.num_features, params=params)
        elif config.model == "linear":
            model = LinearRegression(config.num_features, params=params)
        else:
            model = LogisticRegression(config.num_features, params=params)

        if config.regularization_strength > 0:
            model.set_regularization(config.regularization_norm, config.regularization_strength)
        model.learning_rate_schedule = config.learning_rate_schedule
        model.report_per_round = config.report_per_round
        return model

    def _shard(self, examples: Sequence[LabeledExample]) -> ShardedDataset:
        return ShardedDataset(examples, self.config.world_size, self.config.sharding_strategy)

    def fit(
        self,
        train_examples: Sequence[LabeledExample],
        held_out: Optional[Sequence[LabeledExample]] = None,
        test_examples: Optional[Sequence[LabeledExample]] = None,
    ) -> TrainingResult:
        """
        Train on the given examples.

        Args:
            train_examples: Global training set (sharded across workers)
            held_out: Held-out set for early stopping
            test_examples: Optional test set evaluated after training

        Returns:
            TrainingResult
        """
        config = self.config
        if config.early_stopping and held_out is None:
            raise ConfigurationError("Early stopping requires a held-out set.")

        train_set = self._shard(train_examples)
        held_out_set = self._shard(held_out) if held_out is not None else None
        test_set = self._shard(test_examples) if test_examples is not None else None

        train_set.partitioner.log_partition_info()

        params = ParameterVector(config.num_features + 1)

        def task(context: WorkerContext):
            model = self.build_model(params)
            data = train_set.local(context)

            if config.early_stopping:
                history = model.train_with_early_stop(
                    data, held_out_set.local(context), config.iterations, config.learning_rate
                )
            else:
                history = model.train(data, config.iterations, config.learning_rate)

            if context.is_coordinator:
                model.present_params()

            test_error = None
            if test_set is not None:
                test_error = model.average_error(test_set.local(context))
                if context.is_coordinator:
                    logger.info(f"The error rate on testing set = {test_error:.6f}")
            return history, test_error

        results = self.cluster.run(task)
        history, test_error = results[config.coordinator_rank]
        self.params = params

        return TrainingResult(history=history, params=params.snapshot(), test_error=test_error)

    def _require_trained(self):
        if self.params is None:
            raise RuntimeError("Trainer not fitted. Call fit() first.")

    def evaluate(self, examples: Sequence[LabeledExample]) -> float:
        """
        Average error of the trained parameters on a new set.

        Args:
            examples: Global evaluation set

        Returns:
            Mean error across all workers
        """
        self._require_trained()
        dataset = self._shard(examples)

        def task(context: WorkerContext) -> float:
            return self.build_model(self.params).average_error(dataset.local(context))

        return self.cluster.run(task)[self.config.coordinator_rank]

    def predict(self, examples: Sequence[LabeledExample]) -> List[float]:
        """
        Predict labels for a new set.

        The given examples are not modified.

        Returns:
            Predicted labels, in the order of examples
        """
        self._require_trained()
        copies = [LabeledExample(example.features, example.label) for example in examples]
        dataset = self._shard(copies)

        def task(context: WorkerContext):
            self.build_model(self.params).predict(dataset.local(context))

        self.cluster.run(task)
        return [example.label for example in copies]
