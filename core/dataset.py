"""
Dataset utilities for data-parallel training.

Defines labeled examples (dense or sparse features), the per-worker view of a
partitioned training set, and synthetic dataset generators for testing.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

import torch

from core.partitioner import DataPartitioner
from worker.context import WorkerContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SparseVector:
    """
    Sparse float64 vector stored as (indices, values) pairs.

    Attributes:
        indices: 1-D long tensor of non-zero positions
        values: 1-D float64 tensor of the values at those positions
        size: Logical length of the vector
    """

    indices: torch.Tensor
    values: torch.Tensor
    size: int

    def __post_init__(self):
        if self.indices.numel() != self.values.numel():
            raise ValueError(
                f"Got {self.indices.numel()} indices but {self.values.numel()} values"
            )
        if self.indices.numel() > 0 and int(self.indices.min()) < 0:
            raise IndexError(f"Negative index {int(self.indices.min())} in sparse vector")
        if self.indices.numel() > 0 and int(self.indices.max()) >= self.size:
            raise IndexError(
                f"Index {int(self.indices.max())} out of range for size {self.size}"
            )

    @classmethod
    def from_dict(cls, entries: Dict[int, float], size: int) -> 'SparseVector':
        """Build from an {index: value} mapping."""
        keys = sorted(entries)
        return cls(
            indices=torch.tensor(keys, dtype=torch.long),
            values=torch.tensor([entries[k] for k in keys], dtype=torch.float64),
            size=size,
        )

    @classmethod
    def from_dense(cls, tensor: torch.Tensor) -> 'SparseVector':
        """Keep only the non-zero entries of a dense 1-D tensor."""
        tensor = torch.as_tensor(tensor, dtype=torch.float64)
        indices = torch.nonzero(tensor, as_tuple=True)[0]
        return cls(indices=indices, values=tensor[indices], size=tensor.numel())

    @classmethod
    def zeros(cls, size: int) -> 'SparseVector':
        """The zero vector (no stored entries)."""
        return cls(
            indices=torch.empty(0, dtype=torch.long),
            values=torch.empty(0, dtype=torch.float64),
            size=size,
        )

    @property
    def nnz(self) -> int:
        return self.indices.numel()

    def dot(self, weights: torch.Tensor) -> float:
        """Dot product with the leading entries of a dense weight vector."""
        if self.nnz == 0:
            return 0.0
        return float((weights[self.indices] * self.values).sum())

    def scale(self, factor: float) -> 'SparseVector':
        return SparseVector(self.indices, self.values * factor, self.size)

    def items(self) -> Iterator[tuple]:
        """Iterate (index, value) pairs."""
        for index, value in zip(self.indices.tolist(), self.values.tolist()):
            yield index, value

    def to_dense(self) -> torch.Tensor:
        dense = torch.zeros(self.size, dtype=torch.float64)
        dense[self.indices] = self.values
        return dense


Features = Union[torch.Tensor, SparseVector]


@dataclass(eq=False)
class LabeledExample:
    """
    One training record.

    Training never modifies an example; predict() overwrites the label only.

    Attributes:
        features: Dense 1-D tensor or SparseVector
        label: Target value (+1/-1 for classifiers)
    """

    features: Features
    label: float

    def __post_init__(self):
        if isinstance(self.features, dict):
            size = max(self.features) + 1 if self.features else 0
            self.features = SparseVector.from_dict(self.features, size)
        elif not isinstance(self.features, SparseVector):
            self.features = torch.as_tensor(self.features, dtype=torch.float64)
        self.label = float(self.label)

    @property
    def is_sparse(self) -> bool:
        return isinstance(self.features, SparseVector)

    @property
    def num_features(self) -> int:
        if self.is_sparse:
            return self.features.size
        return self.features.numel()

    def dot(self, weights: torch.Tensor) -> float:
        """Dot product of the features with the leading entries of weights."""
        if self.is_sparse:
            return self.features.dot(weights)
        return float(torch.dot(self.features, weights[:self.features.numel()]))

    def sparse_features(self) -> SparseVector:
        if self.is_sparse:
            return self.features
        return SparseVector.from_dense(self.features)


class LocalPartition:
    """
    The examples one worker holds, plus that worker's context.

    This is the only view of the training set a model or optimizer sees.
    """

    def __init__(self, records: List[LabeledExample], context: WorkerContext):
        self.records = records
        self.context = context

    @classmethod
    def local(cls, records: Sequence[LabeledExample]) -> 'LocalPartition':
        """Partition for a single worker running without peers."""
        return cls(list(records), WorkerContext.local())

    @property
    def local_size(self) -> int:
        return len(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[LabeledExample]:
        return iter(self.records)

    def for_each_local(self, fn: Callable[[LabeledExample], None]):
        """Apply fn to every locally held record, in order."""
        for record in self.records:
            fn(record)

    def __repr__(self) -> str:
        return f"LocalPartition(rank={self.context.rank}, size={self.local_size})"


class ShardedDataset:
    """
    A global example list split across workers.

    Workers obtain their own LocalPartition with local(context).
    """

    def __init__(
        self,
        examples: Sequence[LabeledExample],
        world_size: int,
        strategy: str = "contiguous",
    ):
        self.examples = list(examples)
        self.partitioner = DataPartitioner(len(self.examples), world_size, strategy)

    @property
    def world_size(self) -> int:
        return self.partitioner.world_size

    def __len__(self) -> int:
        return len(self.examples)

    def local(self, context: WorkerContext) -> LocalPartition:
        """The partition held by the worker described by context."""
        if context.world_size != self.world_size:
            raise ValueError(
                f"Dataset sharded for {self.world_size} workers, "
                f"context has world_size {context.world_size}"
            )
        return LocalPartition(self.partitioner.shard(self.examples, context.rank), context)


def make_classification(
    num_examples: int,
    num_features: int,
    seed: int = 42,
    sparse: bool = False,
    density: float = 0.3,
    label_noise: float = 0.0,
    true_weights: Optional[torch.Tensor] = None,
) -> List[LabeledExample]:
    """
    Generate a linearly separable (+1/-1) classification set.

    Labels are the sign of w.x + b for a random hyperplane; a fraction
    label_noise of them is flipped.

    Args:
        num_examples: Number of examples
        num_features: Number of features
        seed: Random seed for reproducibility
        sparse: Store features as SparseVector with roughly `density` non-zeros
        density: Fraction of non-zero features when sparse
        label_noise: Fraction of labels to flip
        true_weights: Optional hyperplane (num_features + 1 values, bias last)

    Returns:
        List of labeled examples
    """
    generator = torch.Generator().manual_seed(seed)

    if true_weights is None:
        true_weights = torch.randn(num_features + 1, generator=generator, dtype=torch.float64)

    examples = []
    for _ in range(num_examples):
        x = torch.randn(num_features, generator=generator, dtype=torch.float64)
        if sparse:
            mask = torch.rand(num_features, generator=generator) < density
            x = x * mask

        score = float(torch.dot(x, true_weights[:num_features]) + true_weights[num_features])
        label = 1.0 if score >= 0 else -1.0
        if label_noise > 0 and float(torch.rand(1, generator=generator)) < label_noise:
            label = -label

        features = SparseVector.from_dense(x) if sparse else x
        examples.append(LabeledExample(features, label))

    return examples


def make_regression(
    num_examples: int,
    num_features: int,
    seed: int = 42,
    noise: float = 0.0,
    true_weights: Optional[torch.Tensor] = None,
) -> List[LabeledExample]:
    """
    Generate a linear regression set y = w.x + b + noise.

    Args:
        num_examples: Number of examples
        num_features: Number of features
        seed: Random seed for reproducibility
        noise: Standard deviation of Gaussian label noise
        true_weights: Optional weights (num_features + 1 values, bias last)

    Returns:
        List of labeled examples
    """
    generator = torch.Generator().manual_seed(seed)

    if true_weights is None:
        true_weights = torch.randn(num_features + 1, generator=generator, dtype=torch.float64)

    examples = []
    for _ in range(num_examples):
        x = torch.randn(num_features, generator=generator, dtype=torch.float64)
        y = float(torch.dot(x, true_weights[:num_features]) + true_weights[num_features])
        if noise > 0:
            y += noise * float(torch.randn(1, generator=generator, dtype=torch.float64))
        examples.append(LabeledExample(x, y))

    return examples
