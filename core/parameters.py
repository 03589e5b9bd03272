"""
Shared parameter storage.

A ParameterVector is the single mutable resource shared by every worker of a
training job. Workers only ever add deltas to it, so the final value of each
index is independent of the order in which updates arrive. Reads go through
snapshot(), which hands back a private copy.
"""

import logging
import threading
from typing import Sequence, Union

import torch

from core.errors import ConfigurationError


logger = logging.getLogger(__name__)


class ParameterVector:
    """
    Dense float64 parameter vector with atomic add-delta updates.

    All mutation goes through update() / update_many(), which hold a lock for
    the duration of the add. There is no whole-vector assignment.
    """

    def __init__(self, num_params: int, fill: float = 0.0, dtype: torch.dtype = torch.float64):
        """
        Args:
            num_params: Number of parameters (fixed for the lifetime of the vector)
            fill: Initial value of every parameter
            dtype: Storage dtype
        """
        if num_params <= 0:
            raise ConfigurationError(
                f"The number of parameters must be positive, got {num_params}."
            )

        self._values = torch.full((num_params,), float(fill), dtype=dtype)
        self._lock = threading.Lock()

    @property
    def num_params(self) -> int:
        return self._values.numel()

    def param_count(self) -> int:
        """Number of parameters held by this vector."""
        return self.num_params

    def __len__(self) -> int:
        return self.num_params

    @property
    def dtype(self) -> torch.dtype:
        return self._values.dtype

    def _check_index(self, index: int):
        if index < 0 or index >= self.num_params:
            raise IndexError(
                f"Parameter index {index} out of range (size: {self.num_params})"
            )

    def get(self, index: int) -> float:
        """
        Read a single parameter.

        Raises:
            IndexError: If index is outside [0, num_params)
        """
        self._check_index(index)
        with self._lock:
            return self._values[index].item()

    def update(self, index: int, delta: float):
        """
        Add delta to the parameter at index.

        Concurrent calls from different workers are serialized, so every
        delta is applied exactly once.
        """
        self._check_index(index)
        with self._lock:
            self._values[index] += delta

    def update_many(
        self,
        indices: Union[torch.Tensor, Sequence[int]],
        deltas: Union[torch.Tensor, Sequence[float]],
    ):
        """
        Add a batch of deltas in one atomic step.

        Equivalent to calling update(indices[i], deltas[i]) for every i;
        repeated indices accumulate.

        Args:
            indices: Parameter indices (1-D, integer)
            deltas: Deltas to add (1-D, same length as indices)
        """
        indices = torch.as_tensor(indices, dtype=torch.long)
        deltas = torch.as_tensor(deltas, dtype=self._values.dtype)

        if indices.numel() != deltas.numel():
            raise ValueError(
                f"Got {indices.numel()} indices but {deltas.numel()} deltas"
            )
        if indices.numel() == 0:
            return

        low = int(indices.min())
        high = int(indices.max())
        if low < 0 or high >= self.num_params:
            bad = low if low < 0 else high
            raise IndexError(
                f"Parameter index {bad} out of range (size: {self.num_params})"
            )

        with self._lock:
            self._values.index_add_(0, indices, deltas)

    def snapshot(self) -> torch.Tensor:
        """
        Take a private copy of the whole vector.

        Later updates to the vector never show through the returned tensor.
        """
        with self._lock:
            return self._values.clone()

    def present(self):
        """Log every parameter value."""
        values = self.snapshot().tolist()
        logger.info(f"Parameters ({len(values)}):")
        for index, value in enumerate(values):
            logger.info(f"  param[{index}] = {value:.6f}")

    def __repr__(self) -> str:
        return f"ParameterVector(num_params={self.num_params}, dtype={self.dtype})"
