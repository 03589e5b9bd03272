"""
Aggregators: per-statistic reduce handles built on all-reduce.

Inside a data-parallel loop each worker contributes partial values locally;
barrier_and_sum() then combines the partials of every worker and hands the
identical global value back to all of them.
"""

from typing import Union

import torch

from communication.collectives import CollectiveOps


class Aggregator:
    """
    Sum-reduce handle for one statistic.

    A worker creates its own Aggregator around its CollectiveOps; all workers
    must call barrier_and_sum() the same number of times.
    """

    def __init__(
        self,
        collectives: CollectiveOps,
        initial: Union[float, torch.Tensor] = 0.0,
        reset_each_round: bool = False,
    ):
        """
        Args:
            collectives: This worker's collective operations
            initial: Starting (and reset) value of the local partial
            reset_each_round: Reset the local partial after every barrier_and_sum()
        """
        self.collectives = collectives
        self.initial = torch.as_tensor(initial, dtype=torch.float64).clone()
        self.reset_each_round = reset_each_round
        self._local = self.initial.clone()

    @property
    def local_value(self) -> torch.Tensor:
        """This worker's partial, not yet combined with the others."""
        return self._local.clone()

    def contribute(self, value: Union[float, torch.Tensor]):
        """Add a partial value from this worker."""
        self._local += torch.as_tensor(value, dtype=torch.float64)

    def barrier_and_sum(self) -> Union[float, torch.Tensor]:
        """
        Sum the partials of all workers.

        Blocks until every worker has called it.

        Returns:
            The global sum: a float for scalar aggregators, otherwise a tensor
        """
        total = self.collectives.all_reduce(self._local, op="sum")

        if self.reset_each_round:
            self.reset()

        if total.dim() == 0:
            return total.item()
        return total

    def reset(self):
        """Restore the local partial to its initial value."""
        self._local = self.initial.clone()
