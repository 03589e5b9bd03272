"""
Worker module for Lockstep training.

Workers are the compute units that:
- Hold a disjoint partition of the training examples
- Compute gradients against a per-round parameter snapshot
- Add their updates to the shared parameter store
- Meet at the round barrier before the next round starts
"""

__version__ = "0.1.0"
