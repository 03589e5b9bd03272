"""
Lockstep Local Simulation

This module runs data-parallel training jobs on a single machine: one thread
per worker, shared-memory collectives and barriers between rounds.
"""

__version__ = "0.1.0"
