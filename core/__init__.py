"""
Core training engine: parameter storage, datasets, strategies, models
and optimizers.
"""

__version__ = "0.1.0"
