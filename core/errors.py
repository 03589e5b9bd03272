"""
Exception types raised by the training engine.
"""


class LockstepError(Exception):
    """Base class for all training engine errors."""


class ConfigurationError(LockstepError):
    """
    Raised when a model, optimizer or job is used before it is fully configured.

    Examples: a strategy was never assigned, the parameter count is not
    positive, or the learning rate is zero. Not recoverable; the job aborts.
    """


class EmptyDatasetError(ConfigurationError):
    """Raised when an average is requested over zero global examples."""


class UnsupportedOperationError(LockstepError):
    """Raised for declared options that have no implementation."""
