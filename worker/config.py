"""
Training configuration for Lockstep jobs.

Defines all parameters of a distributed training job: model choice,
hyperparameters, cluster layout and logging.
"""

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from core.errors import ConfigurationError
from core.optimizer import LEARNING_RATE_SCHEDULES
from core.partitioner import SHARDING_STRATEGIES


logger = logging.getLogger(__name__)

MODEL_TYPES = ("svm", "linear", "logistic")


@dataclass
class TrainingConfig:
    """
    Configuration of one training job.

    All workers of the job share this configuration.
    """

    # Model
    model: str = "svm"  # "svm", "linear", "logistic"
    num_features: int = 10

    # Cluster
    world_size: int = 4
    coordinator_rank: int = 0  # worker that applies regularization and logs
    sharding_strategy: str = "contiguous"  # "contiguous", "interleaved"
    latency_ms: float = 0.0  # simulated latency per collective
    barrier_timeout: Optional[float] = None  # seconds

    # Training hyperparameters
    iterations: int = 50
    learning_rate: float = 0.01
    learning_rate_schedule: str = "constant"  # "constant", "inverse"
    regularization_norm: int = 2
    regularization_strength: float = 0.0  # lambda; 0 disables regularization

    # Training behavior
    early_stopping: bool = False  # requires a held-out set
    report_per_round: bool = True

    # Reproducibility
    seed: int = 42

    # Logging
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_file: Optional[str] = None

    def __post_init__(self):
        """Validate values."""
        if self.model not in MODEL_TYPES:
            raise ConfigurationError(
                f"Unknown model '{self.model}'. Choose from: {list(MODEL_TYPES)}"
            )
        if self.num_features <= 0:
            raise ConfigurationError(f"num_features must be positive, got {self.num_features}")
        if self.world_size <= 0:
            raise ConfigurationError(f"world_size must be positive, got {self.world_size}")
        if not 0 <= self.coordinator_rank < self.world_size:
            raise ConfigurationError(
                f"coordinator_rank {self.coordinator_rank} out of range for world_size {self.world_size}"
            )
        if self.sharding_strategy not in SHARDING_STRATEGIES:
            raise ConfigurationError(
                f"Unknown sharding strategy '{self.sharding_strategy}'. "
                f"Choose from: {list(SHARDING_STRATEGIES)}"
            )
        if self.iterations < 0:
            raise ConfigurationError(f"iterations must be non-negative, got {self.iterations}")
        if self.learning_rate == 0:
            raise ConfigurationError("Learning rate is set to 0.")
        if self.learning_rate_schedule not in LEARNING_RATE_SCHEDULES:
            raise ConfigurationError(
                f"Unknown learning rate schedule '{self.learning_rate_schedule}'. "
                f"Choose from: {list(LEARNING_RATE_SCHEDULES)}"
            )
        if self.regularization_strength < 0:
            raise ConfigurationError(
                f"regularization_strength must be non-negative, got {self.regularization_strength}"
            )
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Unknown log level '{self.log_level}'")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingConfig':
        """
        Create from dictionary.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'TrainingConfig':
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def from_json_file(cls, path: str) -> 'TrainingConfig':
        """Load from JSON file."""
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_json_file(self, path: str):
        """Save to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"TrainingConfig(model='{self.model}', "
            f"world_size={self.world_size}, "
            f"iterations={self.iterations}, "
            f"learning_rate={self.learning_rate})"
        )


def configure_logging(config: TrainingConfig):
    """
    Configure root logging from the job configuration.

    Args:
        config: Training configuration (log_level, log_file)
    """
    handlers = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=config.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
