"""
Main Training Script for Lockstep

Trains a linear model on synthetic data across simulated workers on a
single machine, and optionally compares against single-worker training.
"""

import argparse
import dataclasses
import sys
from typing import List, Optional, Tuple

from core.dataset import LabeledExample, make_classification, make_regression
from worker.config import MODEL_TYPES, TrainingConfig, configure_logging
from worker.trainer import DistributedTrainer


def create_datasets(
    config: TrainingConfig,
    num_examples: int,
    num_test_examples: int,
    sparse: bool = False,
    noise: float = 0.0,
) -> Tuple[List[LabeledExample], List[LabeledExample], List[LabeledExample]]:
    """
    Generate train, held-out and test sets from one synthetic model.

    The held-out and test sets each have num_test_examples examples.
    """
    total = num_examples + 2 * num_test_examples

    if config.model == "linear":
        examples = make_regression(total, config.num_features, seed=config.seed, noise=noise)
    else:
        examples = make_classification(
            total, config.num_features, seed=config.seed, sparse=sparse, label_noise=noise
        )

    train = examples[:num_examples]
    held_out = examples[num_examples:num_examples + num_test_examples]
    test = examples[num_examples + num_test_examples:]
    return train, held_out, test


def train_distributed(
    config: TrainingConfig,
    train: List[LabeledExample],
    held_out: List[LabeledExample],
    test: List[LabeledExample],
) -> dict:
    """
    Run distributed training simulation.

    Returns:
        Dictionary of training results
    """
    print(f"\n{'='*60}")
    print(f"Lockstep Distributed Training Simulation")
    print(f"{'='*60}")
    print(f"Model: {config.model}")
    print(f"Workers: {config.world_size}")
    print(f"Rounds: {config.iterations}")
    print(f"Learning rate: {config.learning_rate} ({config.learning_rate_schedule})")
    print(f"Regularization: L{config.regularization_norm}, lambda={config.regularization_strength}")
    print(f"Training examples: {len(train)}")
    print(f"Early stopping: {config.early_stopping}")
    print(f"{'='*60}\n")

    trainer = DistributedTrainer(config)
    result = trainer.fit(
        train,
        held_out=held_out if config.early_stopping else None,
        test_examples=test,
    )
    history = result.history

    print(f"\n{'='*60}")
    print("Training Complete!")
    print(f"{'='*60}")
    print(f"Rounds completed: {history.rounds_completed}")
    print(f"Stopped early: {history.stopped_early}")
    print(f"Total time: {history.elapsed:.2f}s")
    if history.training_errors:
        print(f"Initial training {_stat_name(config)}: {history.training_errors[0]:.4f}")
        print(f"Final training {_stat_name(config)}: {history.training_errors[-1]:.4f}")
    if result.test_error is not None:
        print(f"Test error: {result.test_error:.4f}")
    print(f"\n{'='*60}\n")

    return {
        'history': history.to_dict(),
        'params': result.params,
        'test_error': result.test_error,
    }


def train_baseline(
    config: TrainingConfig,
    train: List[LabeledExample],
    held_out: List[LabeledExample],
    test: List[LabeledExample],
) -> dict:
    """
    Run the same job on a single worker for comparison.
    """
    baseline_config = dataclasses.replace(config, world_size=1, coordinator_rank=0)
    return train_distributed(baseline_config, train, held_out, test)


def _stat_name(config: TrainingConfig) -> str:
    return "loss" if config.model in ("svm", "logistic") else "error"


def build_config(args: argparse.Namespace) -> TrainingConfig:
    """Merge the optional JSON config file with command-line overrides."""
    values = {}
    if args.config:
        values = TrainingConfig.from_json_file(args.config).to_dict()

    overrides = {
        'model': args.model,
        'num_features': args.features,
        'world_size': args.workers,
        'iterations': args.iters,
        'learning_rate': args.lr,
        'learning_rate_schedule': args.schedule,
        'regularization_norm': args.norm,
        'regularization_strength': args.reg_lambda,
        'sharding_strategy': args.sharding,
        'latency_ms': args.latency,
        'seed': args.seed,
        'log_level': args.log_level,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    if args.early_stop:
        values['early_stopping'] = True

    return TrainingConfig.from_dict(values)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lockstep Distributed Linear Model Training")

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='JSON training configuration (command-line flags override it)'
    )
    parser.add_argument(
        '--mode',
        type=str,
        default='distributed',
        choices=['distributed', 'baseline', 'both'],
        help='Training mode'
    )
    parser.add_argument('--model', type=str, default=None, choices=list(MODEL_TYPES), help='Model type')
    parser.add_argument('--workers', type=int, default=None, help='Number of workers')
    parser.add_argument('--iters', type=int, default=None, help='Number of training rounds')
    parser.add_argument('--lr', type=float, default=None, help='Learning rate')
    parser.add_argument(
        '--schedule',
        type=str,
        default=None,
        choices=['constant', 'inverse'],
        help='Learning rate schedule'
    )
    parser.add_argument('--norm', type=int, default=None, choices=[1, 2], help='Regularization norm')
    parser.add_argument(
        '--lambda',
        dest='reg_lambda',
        type=float,
        default=None,
        help='Regularization strength (0 disables)'
    )
    parser.add_argument('--features', type=int, default=None, help='Number of features')
    parser.add_argument('--examples', type=int, default=1000, help='Number of training examples')
    parser.add_argument('--test-examples', type=int, default=200, help='Size of held-out and test sets')
    parser.add_argument('--sparse', action='store_true', help='Generate sparse features')
    parser.add_argument('--noise', type=float, default=0.0, help='Label noise')
    parser.add_argument('--early-stop', action='store_true', help='Stop on held-out error increase')
    parser.add_argument(
        '--sharding',
        type=str,
        default=None,
        choices=['contiguous', 'interleaved'],
        help='How examples are split across workers'
    )
    parser.add_argument('--latency', type=float, default=None, help='Simulated latency in milliseconds')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = build_config(args)
    configure_logging(config)

    train, held_out, test = create_datasets(
        config, args.examples, args.test_examples, sparse=args.sparse, noise=args.noise
    )

    if args.mode == 'distributed' or args.mode == 'both':
        distributed_results = train_distributed(config, train, held_out, test)

    if args.mode == 'baseline' or args.mode == 'both':
        baseline_results = train_baseline(config, train, held_out, test)

    # Compare results if both were run
    if args.mode == 'both':
        difference = (distributed_results['params'] - baseline_results['params']).abs().max().item()
        print(f"\n{'='*60}")
        print("Comparison: Distributed vs Baseline")
        print(f"{'='*60}")
        print(f"Max parameter difference: {difference:.2e}")
        if distributed_results['test_error'] is not None:
            print(f"Test error:")
            print(f"  Distributed: {distributed_results['test_error']:.4f}")
            print(f"  Baseline:    {baseline_results['test_error']:.4f}")
        print(f"\n{'='*60}\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
