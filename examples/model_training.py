"""
Training example for idmatch.

Trains a SimpleClassifier on synthetic labelled person pairs, evaluates it
on a held-out set and writes the weights to disk:

1. Build labelled pairs (typo variants are matches, different people are not)
2. Balance and split the dataset
3. Train with ModelTrainer, logging progress (and to wandb when configured)
4. Evaluate and persist the weights

Usage:
    python examples/model_training.py
    WANDB_API_KEY=... python examples/model_training.py   # also log to wandb
"""

import asyncio
import logging
from pathlib import Path

from idmatch.clients.settings import Settings
from idmatch.clients.tracking import (
    create_wandb_tracker,
    log_training_result,
    wandb_progress_callback,
)
from idmatch.core.features import FeatureConfigBuilder
from idmatch.core.models import RecordPair, TrainingConfig, TrainingMetrics
from idmatch.data.loaders import write_weights
from idmatch.training import (
    ModelTrainer,
    balance_dataset,
    create_training_dataset,
    create_training_example,
    evaluate_classifier,
    get_dataset_stats,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PEOPLE = [
    ("John", "Smith", "1961-02-11"),
    ("Jane", "Johnson", "1962-03-12"),
    ("Michael", "Williams", "1963-04-13"),
    ("Sarah", "Brown", "1964-05-14"),
    ("David", "Jones", "1965-06-15"),
    ("Emily", "Garcia", "1966-07-16"),
    ("Robert", "Miller", "1967-08-17"),
    ("Laura", "Davis", "1968-09-18"),
    ("James", "Wilson", "1969-10-19"),
    ("Anna", "Moore", "1970-11-20"),
    ("Peter", "Taylor", "1971-12-21"),
    ("Maria", "Anderson", "1972-01-22"),
]


def person(first: str, last: str, dob: str) -> dict[str, str]:
    return {
        "first_name": first,
        "last_name": last,
        "email": f"{first.lower()}.{last.lower()}@example.com",
        "date_of_birth": dob,
    }


def build_dataset():
    """Matches are typo variants of the same person; non-matches pair different people."""
    examples = []
    for index, (first, last, dob) in enumerate(PEOPLE):
        record = person(first, last, dob)
        variant = {**record, "first_name": first.upper(), "last_name": last[:-1]}
        examples.append(
            create_training_example(RecordPair(record1=record, record2=variant), "match", "synthetic")
        )
        for offset in (3, 5):
            other = person(*PEOPLE[(index + offset) % len(PEOPLE)])
            examples.append(
                create_training_example(
                    RecordPair(record1=record, record2=other), "non_match", "synthetic"
                )
            )
    return create_training_dataset(examples, name="synthetic-people")


async def main() -> None:
    """Train, evaluate and save a person matching classifier."""
    settings = Settings()

    print("=" * 60)
    print("idmatch - Model Training Example")
    print("=" * 60)

    # 1. Dataset
    print("\n1. Building dataset...")
    dataset = build_dataset()
    stats = get_dataset_stats(dataset)
    print(f"  Examples: {stats.total_examples} ({stats.match_count} matches)")
    print(f"  Balanced: {stats.is_balanced}")

    dataset = balance_dataset(dataset, seed=42)
    print(f"  After balancing: {len(dataset.examples)} examples")

    # 2. Features
    print("\n2. Configuring features...")
    extractor = (
        FeatureConfigBuilder()
        .add_name_field("first_name")
        .add_name_field("last_name", weight=1.2)
        .add_string_field("email")
        .add_date_field("date_of_birth")
        .build_extractor()
    )
    print(f"  {extractor.get_feature_count()} features")

    # 3. Train
    print("\n3. Training...")

    def log_progress(metrics: TrainingMetrics) -> None:
        logger.info(
            "iteration %d: loss %.4f, accuracy %.3f",
            metrics.iteration,
            metrics.training_loss,
            metrics.training_accuracy,
        )

    on_progress = log_progress
    config = TrainingConfig(learning_rate=0.5, max_iterations=500, seed=42)
    run = None
    if settings.wandb_api_key:
        run = create_wandb_tracker(settings, training_config=config)
        on_progress = wandb_progress_callback(run)

    trainer = ModelTrainer(
        feature_extractor=extractor,
        config=config,
        on_progress=on_progress,
        progress_interval=50,
        classifier_config=settings.classifier_config(),
    )
    classifier, result = await trainer.train_classifier(dataset)

    if classifier is None:
        print(f"  Training failed: {result.error}")
        if run is not None:
            log_training_result(run, result)
            run.finish()
        return

    final = result.final_metrics
    print(f"  Iterations: {final.iteration} (early stopped: {result.early_stopped})")
    print(f"  Training accuracy: {final.training_accuracy:.3f}")
    print(f"  Time: {result.training_time_ms:.1f}ms")

    # 4. Evaluate and save
    print("\n4. Evaluating...")
    metrics = evaluate_classifier(classifier, dataset)
    print(f"  Precision: {metrics.precision:.3f}  Recall: {metrics.recall:.3f}  F1: {metrics.f1:.3f}")

    print("\nTop features:")
    for item in classifier.get_feature_importance()[:5]:
        print(f"  - {item['name']}: {item['weight']:+.3f}")

    path = write_weights(
        settings.idmatch_weights_path or Path("models/person_matcher.json"),
        classifier.export_weights(),
    )
    print(f"\nWeights written to {path}")

    if run is not None:
        log_training_result(run, result, metrics)
        run.finish()

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
