"""
Regenerate the bundled person matching weights.

Trains a SimpleClassifier over DEFAULT_PERSON_FEATURE_CONFIG on synthetic
person pairs and writes the result to
``src/idmatch/core/pretrained/person_matcher.json``, the file loaded by
``create_pretrained_classifier()``.

Matches are a person and a noisy copy of themselves (swapped letters, a
different email domain, dropped phone / address / SSN); non-matches are two
independently generated people.

Usage:
    python examples/train_default_model.py
    python examples/train_default_model.py --examples 10000 --iterations 1000
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

import numpy as np

from idmatch.core.features import DEFAULT_PERSON_FEATURE_CONFIG, FeatureExtractor
from idmatch.core.models import RecordPair, TrainingConfig
from idmatch.data.loaders import write_weights
from idmatch.training import (
    ModelTrainer,
    create_training_dataset,
    create_training_example,
    evaluate_classifier,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

OUTPUT = Path(__file__).resolve().parent.parent / "src/idmatch/core/pretrained/person_matcher.json"

FIRST_NAMES = [
    "John", "Jane", "Michael", "Sarah", "Robert", "Emily", "David", "Emma",
    "James", "Olivia", "William", "Sophia", "Richard", "Isabella", "Thomas",
]  # fmt: skip
LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller",
    "Davis", "Rodriguez", "Martinez", "Anderson", "Taylor", "Thomas", "Moore",
]  # fmt: skip
DOMAINS = ["gmail.com", "yahoo.com", "hotmail.com", "outlook.com", "company.com"]
STREETS = ["Main St", "Oak Ave", "Elm St", "Park Rd", "First St", "Second Ave"]
CITIES = ["Springfield", "Clinton", "Franklin", "Madison", "Chester"]
STATES = ["CA", "NY", "TX", "FL", "IL", "PA", "OH"]


def generate_person(rng: np.random.Generator) -> dict[str, str]:
    first, last = str(rng.choice(FIRST_NAMES)), str(rng.choice(LAST_NAMES))
    return {
        "first_name": first,
        "last_name": last,
        "email": f"{first.lower()}.{last.lower()}@{rng.choice(DOMAINS)}",
        "phone": f"{rng.integers(100, 1000)}-{rng.integers(100, 1000)}-{rng.integers(1000, 10000)}",
        "date_of_birth": (
            f"{rng.integers(1950, 2001)}-{rng.integers(1, 13):02d}-{rng.integers(1, 29):02d}"
        ),
        "address": (
            f"{rng.integers(1, 10000)} {rng.choice(STREETS)}, "
            f"{rng.choice(CITIES)}, {rng.choice(STATES)}"
        ),
        "ssn": f"{rng.integers(100, 1000)}-{rng.integers(10, 100)}-{rng.integers(1000, 10000)}",
    }


def swap_letters(value: str, rng: np.random.Generator) -> str:
    if len(value) < 2:
        return value
    index = int(rng.integers(0, len(value) - 1))
    return value[:index] + value[index + 1] + value[index] + value[index + 2 :]


def noisy_copy(record: dict[str, str], rng: np.random.Generator) -> dict[str, str | None]:
    """The same person as entered by a different source."""
    copy: dict[str, str | None] = dict(record)
    if rng.random() < 0.2:
        copy["first_name"] = swap_letters(record["first_name"], rng)
    if rng.random() < 0.2:
        copy["last_name"] = swap_letters(record["last_name"], rng)
    if rng.random() < 0.3:
        copy["email"] = f"{record['email'].split('@')[0]}@{rng.choice(DOMAINS)}"
    if rng.random() < 0.3:
        copy["phone"] = None
    if rng.random() < 0.4:
        copy["address"] = None
    if rng.random() < 0.5:
        copy["ssn"] = None
    return copy


def build_dataset(total: int, match_ratio: float, rng: np.random.Generator):
    match_count = int(total * match_ratio)
    examples = []
    for index in range(total):
        record = generate_person(rng)
        if index < match_count:
            pair, label = RecordPair(record1=record, record2=noisy_copy(record, rng)), "match"
        else:
            pair, label = RecordPair(record1=record, record2=generate_person(rng)), "non_match"
        examples.append(create_training_example(pair, label, "synthetic"))
    return create_training_dataset(examples, name="synthetic-person-pairs")


async def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--examples", type=int, default=5000)
    parser.add_argument("--iterations", type=int, default=500)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output", type=Path, default=OUTPUT)
    args = parser.parse_args()

    rng = np.random.default_rng(args.seed)
    dataset = build_dataset(args.examples, match_ratio=0.3, rng=rng)
    logger.info(
        "Generated %d examples (%d matches)", len(dataset.examples), dataset.match_count
    )

    trainer = ModelTrainer(
        feature_extractor=FeatureExtractor(DEFAULT_PERSON_FEATURE_CONFIG),
        config=TrainingConfig(
            learning_rate=0.5,
            max_iterations=args.iterations,
            regularization=0.001,
            validation_split=0.2,
            early_stopping_patience=10,
            seed=args.seed,
        ),
        progress_interval=50,
        on_progress=lambda m: logger.info(
            "iteration %d: loss %.4f, accuracy %.3f",
            m.iteration,
            m.training_loss,
            m.training_accuracy,
        ),
    )
    classifier, result = await trainer.train_classifier(dataset)
    if classifier is None:
        raise SystemExit(f"Training failed: {result.error}")

    holdout = build_dataset(1000, match_ratio=0.3, rng=rng)
    metrics = evaluate_classifier(classifier, holdout)
    logger.info(
        "Holdout accuracy %.3f, precision %.3f, recall %.3f",
        metrics.accuracy,
        metrics.precision,
        metrics.recall,
    )

    classifier.set_training_metadata(
        accuracy=metrics.accuracy,
        training_examples=len(dataset.examples),
        trained_at=datetime.now(timezone.utc),
    )
    path = write_weights(args.output, classifier.export_weights())
    print(f"Weights written to {path}")


if __name__ == "__main__":
    asyncio.run(main())
