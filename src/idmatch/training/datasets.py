"""Helpers for building and inspecting training datasets.

- create_training_example / create_training_dataset / merge_training_datasets
- balance_dataset: undersample the majority class
- get_dataset_stats: class counts and balance
- export_weights_to_json: serialise a successful TrainingResult
"""

import logging
from datetime import datetime, timezone
from typing import Any

import numpy as np
from pydantic import BaseModel

from idmatch.core.classifier import DEFAULT_VERSION, MODEL_TYPE
from idmatch.core.models import (
    RecordPair,
    SerializedWeights,
    TrainingDataset,
    TrainingExample,
    TrainingLabel,
    TrainingResult,
)

logger = logging.getLogger(__name__)

# A dataset counts as balanced when its match ratio lies in this range
BALANCED_RATIO_RANGE = (0.4, 0.6)


class DatasetStats(BaseModel):
    """Class distribution of a training dataset."""

    total_examples: int
    match_count: int
    non_match_count: int
    match_ratio: float
    is_balanced: bool


def create_training_example(
    pair: RecordPair, label: TrainingLabel, source: str | None = None
) -> TrainingExample:
    """Create a labelled example timestamped now (UTC)."""
    return TrainingExample(
        pair=pair, label=label, source=source, timestamp=datetime.now(timezone.utc)
    )


def create_training_dataset(
    examples: list[TrainingExample],
    name: str | None = None,
    description: str | None = None,
) -> TrainingDataset:
    return TrainingDataset(examples=list(examples), name=name, description=description)


def merge_training_datasets(*datasets: TrainingDataset) -> TrainingDataset:
    """Concatenate the examples of several datasets, in argument order."""
    return create_training_dataset([ex for dataset in datasets for ex in dataset.examples])


def balance_dataset(dataset: TrainingDataset, seed: int | None = None) -> TrainingDataset:
    """Undersample the majority class so both labels have the same count.

    A seeded shuffle picks which examples are kept. The result lists the
    kept matches first, then the kept non-matches.

    Example:
        >>> stats = get_dataset_stats(balance_dataset(dataset, seed=7))
        >>> stats.match_count == stats.non_match_count
        True
    """
    matches = [ex for ex in dataset.examples if ex.label == "match"]
    non_matches = [ex for ex in dataset.examples if ex.label == "non_match"]
    keep = min(len(matches), len(non_matches))

    rng = np.random.default_rng(seed)
    kept_matches = [matches[i] for i in rng.permutation(len(matches))[:keep]]
    kept_non_matches = [non_matches[i] for i in rng.permutation(len(non_matches))[:keep]]

    logger.debug(
        "Balanced dataset: %d matches, %d non-matches -> %d each",
        len(matches),
        len(non_matches),
        keep,
    )
    return create_training_dataset(
        kept_matches + kept_non_matches, name=dataset.name, description=dataset.description
    )


def get_dataset_stats(dataset: TrainingDataset) -> DatasetStats:
    total = len(dataset.examples)
    match_count = dataset.match_count
    match_ratio = match_count / total if total > 0 else 0.0
    low, high = BALANCED_RATIO_RANGE
    return DatasetStats(
        total_examples=total,
        match_count=match_count,
        non_match_count=total - match_count,
        match_ratio=match_ratio,
        is_balanced=low <= match_ratio <= high,
    )


def export_weights_to_json(
    result: TrainingResult,
    feature_names: list[str],
    model_name: str = "CustomModel",
) -> str:
    """Serialise the weights of a successful training run as a weights JSON document.

    Args:
        result: A successful TrainingResult
        feature_names: Feature names, in weight order
        model_name: Stored under ``extra.modelName``

    Returns:
        JSON text loadable by ``SimpleClassifier.load_weights``

    Raises:
        ValueError: If training failed or produced no weights.
    """
    if not result.success or result.weights is None or result.bias is None:
        raise ValueError("Cannot export weights from failed training")

    final = result.final_metrics
    extra: dict[str, Any] = {
        "trainedAt": datetime.now(timezone.utc).isoformat(),
        "accuracy": (
            final.validation_accuracy
            if final.validation_accuracy is not None
            else final.training_accuracy
        ),
        "modelName": model_name,
    }
    weights = SerializedWeights(
        model_type=MODEL_TYPE,
        version=DEFAULT_VERSION,
        weights=list(result.weights),
        bias=result.bias,
        feature_names=list(feature_names),
        extra=extra,
    )
    return weights.to_json()
