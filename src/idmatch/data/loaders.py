"""Loaders and writers for training data and model weights.

- load_training_dataset: labelled record pairs from JSON
- read_weights / write_weights: SerializedWeights as camelCase JSON
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from idmatch.core.errors import InvalidWeightsError
from idmatch.core.models import (
    RecordPair,
    SerializedWeights,
    TrainingDataset,
    TrainingExample,
)

logger = logging.getLogger(__name__)

# Labels as written by other tools map onto the two training labels
_LABELS = {"match": "match", "non_match": "non_match", "nonMatch": "non_match"}


def load_training_dataset(path: Path | str) -> TrainingDataset:
    """Load labelled record pairs from a JSON file.

    Args:
        path: JSON file containing the examples

    Returns:
        TrainingDataset with one example per entry, in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is invalid

    Expected JSON format:
        {
            "name": "customers-2024",          (optional)
            "description": "...",              (optional)
            "examples": [
                {
                    "record1": {"name": "Jon Smith", "email": "jon@example.com"},
                    "record2": {"name": "John Smith", "email": "jon@example.com"},
                    "label": "match",
                    "source": "review-queue"   (optional)
                },
                ...
            ]
        }

    Example:
        >>> dataset = load_training_dataset("data/labelled_pairs.json")
        >>> print(f"{dataset.match_count} matches, {dataset.non_match_count} non-matches")
    """
    path = Path(path)
    if not path.exists():
        msg = f"Training data file not found: {path}"
        raise FileNotFoundError(msg)

    with open(path) as f:
        data = json.load(f)

    if not isinstance(data, dict) or "examples" not in data:
        msg = f"Invalid format in {path}: missing 'examples' key"
        raise ValueError(msg)

    examples: list[TrainingExample] = []
    for index, raw in enumerate(data["examples"]):
        label = _LABELS.get(raw.get("label"))
        if label is None:
            msg = f"Invalid label in {path} at example {index}: {raw.get('label')!r}"
            raise ValueError(msg)
        if "record1" not in raw or "record2" not in raw:
            msg = f"Invalid format in {path} at example {index}: missing record1/record2"
            raise ValueError(msg)

        examples.append(
            TrainingExample(
                pair=RecordPair(record1=raw["record1"], record2=raw["record2"]),
                label=label,
                source=raw.get("source"),
            )
        )

    dataset = TrainingDataset(
        examples=examples, name=data.get("name"), description=data.get("description")
    )
    logger.info(
        "Loaded training dataset from %s: %d examples (%d matches, %d non-matches)",
        path,
        len(examples),
        dataset.match_count,
        dataset.non_match_count,
    )
    return dataset


def write_weights(path: Path | str, weights: SerializedWeights) -> Path:
    """Write weights as JSON with camelCase keys; parent directories are created."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(weights.to_json())
    logger.info("Wrote %s weights (%d features) to %s", weights.model_type, len(weights.weights), path)
    return path


def read_weights(path: Path | str) -> SerializedWeights:
    """Read a weights JSON file.

    Only the document structure is checked here; model-specific checks
    (type tag, finiteness, feature count) happen in ``load_weights``.

    Raises:
        FileNotFoundError: If the file doesn't exist
        InvalidWeightsError: If the JSON is not a weights document
    """
    path = Path(path)
    if not path.exists():
        msg = f"Weights file not found: {path}"
        raise FileNotFoundError(msg)

    with open(path) as f:
        data: Any = json.load(f)

    try:
        return SerializedWeights.model_validate(data)
    except ValidationError as exc:
        raise InvalidWeightsError(f"Invalid weights file {path}: {exc}") from exc
