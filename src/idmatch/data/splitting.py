"""Train/validation splitting for labelled training examples.

The split is a seeded shuffle followed by a cut: the first
``floor(n * validation_split)`` shuffled items form the validation set, the
rest the training set. The generator is passed in explicitly, so the same
seed always yields the same split regardless of what else consumed
randomness.
"""

import logging
import math
from collections.abc import Sequence
from typing import TypeVar

import numpy as np

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")


def train_validation_split(
    items: Sequence[ItemT],
    validation_split: float,
    rng: np.random.Generator,
) -> tuple[list[ItemT], list[ItemT]]:
    """Shuffle ``items`` with ``rng`` and split off a validation set.

    Args:
        items: Items to split (not modified)
        validation_split: Fraction in [0, 1) held out for validation.
            0 disables validation: every item goes to the training set.
        rng: Generator driving the shuffle

    Returns:
        Tuple of (train_items, validation_items)

    Raises:
        ValueError: If validation_split is outside [0, 1).

    Example:
        >>> rng = np.random.default_rng(42)
        >>> train, val = train_validation_split(list(range(10)), 0.2, rng)
        >>> len(train), len(val)
        (8, 2)
    """
    if not 0.0 <= validation_split < 1.0:
        msg = f"validation_split must be in [0, 1), got {validation_split}"
        raise ValueError(msg)

    order = rng.permutation(len(items))
    shuffled = [items[i] for i in order]

    val_size = math.floor(len(shuffled) * validation_split)
    validation, train = shuffled[:val_size], shuffled[val_size:]

    logger.debug(
        "Split %d items: %d train, %d validation", len(items), len(train), len(validation)
    )
    return train, validation
