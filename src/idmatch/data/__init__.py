"""Data utilities for idmatch.

This module provides utilities for loading labelled training data,
persisting model weights, and splitting examples for validation.
"""

from idmatch.data.loaders import load_training_dataset, read_weights, write_weights
from idmatch.data.splitting import train_validation_split

__all__ = [
    # Loaders
    "load_training_dataset",
    "read_weights",
    "write_weights",
    # Splitting
    "train_validation_split",
]
