"""
idmatch.training: Supervised training of match classifiers.

This module provides the gradient-descent ModelTrainer plus helpers for
building, balancing and evaluating labelled datasets.
"""

from idmatch.training.datasets import (
    DatasetStats,
    balance_dataset,
    create_training_dataset,
    create_training_example,
    export_weights_to_json,
    get_dataset_stats,
    merge_training_datasets,
)
from idmatch.training.evaluation import ClassificationMetrics, evaluate_classifier
from idmatch.training.trainer import ModelTrainer, ProgressCallback

__all__ = [
    "ClassificationMetrics",
    "DatasetStats",
    "ModelTrainer",
    "ProgressCallback",
    "balance_dataset",
    "create_training_dataset",
    "create_training_example",
    "evaluate_classifier",
    "export_weights_to_json",
    "get_dataset_stats",
    "merge_training_datasets",
]
