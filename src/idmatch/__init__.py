"""
idmatch: ML-assisted identity resolution.

This package provides the machine-learning core of an identity resolver:
- idmatch.core: Feature extraction and the logistic-regression classifier
- idmatch.training: Gradient-descent training and dataset helpers
- idmatch.integration: Blending ML predictions with deterministic scores
- idmatch.data / idmatch.clients: File I/O, settings and experiment tracking
"""

from idmatch.core import (
    FeatureExtractor,
    MLPrediction,
    RecordPair,
    SimpleClassifier,
    create_pretrained_classifier,
)
from idmatch.integration import ScoreIntegrator
from idmatch.training import ModelTrainer

__all__ = [
    "FeatureExtractor",
    "MLPrediction",
    "ModelTrainer",
    "RecordPair",
    "ScoreIntegrator",
    "SimpleClassifier",
    "create_pretrained_classifier",
]

__version__ = "0.1.0"
