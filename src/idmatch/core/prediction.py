"""
Prediction utilities shared by classifiers and callers.

- sigmoid / classify / calculate_confidence: the scoring math
- calculate_feature_importance / get_top_features: per-prediction explanations
- filter_by_* / sort_by_*: selection over prediction lists
- calculate_prediction_stats / format_prediction: reporting
"""

import math
from collections.abc import Sequence

import numpy as np

from idmatch.core.models import (
    ClassifierConfig,
    FeatureImportance,
    FeatureVector,
    MLMatchOutcome,
    MLPrediction,
    PredictionStats,
)

LOGIT_CLAMP = 500.0


def sigmoid(z: float) -> float:
    """Logistic function with the input clamped to [-500, 500].

    The clamp keeps ``exp`` finite, so extreme logits give probabilities that
    are exactly or nearly 0.0 / 1.0 instead of overflowing.
    """
    z = max(-LOGIT_CLAMP, min(LOGIT_CLAMP, z))
    return 1.0 / (1.0 + math.exp(-z))


def classify(probability: float, config: ClassifierConfig) -> MLMatchOutcome:
    """Map a probability onto match / non_match / uncertain.

    ``probability >= match_threshold`` is a match,
    ``probability <= non_match_threshold`` is a non-match, anything in
    between is uncertain.
    """
    if probability >= config.match_threshold:
        return "match"
    if probability <= config.non_match_threshold:
        return "non_match"
    return "uncertain"


def calculate_confidence(probability: float, config: ClassifierConfig) -> float:
    """Confidence of a classification, in [0.0, 1.0].

    - match: linear from 0 at ``match_threshold`` to 1 at probability 1
    - non_match: linear from 0 at ``non_match_threshold`` to 1 at probability 0
    - uncertain: 0 at the midpoint of the two thresholds, rising linearly
      towards either threshold

    Example:
        >>> calculate_confidence(0.85, ClassifierConfig())  # halfway from 0.7 to 1
        0.5
    """
    match_threshold = config.match_threshold
    non_match_threshold = config.non_match_threshold
    classification = classify(probability, config)

    if classification == "match":
        span = 1.0 - match_threshold
        confidence = (probability - match_threshold) / span if span > 0 else 1.0
    elif classification == "non_match":
        span = non_match_threshold
        confidence = (non_match_threshold - probability) / span if span > 0 else 1.0
    else:
        midpoint = (match_threshold + non_match_threshold) / 2.0
        half_range = (match_threshold - non_match_threshold) / 2.0
        confidence = abs(probability - midpoint) / half_range if half_range > 0 else 0.0

    return min(1.0, max(0.0, confidence))


def calculate_feature_importance(
    features: FeatureVector, weights: Sequence[float]
) -> list[FeatureImportance]:
    """Per-feature contributions (value * weight), largest |contribution| first.

    Raises:
        ValueError: If the vector and weights differ in length.
    """
    if len(features.values) != len(weights):
        raise ValueError(
            f"Feature vector length ({len(features.values)}) must match "
            f"weights length ({len(weights)})"
        )

    contributions = np.asarray(features.values, dtype=float) * np.asarray(weights, dtype=float)
    importance = [
        FeatureImportance(
            name=name,
            value=value,
            contribution=float(contribution),
            importance=abs(float(contribution)),
        )
        for name, value, contribution in zip(
            features.names, features.values, contributions, strict=True
        )
    ]
    # Stable sort keeps feature order among equal importances
    importance.sort(key=lambda item: item.importance, reverse=True)
    return importance


def get_top_features(importance: Sequence[FeatureImportance], n: int) -> list[FeatureImportance]:
    return list(importance[: max(0, n)])


def filter_by_classification(
    predictions: Sequence[MLPrediction], classification: MLMatchOutcome
) -> list[MLPrediction]:
    return [p for p in predictions if p.classification == classification]


def filter_by_min_probability(
    predictions: Sequence[MLPrediction], min_probability: float
) -> list[MLPrediction]:
    return [p for p in predictions if p.probability >= min_probability]


def filter_by_min_confidence(
    predictions: Sequence[MLPrediction], min_confidence: float
) -> list[MLPrediction]:
    return [p for p in predictions if p.confidence >= min_confidence]


def sort_by_probability(
    predictions: Sequence[MLPrediction], ascending: bool = False
) -> list[MLPrediction]:
    """Sort predictions by probability (descending unless ``ascending``)."""
    return sorted(predictions, key=lambda p: p.probability, reverse=not ascending)


def sort_by_confidence(
    predictions: Sequence[MLPrediction], ascending: bool = False
) -> list[MLPrediction]:
    """Sort predictions by confidence (descending unless ``ascending``)."""
    return sorted(predictions, key=lambda p: p.confidence, reverse=not ascending)


def calculate_prediction_stats(predictions: Sequence[MLPrediction]) -> PredictionStats:
    """Counts per classification plus probability / confidence aggregates.

    An empty input yields all-zero statistics.
    """
    if not predictions:
        return PredictionStats(
            total=0,
            match_count=0,
            non_match_count=0,
            uncertain_count=0,
            avg_probability=0.0,
            avg_confidence=0.0,
            min_probability=0.0,
            max_probability=0.0,
        )

    probabilities = np.asarray([p.probability for p in predictions], dtype=float)
    confidences = np.asarray([p.confidence for p in predictions], dtype=float)
    classifications = [p.classification for p in predictions]

    return PredictionStats(
        total=len(predictions),
        match_count=classifications.count("match"),
        non_match_count=classifications.count("non_match"),
        uncertain_count=classifications.count("uncertain"),
        avg_probability=float(probabilities.mean()),
        avg_confidence=float(confidences.mean()),
        min_probability=float(probabilities.min()),
        max_probability=float(probabilities.max()),
    )


def format_prediction(prediction: MLPrediction, top_n: int = 5) -> str:
    """Human-readable multi-line summary of a prediction.

    Example:
        Classification: match
        Probability: 91.2%
        Confidence: 70.7%
        Top Features:
          - email_exact: +2.310
          - name_jaro_winkler: +1.204
    """
    lines = [
        f"Classification: {prediction.classification}",
        f"Probability: {prediction.probability * 100:.1f}%",
        f"Confidence: {prediction.confidence * 100:.1f}%",
    ]
    if prediction.feature_importance:
        lines.append("Top Features:")
        for feature in get_top_features(prediction.feature_importance, top_n):
            lines.append(f"  - {feature.name}: {feature.contribution:+.3f}")
    return "\n".join(lines)
