"""Evaluation of a trained classifier against labelled examples."""

import logging

import numpy as np
from pydantic import BaseModel

from idmatch.core.classifier import SimpleClassifier
from idmatch.core.models import TrainingDataset

logger = logging.getLogger(__name__)


class ClassificationMetrics(BaseModel):
    """Binary classification metrics at a fixed probability threshold."""

    accuracy: float
    precision: float
    recall: float
    f1: float
    tp: int
    fp: int
    tn: int
    fn: int


def evaluate_classifier(
    classifier: SimpleClassifier,
    dataset: TrainingDataset,
    threshold: float = 0.5,
) -> ClassificationMetrics:
    """Score every example and compare against its label.

    A pair is predicted as a match when its probability is at or above
    ``threshold``; the classifier's own match/non-match thresholds are not
    used, so the metrics are comparable with training accuracy.

    Args:
        classifier: A ready classifier with a feature extractor
        dataset: Labelled examples
        threshold: Probability cut-off for a positive prediction

    Returns:
        ClassificationMetrics; precision, recall and F1 are 0.0 when
        undefined.

    Example:
        metrics = evaluate_classifier(classifier, holdout)
        # ClassificationMetrics(accuracy=0.95, precision=1.0, recall=0.9, f1=0.947, ...)
    """
    vectors = [classifier.extract_features(example.pair) for example in dataset.examples]
    predictions = classifier.predict_batch_from_features(vectors)

    predicted = np.asarray([p.probability >= threshold for p in predictions], dtype=bool)
    actual = np.asarray([ex.label == "match" for ex in dataset.examples], dtype=bool)

    tp = int(np.sum(predicted & actual))
    fp = int(np.sum(predicted & ~actual))
    tn = int(np.sum(~predicted & ~actual))
    fn = int(np.sum(~predicted & actual))

    total = len(dataset.examples)
    precision = tp / (tp + fp) if (tp + fp) > 0 else 0.0
    recall = tp / (tp + fn) if (tp + fn) > 0 else 0.0
    f1 = 2 * (precision * recall) / (precision + recall) if (precision + recall) > 0 else 0.0

    logger.info(
        "Evaluated %d examples: precision %.3f, recall %.3f, f1 %.3f",
        total,
        precision,
        recall,
        f1,
    )
    return ClassificationMetrics(
        accuracy=(tp + tn) / total if total > 0 else 0.0,
        precision=precision,
        recall=recall,
        f1=f1,
        tp=tp,
        fp=fp,
        tn=tn,
        fn=fn,
    )
