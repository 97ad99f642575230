"""
Gradient-descent trainer for SimpleClassifier.

ModelTrainer fits logistic-regression weights on a labelled TrainingDataset:

- Seeded shuffle and train/validation split
- Feature extraction once per example
- Xavier-style initialisation, scale sqrt(2 / feature_count)
- L2-regularised binary cross-entropy, full-batch or mini-batch updates
- Early stopping on validation loss

Training problems never raise: ``train()`` always returns a TrainingResult
and callers inspect ``result.success`` / ``result.error``.
"""

import logging
import math
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import numpy as np

from idmatch.core.classifier import SimpleClassifier
from idmatch.core.errors import ConfigurationError, IdMatchError
from idmatch.core.features import FeatureExtractor
from idmatch.core.models import (
    ClassifierConfig,
    FeatureExtractionConfig,
    TrainingConfig,
    TrainingDataset,
    TrainingExample,
    TrainingMetrics,
    TrainingResult,
)
from idmatch.core.prediction import LOGIT_CLAMP
from idmatch.data.splitting import train_validation_split

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TrainingMetrics], None]

# Probabilities are clamped into [EPS, 1 - EPS] inside the log terms only
EPS = 1e-15


def _sigmoid(logits: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(logits, -LOGIT_CLAMP, LOGIT_CLAMP)))


def _loss(
    probabilities: np.ndarray, labels: np.ndarray, weights: np.ndarray, regularization: float
) -> float:
    p = np.clip(probabilities, EPS, 1.0 - EPS)
    cross_entropy = np.mean(-labels * np.log(p) - (1.0 - labels) * np.log(1.0 - p))
    return float(cross_entropy + (regularization / 2.0) * np.dot(weights, weights))


def _accuracy(probabilities: np.ndarray, labels: np.ndarray, threshold: float = 0.5) -> float:
    predicted = (probabilities >= threshold).astype(float)
    return float(np.mean(predicted == labels))


class ModelTrainer:
    """Trains SimpleClassifier weights by batch gradient descent.

    Each iteration computes, over the training set,
    ``loss = mean(-y log p - (1 - y) log(1 - p)) + (reg / 2) * sum(w^2)`` and
    the gradients ``dw = mean(error * x) + reg * w``, ``db = mean(error)``
    with ``error = p - y``, then updates ``w -= lr * dw`` and ``b -= lr * db``.

    With a validation set, training stops early once validation loss has
    failed to improve by ``min_improvement`` for ``early_stopping_patience``
    consecutive iterations.

    Example:
        trainer = ModelTrainer(
            feature_extractor=FeatureExtractor.from_fields(["name", "email"]),
            config=TrainingConfig(max_iterations=500, seed=42),
        )
        classifier, result = await trainer.train_classifier(dataset)
        if not result.success:
            raise RuntimeError(result.error)

    Note:
        With the same seed and dataset, two runs produce identical
        histories and final weights. Shuffling and initialisation draw from
        independent streams spawned from one SeedSequence.
    """

    def __init__(
        self,
        feature_extractor: FeatureExtractor | None = None,
        config: TrainingConfig | Mapping[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
        progress_interval: int = 10,
        seed: int | None = None,
        classifier_config: ClassifierConfig | None = None,
        feature_config: FeatureExtractionConfig | None = None,
    ):
        """Initialize ModelTrainer.

        Args:
            feature_extractor: Extractor used to encode training pairs
            config: Training hyperparameters (defaults + overrides)
            on_progress: Called with the metrics of every
                ``progress_interval``-th iteration
            progress_interval: Iterations between progress callbacks
            seed: Seed for shuffling and initialisation; overrides ``config.seed``
            classifier_config: Config for classifiers built by ``train_classifier``
            feature_config: Build an extractor from this config when
                ``feature_extractor`` is not given

        Raises:
            ConfigurationError: If the training config is invalid or
                progress_interval is not positive.
        """
        if config is None:
            config = TrainingConfig()
        elif not isinstance(config, TrainingConfig):
            config = TrainingConfig.model_validate(dict(config))
        if progress_interval <= 0:
            raise ConfigurationError(f"progress_interval must be > 0, got {progress_interval}")

        if feature_extractor is None and feature_config is not None:
            feature_extractor = FeatureExtractor(feature_config)

        self._config = config
        self._feature_extractor = feature_extractor
        self._on_progress = on_progress
        self._progress_interval = progress_interval
        self._seed = seed if seed is not None else config.seed
        self._classifier_config = classifier_config

    @property
    def config(self) -> TrainingConfig:
        return self._config

    @property
    def feature_extractor(self) -> FeatureExtractor | None:
        return self._feature_extractor

    def set_feature_extractor(self, extractor: FeatureExtractor) -> None:
        self._feature_extractor = extractor

    def _failure(self, error: str, start: float) -> TrainingResult:
        return TrainingResult(
            success=False,
            final_metrics=TrainingMetrics(
                iteration=0, training_loss=math.inf, training_accuracy=0.0
            ),
            training_time_ms=(time.perf_counter() - start) * 1000.0,
            error=error,
        )

    async def train(self, dataset: TrainingDataset) -> TrainingResult:
        """Fit weights on ``dataset``.

        Returns:
            TrainingResult with ``success=False`` and ``error`` set for an
            empty dataset, a missing feature extractor, or any failure during
            training; otherwise final weights, bias and the metrics history.
        """
        start = time.perf_counter()

        if not dataset.examples:
            return self._failure("Dataset must contain at least one example", start)
        if self._feature_extractor is None:
            return self._failure(
                "Feature extractor not configured. Call set_feature_extractor() first.", start
            )

        try:
            return self._fit(dataset.examples, self._feature_extractor, start)
        except Exception as exc:
            logger.exception("Training failed")
            return self._failure(str(exc), start)

    def _prepare(
        self, examples: Sequence[TrainingExample], extractor: FeatureExtractor
    ) -> tuple[np.ndarray, np.ndarray]:
        features = np.asarray(
            [extractor.extract(example.pair).values for example in examples], dtype=float
        ).reshape(len(examples), extractor.get_feature_count())
        labels = np.asarray(
            [1.0 if example.label == "match" else 0.0 for example in examples], dtype=float
        )
        return features, labels

    def _fit(
        self,
        examples: Sequence[TrainingExample],
        extractor: FeatureExtractor,
        start: float,
    ) -> TrainingResult:
        config = self._config
        feature_count = extractor.get_feature_count()
        if feature_count == 0:
            return self._failure("Feature extractor produces no features", start)

        shuffle_seq, init_seq = np.random.SeedSequence(self._seed).spawn(2)
        shuffle_rng = np.random.default_rng(shuffle_seq)
        init_rng = np.random.default_rng(init_seq)

        train_examples, val_examples = train_validation_split(
            examples, config.validation_split, shuffle_rng
        )
        x_train, y_train = self._prepare(train_examples, extractor)
        x_val, y_val = self._prepare(val_examples, extractor) if val_examples else (None, None)

        scale = math.sqrt(2.0 / feature_count)
        weights = (init_rng.random(feature_count) - 0.5) * scale
        bias = float((init_rng.random() - 0.5) * scale)

        logger.info(
            "Training on %d examples (%d train, %d validation, %d features)",
            len(examples),
            len(train_examples),
            len(val_examples),
            feature_count,
        )

        history: list[TrainingMetrics] = []
        best_val_loss = math.inf
        patience = 0
        early_stopped = False

        for iteration in range(1, config.max_iterations + 1):
            if config.batch_size is None:
                loss, weights, bias = self._step(x_train, y_train, weights, bias)
            else:
                loss = _loss(
                    _sigmoid(x_train @ weights + bias), y_train, weights, config.regularization
                )
                order = shuffle_rng.permutation(len(y_train))
                for offset in range(0, len(order), config.batch_size):
                    batch = order[offset : offset + config.batch_size]
                    _, weights, bias = self._step(x_train[batch], y_train[batch], weights, bias)

            metrics: dict[str, Any] = {
                "iteration": iteration,
                "training_loss": loss,
                "training_accuracy": _accuracy(_sigmoid(x_train @ weights + bias), y_train),
            }

            if x_val is not None and y_val is not None:
                val_probabilities = _sigmoid(x_val @ weights + bias)
                val_loss = _loss(val_probabilities, y_val, weights, config.regularization)
                metrics["validation_loss"] = val_loss
                metrics["validation_accuracy"] = _accuracy(val_probabilities, y_val)

                if val_loss < best_val_loss - config.min_improvement:
                    best_val_loss = val_loss
                    patience = 0
                else:
                    patience += 1

                early_stopped = patience >= config.early_stopping_patience

            history.append(TrainingMetrics(**metrics))

            if self._on_progress is not None and iteration % self._progress_interval == 0:
                self._on_progress(history[-1])

            if early_stopped:
                logger.info(
                    "Early stopping at iteration %d (best validation loss %.6f)",
                    iteration,
                    best_val_loss,
                )
                break

        final_metrics = history[-1]
        training_time_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "Training finished after %d iterations in %.1fms (loss %.6f, accuracy %.3f)",
            final_metrics.iteration,
            training_time_ms,
            final_metrics.training_loss,
            final_metrics.training_accuracy,
        )

        return TrainingResult(
            success=True,
            weights=tuple(weights.tolist()),
            bias=bias,
            final_metrics=final_metrics,
            history=tuple(history),
            training_time_ms=training_time_ms,
            early_stopped=early_stopped,
        )

    def _step(
        self, features: np.ndarray, labels: np.ndarray, weights: np.ndarray, bias: float
    ) -> tuple[float, np.ndarray, float]:
        """One gradient-descent update; returns (pre-update loss, weights, bias)."""
        config = self._config
        probabilities = _sigmoid(features @ weights + bias)
        loss = _loss(probabilities, labels, weights, config.regularization)

        # Gradients use the unclamped error
        error = probabilities - labels
        weight_gradients = features.T @ error / len(labels) + config.regularization * weights
        bias_gradient = float(np.mean(error))

        return (
            loss,
            weights - config.learning_rate * weight_gradients,
            bias - config.learning_rate * bias_gradient,
        )

    async def train_classifier(
        self, dataset: TrainingDataset
    ) -> tuple[SimpleClassifier | None, TrainingResult]:
        """Train and wrap the result in a ready SimpleClassifier.

        Returns:
            Tuple of (classifier, result). The classifier is None when
            training failed.
        """
        result = await self.train(dataset)
        if not result.success or result.weights is None or result.bias is None:
            return None, result

        classifier = SimpleClassifier(
            feature_extractor=self._feature_extractor, config=self._classifier_config
        )
        try:
            classifier.set_weights_and_bias(list(result.weights), result.bias)
        except IdMatchError as exc:
            logger.warning("Trained weights rejected: %s", exc)
            return None, result.model_copy(update={"success": False, "error": str(exc)})

        final = result.final_metrics
        classifier.set_training_metadata(
            accuracy=(
                final.validation_accuracy
                if final.validation_accuracy is not None
                else final.training_accuracy
            ),
            training_examples=len(dataset.examples),
            trained_at=datetime.now(timezone.utc),
        )
        return classifier, result
