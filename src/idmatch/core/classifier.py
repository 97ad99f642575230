"""
Logistic-regression match classifier.

SimpleClassifier scores a record pair as
``sigmoid(weights . features + bias)`` over the feature vector produced by
its FeatureExtractor, classifies the probability against two thresholds and
reports a confidence and per-feature contributions.

Weights are owned by the classifier: every accessor returns a copy, and a
failed ``load_weights`` leaves the previous state untouched.
"""

import asyncio
import copy
import json
import logging
import time
from collections.abc import Mapping, Sequence
from datetime import datetime
from importlib import resources
from typing import Any

import numpy as np
from dateutil import parser as date_parser
from pydantic import ValidationError

from idmatch.core.errors import (
    ConfigurationError,
    InvalidWeightsError,
    ModelNotReadyError,
)
from idmatch.core.features import FeatureExtractor
from idmatch.core.models import (
    ClassifierConfig,
    FeatureExtractionConfig,
    FeatureVector,
    MLPrediction,
    ModelMetadata,
    RecordPair,
    SerializedWeights,
    is_finite_number,
)
from idmatch.core.prediction import (
    LOGIT_CLAMP,
    calculate_confidence,
    calculate_feature_importance,
    classify,
)

logger = logging.getLogger(__name__)

MODEL_TYPE = "SimpleClassifier"
DEFAULT_VERSION = "1.0.0"
PRETRAINED_WEIGHTS = "person_matcher.json"


def _build_config(config: ClassifierConfig | Mapping[str, Any] | None) -> ClassifierConfig:
    if config is None:
        return ClassifierConfig()
    if isinstance(config, ClassifierConfig):
        return config
    return ClassifierConfig.model_validate(dict(config))


class SimpleClassifier:
    """Logistic regression over extracted pair features.

    The classifier is not ready until weights exist, either from
    ``load_weights``, ``set_weights_and_bias`` or training followed by
    ``mark_as_ready``. Predicting or exporting before that raises
    ModelNotReadyError.

    Example:
        extractor = FeatureExtractor.from_fields(["name", "email"])
        classifier = SimpleClassifier(feature_extractor=extractor)
        classifier.load_weights(read_weights("weights.json"))

        prediction = await classifier.predict(RecordPair(record1=a, record2=b))
        print(prediction.classification, prediction.probability)

    Note:
        Weight mutation (``load_weights``, ``update_weights``,
        ``set_weights_and_bias``) must not overlap with in-flight
        predictions; no locking is performed.
    """

    def __init__(
        self,
        feature_extractor: FeatureExtractor | None = None,
        config: ClassifierConfig | Mapping[str, Any] | None = None,
        feature_config: FeatureExtractionConfig | None = None,
    ):
        """Initialize SimpleClassifier.

        Args:
            feature_extractor: Extractor used by ``predict`` / ``extract_features``
            config: Thresholds and batching (defaults: 0.7 / 0.3, batch size 100)
            feature_config: Build an extractor from this config when
                ``feature_extractor`` is not given

        Raises:
            ConfigurationError: If the config or feature config is invalid.
        """
        self._config = _build_config(config)
        self._metadata = ModelMetadata(name=MODEL_TYPE, version=DEFAULT_VERSION)
        self._weights = np.zeros(0, dtype=float)
        self._bias = 0.0
        self._ready = False
        self._extra: dict[str, Any] | None = None
        self._feature_extractor: FeatureExtractor | None = None

        if feature_extractor is None and feature_config is not None:
            feature_extractor = FeatureExtractor(feature_config)
        if feature_extractor is not None:
            self.set_feature_extractor(feature_extractor)

    @property
    def metadata(self) -> ModelMetadata:
        return self._metadata.model_copy(deep=True)

    @property
    def config(self) -> ClassifierConfig:
        return self._config

    @property
    def feature_extractor(self) -> FeatureExtractor | None:
        return self._feature_extractor

    def set_config(self, **changes: Any) -> None:
        """Replace the config with the current one plus ``changes``.

        Raises:
            ConfigurationError: If the merged config is invalid.
        """
        self._config = self._config.with_overrides(**changes)

    def set_feature_extractor(self, extractor: FeatureExtractor) -> None:
        self._feature_extractor = extractor
        self._metadata.feature_names = extractor.get_feature_names()

    def is_ready(self) -> bool:
        return self._ready

    def _require_ready(self) -> None:
        if not self._ready:
            raise ModelNotReadyError("Model not ready. Load weights first.")

    def get_weights(self) -> list[float]:
        """Current weights (a copy)."""
        return self._weights.tolist()

    def get_bias(self) -> float:
        return self._bias

    def get_feature_count(self) -> int:
        if self._feature_extractor is not None:
            return self._feature_extractor.get_feature_count()
        return len(self._weights)

    def set_weights_and_bias(self, weights: Sequence[float], bias: float) -> None:
        """Assign weights directly; the model is ready if weights are non-empty.

        Without an attached extractor, feature names become ``feature_0`` ..
        ``feature_{n-1}`` unless the current names already match the length.

        Raises:
            InvalidWeightsError: If the length does not match the attached
                extractor's feature count, or a value is not finite.
        """
        if self._feature_extractor is not None:
            expected = self._feature_extractor.get_feature_count()
            if len(weights) != expected:
                raise InvalidWeightsError(
                    f"Weights length ({len(weights)}) must match feature count ({expected})"
                )
        if not all(is_finite_number(w) for w in weights) or not is_finite_number(bias):
            raise InvalidWeightsError("Weights and bias must be finite numbers")

        self._weights = np.array(weights, dtype=float)
        self._bias = float(bias)
        if len(self._metadata.feature_names) != len(weights):
            self._metadata.feature_names = [f"feature_{i}" for i in range(len(weights))]
        self._ready = len(weights) > 0

    def initialize_weights(
        self, feature_count: int, seed: int | np.random.Generator | None = None
    ) -> None:
        """Draw small random weights in [-0.05, 0.05).

        The model stays not ready: initial weights still need training.

        Args:
            feature_count: Number of weights to draw
            seed: Seed or generator; the same seed gives the same weights
        """
        rng = np.random.default_rng(seed)
        self._weights = (rng.random(feature_count) - 0.5) * 0.1
        self._bias = float((rng.random() - 0.5) * 0.1)
        self._ready = False

    def update_weights(
        self, weight_gradients: Sequence[float], bias_gradient: float, learning_rate: float
    ) -> None:
        """Apply one gradient-descent step: ``w -= lr * dw``, ``b -= lr * db``."""
        gradients = np.asarray(weight_gradients, dtype=float)
        if gradients.shape != self._weights.shape:
            raise ValueError(
                f"Gradient length ({gradients.size}) must match weights length "
                f"({self._weights.size})"
            )
        self._weights = self._weights - learning_rate * gradients
        self._bias -= learning_rate * bias_gradient

    def mark_as_ready(self) -> None:
        if self._weights.size == 0:
            raise ModelNotReadyError("Cannot mark as ready: no weights set")
        self._ready = True

    def set_training_metadata(
        self,
        accuracy: float | None = None,
        training_examples: int | None = None,
        trained_at: datetime | None = None,
    ) -> None:
        """Record training provenance; it is exported in ``extra``."""
        extra = dict(self._extra or {})
        if accuracy is not None:
            self._metadata.accuracy = accuracy
            extra["accuracy"] = accuracy
        if training_examples is not None:
            self._metadata.training_examples = training_examples
            extra["trainingExamples"] = training_examples
        if trained_at is not None:
            self._metadata.trained_at = trained_at
            extra["trainedAt"] = trained_at.isoformat()
        self._extra = extra or None

    def extract_features(self, pair: RecordPair) -> FeatureVector:
        """Encode a pair with the attached extractor.

        Raises:
            ConfigurationError: If no feature extractor is configured.
        """
        if self._feature_extractor is None:
            raise ConfigurationError(
                "Feature extractor not configured. "
                "Pass feature_extractor or call set_feature_extractor()"
            )
        return self._feature_extractor.extract(pair)

    def _logits(self, matrix: np.ndarray) -> np.ndarray:
        if matrix.shape[1] != self._weights.size:
            raise ValueError(
                f"Feature length ({matrix.shape[1]}) must match weights length "
                f"({self._weights.size})"
            )
        return np.clip(matrix @ self._weights + self._bias, -LOGIT_CLAMP, LOGIT_CLAMP)

    def _score_vectors(self, vectors: Sequence[FeatureVector]) -> list[MLPrediction]:
        if not vectors:
            return []

        matrix = np.asarray([vector.values for vector in vectors], dtype=float)
        probabilities = 1.0 / (1.0 + np.exp(-self._logits(matrix)))

        predictions = []
        for vector, probability in zip(vectors, probabilities, strict=True):
            p = float(probability)
            importance = (
                calculate_feature_importance(vector, self._weights.tolist())
                if self._config.include_feature_importance
                else []
            )
            predictions.append(
                MLPrediction(
                    probability=p,
                    classification=classify(p, self._config),
                    confidence=calculate_confidence(p, self._config),
                    features=vector,
                    feature_importance=importance,
                )
            )
        return predictions

    def predict_from_features(self, features: FeatureVector) -> MLPrediction:
        """Score an already extracted feature vector."""
        self._require_ready()
        return self._score_vectors([features])[0]

    def predict_batch_from_features(self, vectors: Sequence[FeatureVector]) -> list[MLPrediction]:
        """Score feature vectors; output order matches input order."""
        self._require_ready()
        return self._score_vectors(vectors)

    async def predict(self, pair: RecordPair) -> MLPrediction:
        """Score one record pair.

        Raises:
            ModelNotReadyError: If no weights are loaded.
            ConfigurationError: If no feature extractor is configured.
        """
        self._require_ready()
        start = time.perf_counter()
        prediction = self._score_vectors([self.extract_features(pair)])[0]
        logger.debug(
            "Predicted %.4f (%s) in %.2fms",
            prediction.probability,
            prediction.classification,
            (time.perf_counter() - start) * 1000.0,
        )
        return prediction

    async def predict_batch(self, pairs: Sequence[RecordPair]) -> list[MLPrediction]:
        """Score many pairs in chunks of ``config.batch_size``.

        Control returns to the event loop between chunks so that long batches
        do not starve other tasks. Output order matches input order.
        """
        self._require_ready()
        batch_size = self._config.batch_size
        predictions: list[MLPrediction] = []

        for offset in range(0, len(pairs), batch_size):
            if offset:
                await asyncio.sleep(0)
            chunk = pairs[offset : offset + batch_size]
            vectors = [self.extract_features(pair) for pair in chunk]
            predictions.extend(self._score_vectors(vectors))

        logger.debug("Predicted batch of %d pairs (batch size %d)", len(pairs), batch_size)
        return predictions

    def load_weights(self, weights: SerializedWeights | Mapping[str, Any]) -> None:
        """Validate and install serialized weights.

        Checks, in order: model type tag, non-empty finite weights, finite
        bias, feature names length, and the attached extractor's feature
        count. Nothing is changed unless every check passes.

        Raises:
            InvalidWeightsError: On the first failed check.
        """
        raw = weights.to_dict() if isinstance(weights, SerializedWeights) else dict(weights)

        model_type = raw.get("modelType", raw.get("model_type"))
        if model_type != MODEL_TYPE:
            raise InvalidWeightsError(
                f'Invalid model type: expected "{MODEL_TYPE}", got "{model_type}"'
            )

        values = raw.get("weights")
        if not isinstance(values, list | tuple) or not values:
            raise InvalidWeightsError("Weights must be a non-empty array")
        if not all(is_finite_number(w) for w in values):
            raise InvalidWeightsError("All weights must be finite numbers")
        if not is_finite_number(raw.get("bias")):
            raise InvalidWeightsError("Bias must be a finite number")

        try:
            parsed = SerializedWeights.model_validate(raw)
        except ValidationError as exc:
            raise InvalidWeightsError(f"Malformed weights: {exc}") from exc

        if len(parsed.feature_names) != len(parsed.weights):
            raise InvalidWeightsError(
                f"Feature names length ({len(parsed.feature_names)}) must match "
                f"weights length ({len(parsed.weights)})"
            )
        if self._feature_extractor is not None:
            expected = self._feature_extractor.get_feature_count()
            if expected != len(parsed.weights):
                raise InvalidWeightsError(
                    f"Weights length ({len(parsed.weights)}) must match feature "
                    f"extractor feature count ({expected})"
                )

        self._weights = np.array(parsed.weights, dtype=float)
        self._bias = float(parsed.bias)
        self._metadata.feature_names = list(parsed.feature_names)
        self._metadata.version = parsed.version
        self._extra = copy.deepcopy(parsed.extra)
        self._apply_extra_metadata(parsed.extra or {})
        self._ready = True

        logger.info(
            "Loaded %s weights v%s (%d features)",
            MODEL_TYPE,
            parsed.version,
            len(parsed.weights),
        )

    def _apply_extra_metadata(self, extra: Mapping[str, Any]) -> None:
        trained_at = extra.get("trainedAt")
        if isinstance(trained_at, str):
            try:
                self._metadata.trained_at = date_parser.isoparse(trained_at)
            except ValueError:
                logger.warning("Ignoring unparseable trainedAt value: %r", trained_at)
        accuracy = extra.get("accuracy")
        if is_finite_number(accuracy):
            self._metadata.accuracy = float(accuracy)
        training_examples = extra.get("trainingExamples")
        if isinstance(training_examples, int) and not isinstance(training_examples, bool):
            self._metadata.training_examples = training_examples

    def export_weights(self) -> SerializedWeights:
        """Serialize the current weights.

        Exporting right after ``load_weights(w)`` reproduces ``w``.

        Raises:
            ModelNotReadyError: If the model has no weights.
        """
        if not self._ready:
            raise ModelNotReadyError("Model not ready. No weights to export.")

        return SerializedWeights(
            model_type=MODEL_TYPE,
            version=self._metadata.version,
            weights=self._weights.tolist(),
            bias=self._bias,
            feature_names=list(self._metadata.feature_names),
            extra=copy.deepcopy(self._extra),
        )

    def get_feature_importance(self) -> list[dict[str, Any]]:
        """Global importance: each feature's weight, ordered by |weight| descending."""
        self._require_ready()
        importance = [
            {"name": name, "weight": float(weight), "importance": abs(float(weight))}
            for name, weight in zip(self._metadata.feature_names, self._weights, strict=False)
        ]
        importance.sort(key=lambda item: item["importance"], reverse=True)
        return importance

    def clone(self) -> "SimpleClassifier":
        """Independent copy sharing the (immutable) config and extractor."""
        clone = SimpleClassifier(feature_extractor=self._feature_extractor, config=self._config)
        clone._metadata = self._metadata.model_copy(deep=True)
        clone._extra = copy.deepcopy(self._extra)
        if self._ready:
            clone.set_weights_and_bias(self._weights.tolist(), self._bias)
        return clone


def create_person_matching_classifier() -> SimpleClassifier:
    """Classifier wired to ``FeatureExtractor.for_person_matching()``; needs weights."""
    return SimpleClassifier(feature_extractor=FeatureExtractor.for_person_matching())


def load_pretrained_weights() -> SerializedWeights:
    """Bundled weights for the ``DEFAULT_PERSON_FEATURE_CONFIG`` feature layout."""
    payload = resources.files("idmatch.core").joinpath("pretrained", PRETRAINED_WEIGHTS)
    return SerializedWeights.model_validate(json.loads(payload.read_text(encoding="utf-8")))


def create_pretrained_classifier(config: ClassifierConfig | None = None) -> SimpleClassifier:
    """Ready-to-use person matching classifier with the bundled weights.

    Records are expected to carry ``first_name``, ``last_name``, ``email``,
    ``phone``, ``date_of_birth``, ``address`` and ``ssn``; absent fields
    are tolerated.

    Example:
        classifier = create_pretrained_classifier()
        prediction = await classifier.predict(RecordPair(record1=a, record2=b))
    """
    classifier = SimpleClassifier(
        feature_extractor=FeatureExtractor.for_person_matching(), config=config
    )
    classifier.load_weights(load_pretrained_weights())
    return classifier


def create_classifier_from_fields(fields: Sequence[str]) -> SimpleClassifier:
    """Classifier over jaro_winkler + exact features of ``fields``; needs weights."""
    return SimpleClassifier(feature_extractor=FeatureExtractor.from_fields(fields))


def is_valid_simple_classifier_weights(weights: Any) -> bool:
    """True if ``weights`` is a mapping (or SerializedWeights) loadable by SimpleClassifier.

    The extractor-count check of ``load_weights`` is not applied here.
    """
    if isinstance(weights, SerializedWeights):
        weights = weights.to_dict()
    if not isinstance(weights, Mapping):
        return False

    values = weights.get("weights")
    names = weights.get("featureNames")
    return (
        weights.get("modelType") == MODEL_TYPE
        and isinstance(weights.get("version"), str)
        and isinstance(values, list | tuple)
        and len(values) > 0
        and all(is_finite_number(w) for w in values)
        and is_finite_number(weights.get("bias"))
        and isinstance(names, list | tuple)
        and all(isinstance(name, str) for name in names)
        and len(names) == len(values)
    )
