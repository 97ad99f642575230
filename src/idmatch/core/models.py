"""
Data contracts for the idmatch ML matching core.

This module defines the Pydantic models shared by every component:

- RecordPair[RecordT]: Pair of records handed to feature extraction
- FeatureVector: Fixed-length numeric encoding of a record pair
- FieldFeatureConfig / FeatureExtractionConfig: What to extract, per field
- ClassifierConfig / ModelMetadata: Classifier thresholds and identity
- MLPrediction / FeatureImportance: Scored output of a classifier
- TrainingExample / TrainingDataset / TrainingConfig: Supervised training input
- TrainingMetrics / TrainingResult: Supervised training output
- SerializedWeights: The persisted weight artifact (camelCase JSON keys)

Config models are frozen. Use ``with_overrides()`` to derive a new,
re-validated instance from defaults plus explicit changes.
"""

import math
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Generic, Literal, Self, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    model_validator,
)

from idmatch.core.errors import ConfigurationError

# Generic type variable for the records inside a pair (dicts, Pydantic models, ...)
RecordT = TypeVar("RecordT")

MLMatchOutcome = Literal["match", "non_match", "uncertain"]
TrainingLabel = Literal["match", "non_match"]

ExtractorKind = Literal[
    "exact",
    "levenshtein",
    "jaro_winkler",
    "soundex",
    "metaphone",
    "numeric_diff",
    "date_diff",
    "missing",
    "custom",
]

EXTRACTOR_KINDS: tuple[str, ...] = (
    "exact",
    "levenshtein",
    "jaro_winkler",
    "soundex",
    "metaphone",
    "numeric_diff",
    "date_diff",
    "missing",
    "custom",
)

CustomExtractorFn = Callable[[Any, Any], float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FrozenConfig(BaseModel):
    """Base for immutable configuration values.

    Invalid values raise ConfigurationError (a ValueError) rather than a
    pydantic ValidationError, whether the config is built from keyword
    arguments, ``model_validate`` or ``with_overrides``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, /, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid {type(self).__name__}: {exc}") from exc

    @classmethod
    def model_validate(cls, obj: Any, **kwargs: Any) -> Self:
        try:
            return super().model_validate(obj, **kwargs)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid {cls.__name__}: {exc}") from exc

    def with_overrides(self, **changes: Any) -> Self:
        """Return a new config built from this one plus ``changes``.

        The merged values are validated again, so an override that breaks
        an invariant raises ConfigurationError instead of producing an
        inconsistent config.

        Example:
            strict = ClassifierConfig().with_overrides(match_threshold=0.9)
        """
        current = {name: getattr(self, name) for name in type(self).model_fields}
        current.update(changes)
        return type(self).model_validate(current)


class RecordPair(BaseModel, Generic[RecordT]):
    """
    A pair of records to compare.

    Records can be plain dicts or any object exposing attributes (e.g. a
    Pydantic model); feature extraction resolves dotted field paths on both.

    Attributes:
        record1: The candidate record
        record2: The existing record
        label: Optional known outcome (used when the pair is training data)
    """

    record1: RecordT
    record2: RecordT
    label: MLMatchOutcome | None = None


class FeatureVector(BaseModel):
    """Numeric features extracted from a record pair.

    Attributes:
        values: Feature values, in the extractor's feature-name order
        names: Feature names (``"<field>_<extractor>"``)
        metadata: Optional extraction details (timing, missing field count)
    """

    model_config = ConfigDict(frozen=True)

    values: list[float]
    names: list[str]
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_lengths(self) -> "FeatureVector":
        if len(self.values) != len(self.names):
            raise ValueError(
                f"Feature values length ({len(self.values)}) must match "
                f"names length ({len(self.names)})"
            )
        return self


class FeatureImportance(BaseModel):
    """Contribution of one feature to a single prediction."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float
    contribution: float
    importance: float


class FieldFeatureConfig(FrozenConfig):
    """Feature extraction settings for one record field.

    Attributes:
        field: Field path in the records; dots address nested values
        extractors: Extractor kinds applied to this field, in order
        weight: Multiplier applied to every extractor value of this field
        include_missing_indicator: Append a ``<field>_missing`` feature.
            None defers to the extraction config default.
    """

    field: str
    extractors: tuple[ExtractorKind, ...]
    weight: float | None = Field(default=None, gt=0.0)
    include_missing_indicator: bool | None = None


class FeatureExtractionConfig(FrozenConfig):
    """Ordered per-field extraction settings.

    Attributes:
        fields: Field configurations; feature order follows this order
        normalize: Clamp every feature value into [0, 1]
        custom_extractors: Functions for ``custom`` extractors, keyed by field
        default_weight: Weight used for fields that do not set one
        include_missing_by_default: Default for ``include_missing_indicator``
    """

    fields: tuple[FieldFeatureConfig, ...]
    normalize: bool = True
    custom_extractors: dict[str, CustomExtractorFn] = Field(default_factory=dict)
    default_weight: float = Field(default=1.0, gt=0.0)
    include_missing_by_default: bool = True


class ClassifierConfig(FrozenConfig):
    """Thresholds and behaviour of a match classifier.

    Attributes:
        match_threshold: Probability at or above which a pair is a match
        non_match_threshold: Probability at or below which a pair is a non-match
        include_feature_importance: Attach per-feature contributions to predictions
        batch_size: Number of pairs scored per chunk in ``predict_batch``
    """

    match_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    non_match_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    include_feature_importance: bool = True
    batch_size: int = Field(default=100, gt=0)

    @model_validator(mode="after")
    def _check_threshold_order(self) -> "ClassifierConfig":
        if not self.non_match_threshold < self.match_threshold:
            raise ValueError(
                "non_match_threshold must be < match_threshold "
                f"(got {self.non_match_threshold} >= {self.match_threshold})"
            )
        return self


class ModelMetadata(BaseModel):
    """Identity and provenance of a model."""

    name: str
    version: str
    trained_at: datetime | None = None
    accuracy: float | None = None
    training_examples: int | None = None
    feature_names: list[str] = Field(default_factory=list)


class MLPrediction(BaseModel):
    """
    Output of a classifier for one record pair.

    Attributes:
        probability: Match probability in [0.0, 1.0]
        classification: ``match``, ``non_match`` or ``uncertain``
        confidence: Distance from the deciding threshold, in [0.0, 1.0]
        features: The feature vector the prediction was computed from
        feature_importance: Per-feature contributions, largest first
    """

    model_config = ConfigDict(frozen=True)

    probability: float = Field(..., ge=0.0, le=1.0)
    classification: MLMatchOutcome
    confidence: float = Field(..., ge=0.0, le=1.0)
    features: FeatureVector
    feature_importance: list[FeatureImportance] = Field(default_factory=list)


class TrainingExample(BaseModel):
    """A labelled record pair."""

    pair: RecordPair
    label: TrainingLabel
    source: str | None = None
    timestamp: datetime | None = None


class TrainingDataset(BaseModel):
    """
    Labelled examples for supervised training.

    Match and non-match counts are derived from the examples and cannot be
    set independently.
    """

    examples: list[TrainingExample]
    name: str | None = None
    description: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def match_count(self) -> int:
        return sum(1 for example in self.examples if example.label == "match")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def non_match_count(self) -> int:
        return len(self.examples) - self.match_count


class TrainingConfig(FrozenConfig):
    """
    Hyperparameters for gradient descent training.

    Attributes:
        learning_rate: Step size for each weight update
        max_iterations: Upper bound on training iterations
        regularization: L2 penalty strength
        validation_split: Fraction of examples held out (0 disables validation)
        early_stopping_patience: Iterations without improvement before stopping
        min_improvement: Validation loss decrease that counts as improvement
        seed: Seed for shuffling and weight initialisation
        batch_size: Mini-batch size; None trains on the full batch
    """

    learning_rate: float = Field(default=0.01, gt=0.0)
    max_iterations: int = Field(default=1000, gt=0)
    regularization: float = Field(default=0.001, ge=0.0)
    validation_split: float = Field(default=0.2, ge=0.0, lt=1.0)
    early_stopping_patience: int = Field(default=10, gt=0)
    min_improvement: float = Field(default=0.001, ge=0.0)
    seed: int | None = None
    batch_size: int | None = Field(default=None, gt=0)


class TrainingMetrics(BaseModel):
    """Metrics recorded after one training iteration."""

    model_config = ConfigDict(frozen=True)

    iteration: int
    training_loss: float
    training_accuracy: float
    validation_loss: float | None = None
    validation_accuracy: float | None = None


class TrainingResult(BaseModel):
    """
    Outcome of a training run.

    Training never raises for dataset or configuration problems; inspect
    ``success`` and ``error`` instead.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    weights: tuple[float, ...] | None = None
    bias: float | None = None
    final_metrics: TrainingMetrics
    history: tuple[TrainingMetrics, ...] = ()
    training_time_ms: float
    early_stopped: bool = False
    error: str | None = None


class SerializedWeights(BaseModel):
    """
    Persisted model weights.

    Serialises with camelCase keys (``modelType``, ``featureNames``) so the
    JSON form matches weight files produced by other implementations.

    Example:
        weights = classifier.export_weights()
        payload = weights.to_json()
        classifier.load_weights(SerializedWeights.model_validate_json(payload))
    """

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_type: str = Field(alias="modelType")
    version: str
    weights: list[float]
    bias: float
    feature_names: list[str] = Field(alias="featureNames")
    extra: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self, indent: int | None = 2) -> str:
        """Serialise to JSON with camelCase keys."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


class PredictionStats(BaseModel):
    """Aggregate statistics over a set of predictions."""

    total: int
    match_count: int
    non_match_count: int
    uncertain_count: int
    avg_probability: float
    avg_confidence: float
    min_probability: float
    max_probability: float


def is_finite_number(value: Any) -> bool:
    """True for real (non-bool) numbers that are neither NaN nor infinite."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)
