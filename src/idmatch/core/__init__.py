"""
idmatch.core: Feature extraction, classification and prediction primitives.

This module provides the building blocks of ML-assisted matching: turning
record pairs into feature vectors and scoring them with a trainable
classifier.
"""

from idmatch.core import comparators
from idmatch.core.classifier import (
    MODEL_TYPE,
    SimpleClassifier,
    create_classifier_from_fields,
    create_person_matching_classifier,
    create_pretrained_classifier,
    is_valid_simple_classifier_weights,
    load_pretrained_weights,
)
from idmatch.core.errors import (
    ConfigurationError,
    IdMatchError,
    InvalidWeightsError,
    ModelNotReadyError,
    PredictionError,
    PredictionTimeoutError,
)
from idmatch.core.features import (
    DEFAULT_PERSON_FEATURE_CONFIG,
    DEFAULT_PERSON_FEATURE_COUNT,
    DEFAULT_PERSON_FEATURE_NAMES,
    EXTENDED_FEATURE_CONFIG,
    MINIMAL_FEATURE_CONFIG,
    MINIMAL_FEATURE_NAMES,
    PATIENT_FEATURE_CONFIG,
    FeatureConfigBuilder,
    FeatureExtractor,
    FeaturePreset,
    calculate_feature_count,
    calculate_feature_stats,
    compare_feature_vectors,
    generate_feature_names,
    get_feature_by_name,
    get_feature_config,
    get_field_features,
)
from idmatch.core.model import MatchModel
from idmatch.core.models import (
    ClassifierConfig,
    FeatureExtractionConfig,
    FeatureImportance,
    FeatureVector,
    FieldFeatureConfig,
    MLPrediction,
    ModelMetadata,
    PredictionStats,
    RecordPair,
    SerializedWeights,
    TrainingConfig,
    TrainingDataset,
    TrainingExample,
    TrainingMetrics,
    TrainingResult,
)
from idmatch.core.prediction import (
    calculate_confidence,
    calculate_feature_importance,
    calculate_prediction_stats,
    classify,
    filter_by_classification,
    filter_by_min_confidence,
    filter_by_min_probability,
    format_prediction,
    get_top_features,
    sigmoid,
    sort_by_confidence,
    sort_by_probability,
)

__all__ = [
    # Models
    "ClassifierConfig",
    "FeatureExtractionConfig",
    "FeatureImportance",
    "FeatureVector",
    "FieldFeatureConfig",
    "MLPrediction",
    "ModelMetadata",
    "PredictionStats",
    "RecordPair",
    "SerializedWeights",
    "TrainingConfig",
    "TrainingDataset",
    "TrainingExample",
    "TrainingMetrics",
    "TrainingResult",
    # Errors
    "ConfigurationError",
    "IdMatchError",
    "InvalidWeightsError",
    "ModelNotReadyError",
    "PredictionError",
    "PredictionTimeoutError",
    # Feature extraction
    "FeatureConfigBuilder",
    "FeatureExtractor",
    "calculate_feature_stats",
    "compare_feature_vectors",
    "comparators",
    "get_feature_by_name",
    "get_field_features",
    # Feature presets
    "DEFAULT_PERSON_FEATURE_CONFIG",
    "DEFAULT_PERSON_FEATURE_COUNT",
    "DEFAULT_PERSON_FEATURE_NAMES",
    "EXTENDED_FEATURE_CONFIG",
    "FeaturePreset",
    "MINIMAL_FEATURE_CONFIG",
    "MINIMAL_FEATURE_NAMES",
    "PATIENT_FEATURE_CONFIG",
    "calculate_feature_count",
    "generate_feature_names",
    "get_feature_config",
    # Classifier
    "MODEL_TYPE",
    "MatchModel",
    "SimpleClassifier",
    "create_classifier_from_fields",
    "create_person_matching_classifier",
    "create_pretrained_classifier",
    "is_valid_simple_classifier_weights",
    "load_pretrained_weights",
    # Prediction helpers
    "calculate_confidence",
    "calculate_feature_importance",
    "calculate_prediction_stats",
    "classify",
    "filter_by_classification",
    "filter_by_min_confidence",
    "filter_by_min_probability",
    "format_prediction",
    "get_top_features",
    "sigmoid",
    "sort_by_confidence",
    "sort_by_probability",
]
