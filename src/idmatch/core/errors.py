"""Exception hierarchy for idmatch.

Configuration problems are raised at construction time, model lifecycle
and weight problems are raised by the classifier, and prediction problems
are raised by the score integrator when it is not configured to fall back.
Training never raises these; failures are reported on the TrainingResult.
"""


class IdMatchError(Exception):
    """Base class for all idmatch errors."""


class ConfigurationError(IdMatchError, ValueError):
    """Invalid configuration detected at construction time.

    Examples: a field with no extractors, a missing field name, a custom
    extractor without a registered function, or thresholds out of order.
    """


class ModelNotReadyError(IdMatchError, RuntimeError):
    """A model was asked to predict or export before weights exist."""


class InvalidWeightsError(IdMatchError, ValueError):
    """Serialized weights failed validation; the model state is unchanged."""


class PredictionError(IdMatchError, RuntimeError):
    """An ML prediction failed while scoring a match."""


class PredictionTimeoutError(PredictionError, TimeoutError):
    """An ML prediction did not complete within the configured timeout."""
