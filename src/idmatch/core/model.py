"""
Capability interface for match models.

Any object providing these methods can be trained against, scored with, or
plugged into the ScoreIntegrator. There is no shared base class: each model
owns its own weights and configuration.
"""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from idmatch.core.models import (
    ClassifierConfig,
    FeatureVector,
    MLPrediction,
    ModelMetadata,
    RecordPair,
    SerializedWeights,
)


@runtime_checkable
class MatchModel(Protocol):
    """Protocol for models that score record pairs.

    ``predict`` and ``predict_batch`` are coroutines so that implementations
    backed by a remote service fit the same contract as in-process ones.

    Note:
        Mutating a model (``load_weights``, weight updates) while predictions
        are in flight is undefined behaviour. Callers must serialise
        mutation against prediction.
    """

    @property
    def metadata(self) -> ModelMetadata: ...

    @property
    def config(self) -> ClassifierConfig: ...

    def set_config(self, **changes: Any) -> None: ...

    async def predict(self, pair: RecordPair) -> MLPrediction: ...

    async def predict_batch(self, pairs: Sequence[RecordPair]) -> list[MLPrediction]: ...

    def extract_features(self, pair: RecordPair) -> FeatureVector: ...

    def is_ready(self) -> bool: ...

    def load_weights(self, weights: SerializedWeights | dict[str, Any]) -> None: ...

    def export_weights(self) -> SerializedWeights: ...
