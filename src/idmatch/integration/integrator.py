"""
Score integration: blend ML predictions into deterministic match results.

ScoreIntegrator takes a prior MatchResult produced by deterministic
(probabilistic) scoring and, depending on the configured mode, replaces or
blends its score with a match model's probability:

- ml_only: total = probability * max_possible_score
- hybrid: total = w * probability * max + (1 - w) * normalized_score * max
- fallback: ml_only, but only when the prior outcome is not a definite match

Prediction calls are bounded by ``timeout_ms``. On timeout or error the
integrator either keeps the prior result (``fallback_on_error``) or raises
PredictionError.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any

from idmatch.core.errors import PredictionError, PredictionTimeoutError
from idmatch.core.features import split_feature_name
from idmatch.core.model import MatchModel
from idmatch.core.models import FeatureVector, MLPrediction, RecordPair
from idmatch.integration.models import (
    EnhancedMatchResult,
    FieldScore,
    IntegrationConfig,
    MatchOptions,
    MatchOutcome,
    MatchResult,
    MatchScore,
    MatchStats,
    OutcomeThresholds,
)

logger = logging.getLogger(__name__)

ML_ONLY_MAX_SCORE = 100.0

_OUTCOME_TEXT: dict[str, str] = {
    "definite-match": "definite match",
    "potential-match": "potential match",
    "no-match": "no match",
}


def _passthrough(prior: MatchResult, **changes: Any) -> EnhancedMatchResult:
    """Copy ``prior`` into an EnhancedMatchResult without touching its score."""
    return EnhancedMatchResult(
        outcome=prior.outcome,
        candidate_record=prior.candidate_record,
        score=prior.score,
        explanation=prior.explanation,
        **changes,
    )


class ScoreIntegrator:
    """Combines match model predictions with deterministic match results.

    Example:
        integrator = ScoreIntegrator(classifier, IntegrationConfig(mode="hybrid", ml_weight=0.4))
        enhanced = await integrator.enhance_match_result(candidate, existing, prior)
        print(enhanced.score.total_score, enhanced.explanation)

        ranked = await integrator.enhance_match_results(candidate, existing_records, priors)

    Note:
        A prediction that exceeds ``timeout_ms`` is cancelled; the model
        must tolerate cancellation of an in-flight ``predict`` /
        ``predict_batch`` call.

    Note:
        Both ``fallback`` mode and ``apply_to="uncertain_only"`` decide on the
        prior deterministic outcome, not on the ML classification.
    """

    def __init__(
        self,
        model: MatchModel,
        config: IntegrationConfig | None = None,
        **overrides: Any,
    ):
        """Initialize ScoreIntegrator.

        Args:
            model: Model used for predictions
            config: Base integration config (defaults if None)
            **overrides: Field overrides applied on top of ``config``

        Raises:
            ConfigurationError: If the resulting config is invalid.
        """
        self._model = model
        base = config or IntegrationConfig()
        self._config = base.with_overrides(**overrides) if overrides else base

    @property
    def config(self) -> IntegrationConfig:
        return self._config

    @property
    def model(self) -> MatchModel:
        return self._model

    def set_config(self, **changes: Any) -> None:
        self._config = self._config.with_overrides(**changes)

    def is_ready(self) -> bool:
        return self._model.is_ready()

    def extract_features(self, candidate: Any, existing: Any) -> FeatureVector:
        return self._model.extract_features(RecordPair(record1=candidate, record2=existing))

    def _effective_config(self, options: MatchOptions | None) -> IntegrationConfig:
        if options is None:
            return self._config
        changes = {
            name: value
            for name, value in (
                ("mode", options.mode),
                ("ml_weight", options.ml_weight),
                ("timeout_ms", options.timeout_ms),
            )
            if value is not None
        }
        return self._config.with_overrides(**changes) if changes else self._config

    def _model_name(self) -> str:
        try:
            return str(self._model.metadata.name)
        except AttributeError:
            return type(self._model).__name__

    @staticmethod
    def _wants_prediction(prior: MatchResult, config: IntegrationConfig) -> bool:
        if config.apply_to == "uncertain_only":
            return prior.outcome != "definite-match"
        return True

    async def _with_timeout(self, awaitable: Any, timeout_ms: float) -> Any:
        """Await a prediction call, mapping timeouts and failures to PredictionError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000.0)
        except TimeoutError as exc:
            raise PredictionTimeoutError(
                f"ML prediction timed out after {timeout_ms:g}ms"
            ) from exc
        except PredictionError:
            raise
        except Exception as exc:
            raise PredictionError(f"{self._model_name()} prediction failed: {exc}") from exc

    async def enhance_match_result(
        self,
        candidate: Any,
        existing: Any,
        prior: MatchResult,
        options: MatchOptions | None = None,
    ) -> EnhancedMatchResult:
        """Enhance one deterministic result with an ML prediction.

        Args:
            candidate: The incoming record
            existing: The existing record ``prior`` was computed against
            prior: Deterministic match result for the pair
            options: Per-call overrides

        Returns:
            EnhancedMatchResult; with ``ml_used=False`` the prior score is kept.

        Raises:
            PredictionError: On prediction failure or timeout when
                ``fallback_on_error`` is False.
        """
        config = self._effective_config(options)
        if (options is not None and options.skip_ml) or not self._wants_prediction(prior, config):
            return _passthrough(prior)

        start = time.perf_counter()
        try:
            prediction = await self._with_timeout(
                self._model.predict(RecordPair(record1=candidate, record2=existing)),
                config.timeout_ms,
            )
        except PredictionError as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            if not config.fallback_on_error:
                raise
            logger.warning("Falling back to deterministic score: %s", exc)
            return _passthrough(prior, ml_prediction_time_ms=elapsed_ms, ml_error=str(exc))

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        return self._combine(prior, prediction, config, elapsed_ms)

    async def enhance_match_results(
        self,
        candidate: Any,
        existing_records: Sequence[Any],
        priors: Sequence[MatchResult],
        options: MatchOptions | None = None,
    ) -> list[EnhancedMatchResult]:
        """Enhance many results with one batch prediction and re-rank them.

        The batch call shares a single ``timeout_ms`` budget. Results are
        returned sorted by final total score, highest first; the sort is
        stable, so equal scores keep their input order.

        Raises:
            ValueError: If existing_records and priors differ in length.
            PredictionError: As for ``enhance_match_result``.
        """
        results, _ = await self.enhance_match_results_batch(
            candidate, existing_records, priors, options
        )
        return results

    async def enhance_match_results_batch(
        self,
        candidate: Any,
        existing_records: Sequence[Any],
        priors: Sequence[MatchResult],
        options: MatchOptions | None = None,
    ) -> tuple[list[EnhancedMatchResult], MatchStats]:
        """Like ``enhance_match_results``, plus aggregate statistics.

        Returns:
            Tuple of (re-ranked results, MatchStats)
        """
        if len(existing_records) != len(priors):
            raise ValueError(
                f"existing_records ({len(existing_records)}) and priors ({len(priors)}) "
                "must have the same length"
            )

        config = self._effective_config(options)
        skip_ml = options is not None and options.skip_ml
        indices = [
            i
            for i, prior in enumerate(priors)
            if not skip_ml and self._wants_prediction(prior, config)
        ]
        pairs = [RecordPair(record1=candidate, record2=existing_records[i]) for i in indices]

        predictions: dict[int, MLPrediction] = {}
        error: PredictionError | None = None
        elapsed_ms = 0.0

        if pairs:
            start = time.perf_counter()
            try:
                batch = await self._with_timeout(self._model.predict_batch(pairs), config.timeout_ms)
                predictions = dict(zip(indices, batch, strict=True))
            except PredictionError as exc:
                if not config.fallback_on_error:
                    raise
                logger.warning(
                    "Batch prediction failed for %d pairs, keeping deterministic scores: %s",
                    len(pairs),
                    exc,
                )
                error = exc
            elapsed_ms = (time.perf_counter() - start) * 1000.0

        per_pair_ms = elapsed_ms / len(pairs) if pairs else 0.0
        results: list[EnhancedMatchResult] = []
        for i, prior in enumerate(priors):
            if i in predictions:
                results.append(self._combine(prior, predictions[i], config, per_pair_ms))
            elif error is not None and i in indices:
                results.append(
                    _passthrough(prior, ml_prediction_time_ms=per_pair_ms, ml_error=str(error))
                )
            else:
                results.append(_passthrough(prior))

        ml_used_count = sum(1 for result in results if result.ml_used)
        stats = MatchStats(
            total_matches=len(priors),
            ml_used_count=ml_used_count,
            ml_failed_count=len(pairs) if error is not None else 0,
            total_ml_prediction_time_ms=elapsed_ms,
            avg_ml_prediction_time_ms=elapsed_ms / ml_used_count if ml_used_count else 0.0,
        )
        logger.debug(
            "Enhanced %d results (%d predicted, %d used ML) in %.2fms",
            len(priors),
            len(pairs),
            ml_used_count,
            elapsed_ms,
        )

        # The only reordering step: rank by final score
        results.sort(key=lambda result: result.score.total_score, reverse=True)
        return results, stats

    async def match_with_ml_only(
        self,
        candidate: Any,
        existing: Any,
        thresholds: OutcomeThresholds | None = None,
    ) -> EnhancedMatchResult:
        """Decide a match from the ML prediction alone, on a 100-point scale.

        Never falls back to deterministic scoring.

        Raises:
            PredictionError: ``"ML prediction failed: <cause>"`` on any failure.
        """
        thresholds = thresholds or OutcomeThresholds()
        start = time.perf_counter()
        try:
            prediction = await self._model.predict(RecordPair(record1=candidate, record2=existing))
        except Exception as exc:
            raise PredictionError(f"ML prediction failed: {exc}") from exc
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        total_score = prediction.probability * ML_ONLY_MAX_SCORE
        outcome = _classification_to_outcome(prediction, total_score, thresholds)

        return EnhancedMatchResult(
            outcome=outcome,
            candidate_record=existing,
            score=MatchScore(
                total_score=total_score,
                max_possible_score=ML_ONLY_MAX_SCORE,
                normalized_score=prediction.probability,
                field_scores=_features_to_field_scores(prediction.features),
            ),
            explanation=_ml_explanation(prediction, outcome),
            ml_prediction=prediction,
            ml_used=True,
            ml_prediction_time_ms=elapsed_ms,
        )

    def _combine(
        self,
        prior: MatchResult,
        prediction: MLPrediction,
        config: IntegrationConfig,
        elapsed_ms: float,
    ) -> EnhancedMatchResult:
        if config.mode == "ml_only":
            return self._ml_only_result(prior, prediction, config, elapsed_ms)
        if config.mode == "hybrid":
            return self._hybrid_result(prior, prediction, config, elapsed_ms)
        # fallback
        if prior.outcome != "definite-match":
            return self._ml_only_result(prior, prediction, config, elapsed_ms)
        return _passthrough(prior, ml_prediction=prediction, ml_prediction_time_ms=elapsed_ms)

    def _outcome(self, normalized_score: float, config: IntegrationConfig) -> MatchOutcome:
        if normalized_score >= config.definite_match_threshold:
            return "definite-match"
        if normalized_score < config.no_match_threshold:
            return "no-match"
        return "potential-match"

    def _ml_only_result(
        self,
        prior: MatchResult,
        prediction: MLPrediction,
        config: IntegrationConfig,
        elapsed_ms: float,
    ) -> EnhancedMatchResult:
        max_score = prior.score.max_possible_score
        outcome = self._outcome(prediction.probability, config)
        return EnhancedMatchResult(
            outcome=outcome,
            candidate_record=prior.candidate_record,
            score=MatchScore(
                total_score=prediction.probability * max_score,
                max_possible_score=max_score,
                normalized_score=prediction.probability,
                field_scores=list(prior.score.field_scores),
            ),
            explanation=_ml_explanation(prediction, outcome),
            ml_prediction=prediction,
            ml_used=True,
            ml_prediction_time_ms=elapsed_ms,
        )

    def _hybrid_result(
        self,
        prior: MatchResult,
        prediction: MLPrediction,
        config: IntegrationConfig,
        elapsed_ms: float,
    ) -> EnhancedMatchResult:
        max_score = prior.score.max_possible_score
        ml_weight = config.ml_weight
        prior_score = prior.score.normalized_score * max_score

        ml_contribution = ml_weight * prediction.probability * max_score
        prior_contribution = (1.0 - ml_weight) * prior_score
        combined = ml_contribution + prior_contribution
        outcome = self._outcome(combined / max_score, config)

        explanation = (
            f"Hybrid score: {combined:.1f} "
            f"({(1.0 - ml_weight) * 100:.0f}% probabilistic [{prior_score:.1f}] + "
            f"{ml_weight * 100:.0f}% ML [{prediction.probability * 100:.1f}%]). "
            f"Classified as {_OUTCOME_TEXT[outcome]}."
        )
        return EnhancedMatchResult(
            outcome=outcome,
            candidate_record=prior.candidate_record,
            score=MatchScore(
                total_score=combined,
                max_possible_score=max_score,
                normalized_score=combined / max_score,
                field_scores=list(prior.score.field_scores),
            ),
            explanation=explanation,
            ml_prediction=prediction,
            ml_used=True,
            ml_score_contribution=ml_contribution,
            probabilistic_score_contribution=prior_contribution,
            ml_prediction_time_ms=elapsed_ms,
        )


def _classification_to_outcome(
    prediction: MLPrediction, score: float, thresholds: OutcomeThresholds
) -> MatchOutcome:
    classification = prediction.classification
    if classification == "match" and score >= thresholds.definite_match:
        return "definite-match"
    if classification == "non_match" and score < thresholds.no_match:
        return "no-match"
    if classification == "match":
        return "potential-match"
    if classification == "non_match":
        return "no-match"
    return "potential-match"


def _features_to_field_scores(features: FeatureVector) -> list[FieldScore]:
    """One FieldScore per field, carrying that field's highest similarity feature."""
    best: dict[str, float] = {}
    for name, value in zip(features.names, features.values, strict=True):
        parsed = split_feature_name(name)
        if parsed is None or parsed[1] == "missing":
            continue
        field = parsed[0]
        if field not in best or value > best[field]:
            best[field] = value
    return [
        FieldScore(field=field, similarity=value, contribution=value)
        for field, value in best.items()
    ]


def _ml_explanation(prediction: MLPrediction, outcome: MatchOutcome) -> str:
    top_features = (
        ", ".join(
            f"{feature.name} ({feature.importance * 100:.0f}%)"
            for feature in prediction.feature_importance[:3]
        )
        or "none"
    )
    return (
        f"ML prediction: {prediction.probability * 100:.1f}% match probability "
        f"with {prediction.confidence * 100:.1f}% confidence. "
        f"Classified as {_OUTCOME_TEXT[outcome]}. Top features: {top_features}."
    )
