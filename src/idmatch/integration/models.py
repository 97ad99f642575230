"""
Data contracts for combining ML predictions with deterministic match results.

- FieldScore / MatchScore / MatchResult: the deterministic (probabilistic
  scoring) result consumed by the integrator
- EnhancedMatchResult: a MatchResult plus what the ML model contributed
- IntegrationConfig / MatchOptions: how the two signals are combined
- OutcomeThresholds: score boundaries for ML-only decisions
- MatchStats: aggregates over a batch of enhanced results
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from idmatch.core.models import FrozenConfig, MLPrediction

MatchOutcome = Literal["no-match", "potential-match", "definite-match"]
IntegrationMode = Literal["ml_only", "hybrid", "fallback"]
ApplyTo = Literal["all", "uncertain_only"]


class FieldScore(BaseModel):
    """Per-field comparison detail of a match score."""

    field: str
    similarity: float
    weight: float = 1.0
    contribution: float
    threshold: float = 0.0
    met_threshold: bool = True
    strategy: str = "ml"


class MatchScore(BaseModel):
    """
    Score of a candidate match.

    Attributes:
        total_score: Points scored, on a 0..max_possible_score scale
        max_possible_score: Upper bound of the scale (must be positive)
        normalized_score: total_score / max_possible_score
        field_scores: Per-field breakdown
    """

    total_score: float
    max_possible_score: float = Field(..., gt=0.0)
    normalized_score: float
    field_scores: list[FieldScore] = Field(default_factory=list)


class MatchResult(BaseModel):
    """
    Outcome of comparing a candidate record against one existing record.

    Attributes:
        outcome: no-match, potential-match or definite-match
        candidate_record: The existing record that was compared
        score: How strongly the records matched
        explanation: Human-readable reasoning
    """

    outcome: MatchOutcome
    candidate_record: Any
    score: MatchScore
    explanation: str = ""


class EnhancedMatchResult(MatchResult):
    """
    A MatchResult after ML integration.

    When ``ml_used`` is False the score and outcome are the prior result's,
    unmodified. ``ml_prediction`` may still be attached for reference (e.g.
    fallback mode on a definite match). ``ml_error`` is set when the
    prediction failed or timed out and the integrator fell back.
    """

    ml_prediction: MLPrediction | None = None
    ml_used: bool = False
    ml_score_contribution: float | None = None
    probabilistic_score_contribution: float | None = None
    ml_prediction_time_ms: float | None = None
    ml_error: str | None = None


class MatchStats(BaseModel):
    """Aggregates over one ``enhance_match_results_batch`` call."""

    total_matches: int
    ml_used_count: int = 0
    ml_failed_count: int = 0
    total_ml_prediction_time_ms: float = 0.0
    avg_ml_prediction_time_ms: float = 0.0


class OutcomeThresholds(FrozenConfig):
    """
    Outcome boundaries on a 100-point scale for ML-only decisions.

    Attributes:
        no_match: Scores below this are a no-match
        definite_match: Scores at or above this are a definite match
    """

    no_match: float = Field(default=30.0, ge=0.0, le=100.0)
    definite_match: float = Field(default=65.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_order(self) -> "OutcomeThresholds":
        if not self.no_match < self.definite_match:
            raise ValueError(
                f"no_match must be < definite_match (got {self.no_match} >= {self.definite_match})"
            )
        return self


class IntegrationConfig(FrozenConfig):
    """
    How ML predictions are combined with deterministic results.

    Attributes:
        mode: ``ml_only`` replaces the score with the ML probability,
            ``hybrid`` blends both, ``fallback`` uses ML only when the prior
            outcome is not a definite match
        ml_weight: Share of the ML probability in a hybrid score
        apply_to: ``uncertain_only`` skips ML entirely for prior definite matches
        timeout_ms: Time budget for one prediction call
        fallback_on_error: Keep the prior result on ML failure instead of raising
        definite_match_threshold: Normalized score at or above which a
            re-derived outcome is a definite match
        no_match_threshold: Normalized score below which a re-derived
            outcome is a no-match
    """

    mode: IntegrationMode = "hybrid"
    ml_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    apply_to: ApplyTo = "all"
    timeout_ms: float = Field(default=5000.0, gt=0.0)
    fallback_on_error: bool = True
    definite_match_threshold: float = Field(default=0.65, ge=0.0, le=1.0)
    no_match_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "IntegrationConfig":
        if not self.no_match_threshold < self.definite_match_threshold:
            raise ValueError(
                "no_match_threshold must be < definite_match_threshold "
                f"(got {self.no_match_threshold} >= {self.definite_match_threshold})"
            )
        return self


class MatchOptions(BaseModel):
    """Per-call overrides of IntegrationConfig."""

    mode: IntegrationMode | None = None
    ml_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    timeout_ms: float | None = Field(default=None, gt=0.0)
    skip_ml: bool = False
