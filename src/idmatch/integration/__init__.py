"""
idmatch.integration: Blending ML predictions into deterministic match results.
"""

from idmatch.integration.integrator import ScoreIntegrator
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

__all__ = [
    "EnhancedMatchResult",
    "FieldScore",
    "IntegrationConfig",
    "MatchOptions",
    "MatchOutcome",
    "MatchResult",
    "MatchScore",
    "MatchStats",
    "OutcomeThresholds",
    "ScoreIntegrator",
]
