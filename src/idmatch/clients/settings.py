"""Central configuration for idmatch defaults and external services."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from idmatch.core.models import ClassifierConfig
from idmatch.integration.models import IntegrationConfig, IntegrationMode


class Settings(BaseSettings):
    """Process-level configuration loaded from environment variables.

    All fields are optional. The matching defaults feed the config models
    via ``classifier_config()`` / ``integration_config()``; tracking keys
    are validated only when tracking is actually used.

    Environment variables:
        IDMATCH_MATCH_THRESHOLD: Classifier match threshold (default: 0.7)
        IDMATCH_NON_MATCH_THRESHOLD: Classifier non-match threshold (default: 0.3)
        IDMATCH_INTEGRATION_MODE: ml_only, hybrid or fallback (default: "hybrid")
        IDMATCH_ML_WEIGHT: ML share of a hybrid score (default: 0.5)
        IDMATCH_TIMEOUT_MS: Prediction timeout in milliseconds (default: 5000)
        IDMATCH_FALLBACK_ON_ERROR: Keep deterministic scores on ML failure (default: true)
        IDMATCH_WEIGHTS_PATH: Path to a weights JSON file (optional)
        WANDB_API_KEY: Weights & Biases API key
        WANDB_PROJECT: W&B project name (default: "idmatch")
        WANDB_ENTITY: W&B entity/team name (optional)

    Example:
        settings = Settings()
        classifier = SimpleClassifier(extractor, config=settings.classifier_config())
        integrator = ScoreIntegrator(classifier, settings.integration_config())

    Example (.env file):
        IDMATCH_MATCH_THRESHOLD=0.8
        IDMATCH_INTEGRATION_MODE=fallback
        IDMATCH_WEIGHTS_PATH=models/customer.json
        WANDB_API_KEY=...
    """

    # Classifier
    idmatch_match_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    idmatch_non_match_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # Score integration
    idmatch_integration_mode: IntegrationMode = "hybrid"
    idmatch_ml_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    idmatch_timeout_ms: float = Field(default=5000.0, gt=0.0)
    idmatch_fallback_on_error: bool = True

    # Model artifacts
    idmatch_weights_path: Path | None = None

    # wandb (experiment tracking)
    wandb_api_key: str | None = None
    wandb_project: str = "idmatch"
    wandb_entity: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    def classifier_config(self) -> ClassifierConfig:
        return ClassifierConfig(
            match_threshold=self.idmatch_match_threshold,
            non_match_threshold=self.idmatch_non_match_threshold,
        )

    def integration_config(self) -> IntegrationConfig:
        return IntegrationConfig(
            mode=self.idmatch_integration_mode,
            ml_weight=self.idmatch_ml_weight,
            timeout_ms=self.idmatch_timeout_ms,
            fallback_on_error=self.idmatch_fallback_on_error,
        )
