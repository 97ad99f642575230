"""
wandb tracking for training runs.

- create_wandb_tracker: start a run, recording the training hyperparameters
- wandb_progress_callback: ModelTrainer ``on_progress`` hook logging each metrics snapshot
- log_training_result: final metrics and evaluation scores into the run summary
"""

import logging
from typing import Any

import wandb

from idmatch.clients.settings import Settings
from idmatch.core.errors import ConfigurationError
from idmatch.core.models import TrainingConfig, TrainingMetrics, TrainingResult
from idmatch.training.evaluation import ClassificationMetrics
from idmatch.training.trainer import ProgressCallback

logger = logging.getLogger(__name__)


def create_wandb_tracker(
    settings: Settings | None = None,
    job_type: str = "training",
    training_config: TrainingConfig | None = None,
) -> Any:
    """Start a wandb run for a training or evaluation job.

    Args:
        settings: Credentials and project; loaded from the environment if None
        job_type: wandb job type, e.g. "training" or "evaluation"
        training_config: Hyperparameters stored as the run config

    Raises:
        ConfigurationError: If no WANDB_API_KEY is configured.

    Example:
        run = create_wandb_tracker(training_config=config)
        trainer = ModelTrainer(extractor, config, on_progress=wandb_progress_callback(run))
        result = await trainer.train(dataset)
        log_training_result(run, result)
        run.finish()
    """
    settings = settings or Settings()
    if not settings.wandb_api_key:
        raise ConfigurationError("WANDB_API_KEY environment variable is required")

    run_config = training_config.model_dump() if training_config is not None else None
    run = wandb.init(
        project=settings.wandb_project,
        entity=settings.wandb_entity,
        job_type=job_type,
        config=run_config,
    )
    logger.info("wandb %s run started in project %s", job_type, settings.wandb_project)
    return run


def wandb_progress_callback(run: Any) -> ProgressCallback:
    """Build a trainer progress callback that logs each metrics snapshot to ``run``.

    Validation metrics are logged only when the trainer has a validation set.
    """

    def _log(metrics: TrainingMetrics) -> None:
        payload = metrics.model_dump(exclude_none=True, exclude={"iteration"})
        run.log(payload, step=metrics.iteration)

    return _log


def log_training_result(
    run: Any, result: TrainingResult, evaluation: ClassificationMetrics | None = None
) -> None:
    """Write the outcome of a training run (and optional evaluation) to the run summary."""
    summary: dict[str, Any] = {
        "success": result.success,
        "early_stopped": result.early_stopped,
        "iterations": result.final_metrics.iteration,
        "training_time_ms": result.training_time_ms,
        **result.final_metrics.model_dump(exclude_none=True, exclude={"iteration"}),
    }
    if result.error is not None:
        summary["error"] = result.error
    if evaluation is not None:
        summary.update(
            {f"eval_{name}": value for name, value in evaluation.model_dump().items()}
        )
    run.summary.update(summary)
