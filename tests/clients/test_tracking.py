"""Tests for idmatch.clients.tracking module."""

import os
from unittest.mock import MagicMock, patch

import pytest

from idmatch.clients.settings import Settings
from idmatch.clients.tracking import (
    create_wandb_tracker,
    log_training_result,
    wandb_progress_callback,
)
from idmatch.core.errors import ConfigurationError
from idmatch.core.models import TrainingConfig, TrainingMetrics, TrainingResult
from idmatch.training.evaluation import ClassificationMetrics


class TestCreateWandbTracker:
    """Tests for create_wandb_tracker factory function."""

    def test_create_wandb_tracker_with_settings(self):
        """Test create_wandb_tracker with explicit settings."""
        settings = Settings(
            wandb_api_key="wb-test",
            wandb_project="test-project",
            wandb_entity="test-team",
        )

        with patch("idmatch.clients.tracking.wandb") as mock_wandb:
            mock_run = MagicMock()
            mock_wandb.init.return_value = mock_run

            run = create_wandb_tracker(settings, job_type="evaluation")

            mock_wandb.init.assert_called_once_with(
                project="test-project", entity="test-team", job_type="evaluation", config=None
            )
            assert run is mock_run

    def test_create_wandb_tracker_without_settings_loads_from_env(self):
        """Test create_wandb_tracker loads settings from environment."""
        # Patch both os.environ AND the .env file to prevent leakage
        with (
            patch.dict(
                os.environ,
                {"WANDB_API_KEY": "wb-env", "WANDB_PROJECT": "env-project"},
                clear=True,
            ),
            patch("pydantic_settings.sources.DotEnvSettingsSource.__call__", return_value={}),
        ):
            with patch("idmatch.clients.tracking.wandb") as mock_wandb:
                create_wandb_tracker()

                mock_wandb.init.assert_called_once_with(
                    project="env-project", entity=None, job_type="training", config=None
                )

    def test_create_wandb_tracker_default_job_type(self):
        """Test create_wandb_tracker uses default job_type."""
        settings = Settings(wandb_api_key="wb-test", wandb_project="test-project")

        with patch("idmatch.clients.tracking.wandb") as mock_wandb:
            create_wandb_tracker(settings)

            call_kwargs = mock_wandb.init.call_args.kwargs
            assert call_kwargs["job_type"] == "training"

    def test_create_wandb_tracker_raises_error_if_api_key_missing(self):
        """Test create_wandb_tracker raises ConfigurationError if WANDB_API_KEY missing."""
        settings = Settings(wandb_api_key=None)
        with patch("idmatch.clients.tracking.wandb") as mock_wandb:
            with pytest.raises(ConfigurationError, match="WANDB_API_KEY"):
                create_wandb_tracker(settings)
            mock_wandb.init.assert_not_called()

    def test_create_wandb_tracker_records_hyperparameters(self):
        """Test the training config becomes the run config."""
        settings = Settings(wandb_api_key="wb-test")
        config = TrainingConfig(learning_rate=0.2, seed=9)

        with patch("idmatch.clients.tracking.wandb") as mock_wandb:
            create_wandb_tracker(settings, training_config=config)

            run_config = mock_wandb.init.call_args.kwargs["config"]
            assert run_config["learning_rate"] == 0.2
            assert run_config["seed"] == 9
            assert run_config["max_iterations"] == 1000


class TestWandbProgressCallback:
    """Tests for wandb_progress_callback."""

    def test_logs_metrics_at_iteration_step(self):
        """Test metrics are logged with the iteration as step."""
        run = MagicMock()
        callback = wandb_progress_callback(run)

        callback(
            TrainingMetrics(
                iteration=20,
                training_loss=0.4,
                training_accuracy=0.8,
                validation_loss=0.5,
                validation_accuracy=0.75,
            )
        )

        run.log.assert_called_once_with(
            {
                "training_loss": 0.4,
                "training_accuracy": 0.8,
                "validation_loss": 0.5,
                "validation_accuracy": 0.75,
            },
            step=20,
        )

    def test_omits_missing_validation_metrics(self):
        """Test validation metrics are left out without a validation set."""
        run = MagicMock()
        wandb_progress_callback(run)(
            TrainingMetrics(iteration=10, training_loss=0.6, training_accuracy=0.7)
        )

        logged = run.log.call_args.args[0]
        assert set(logged) == {"training_loss", "training_accuracy"}


class TestLogTrainingResult:
    """Tests for log_training_result."""

    def test_summary_carries_final_metrics_and_evaluation(self):
        """Test the run summary gets the outcome, final metrics and eval scores."""
        run = MagicMock()
        final = TrainingMetrics(iteration=40, training_loss=0.2, training_accuracy=0.95)
        result = TrainingResult(
            success=True,
            weights=(0.5,),
            bias=0.0,
            final_metrics=final,
            history=(final,),
            training_time_ms=12.5,
            early_stopped=True,
        )
        evaluation = ClassificationMetrics(
            accuracy=0.9, precision=1.0, recall=0.8, f1=0.889, tp=4, fp=0, tn=5, fn=1
        )

        log_training_result(run, result, evaluation)

        summary = run.summary.update.call_args.args[0]
        assert summary["success"] is True
        assert summary["early_stopped"] is True
        assert summary["iterations"] == 40
        assert summary["training_loss"] == 0.2
        assert summary["eval_f1"] == 0.889
        assert summary["eval_tp"] == 4
        assert "error" not in summary

    def test_failed_run_records_error(self):
        """Test a failed result logs its error and no evaluation keys."""
        run = MagicMock()
        result = TrainingResult(
            success=False,
            final_metrics=TrainingMetrics(
                iteration=0, training_loss=float("inf"), training_accuracy=0.0
            ),
            training_time_ms=0.1,
            error="Dataset must contain at least one example",
        )

        log_training_result(run, result)

        summary = run.summary.update.call_args.args[0]
        assert summary["success"] is False
        assert summary["error"] == "Dataset must contain at least one example"
        assert not any(key.startswith("eval_") for key in summary)
