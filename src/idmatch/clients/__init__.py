"""
idmatch.clients: Configuration and client factories.

This module provides centralized configuration and client factories for:
- Process-level matching defaults (Settings)
- Experiment tracking (wandb)
"""

from idmatch.clients.settings import Settings
from idmatch.clients.tracking import (
    create_wandb_tracker,
    log_training_result,
    wandb_progress_callback,
)

__all__ = [
    "Settings",
    "create_wandb_tracker",
    "log_training_result",
    "wandb_progress_callback",
]
