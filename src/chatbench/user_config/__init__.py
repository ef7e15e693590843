"""
User Configuration Module

Model configurations and app settings.
"""

from .models import (
    AppConfig,
    ModelConfig,
    ModelSettings,
    ProviderId,
    create_model_config,
    load_app_config_from_env,
)

__all__ = [
    "AppConfig",
    "ModelConfig",
    "ModelSettings",
    "ProviderId",
    "create_model_config",
    "load_app_config_from_env",
]
