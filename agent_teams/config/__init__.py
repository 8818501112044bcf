"""
Configuration module for agent teams.
"""
from .settings import Settings
from .models import (
    AVAILABLE_MODELS,
    DEFAULT_LEAD_MODEL,
    DEFAULT_TEAMMATE_MODEL,
    ModelDefinition,
    get_model_definition,
    register_model_definition,
)
from .language import detect_language, language_display_name
from .log import configure_logging

__all__ = [
    'Settings',
    'AVAILABLE_MODELS',
    'DEFAULT_LEAD_MODEL',
    'DEFAULT_TEAMMATE_MODEL',
    'ModelDefinition',
    'get_model_definition',
    'register_model_definition',
    'detect_language',
    'language_display_name',
    'configure_logging',
]
