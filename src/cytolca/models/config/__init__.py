"""
Configuration system for cytolca.

Uses Pydantic for validation and enums for type safety. All configs are
immutable.
"""

from .enums import GuideFamily, InferenceMethod
from .groups import (
    PriorConfig,
    ConvergenceConfig,
    SVIConfig,
    MCMCConfig,
    DataConfig,
)
from .base import ModelConfig

__all__ = [
    # Config types
    "ModelConfig",
    # Parameter groups
    "PriorConfig",
    "ConvergenceConfig",
    "SVIConfig",
    "MCMCConfig",
    "DataConfig",
    # Enums
    "GuideFamily",
    "InferenceMethod",
]
