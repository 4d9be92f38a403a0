"""Configuration loading and validation."""

from .loader import load_config
from .schemas import MetricsConfig

__all__ = ["MetricsConfig", "load_config"]
