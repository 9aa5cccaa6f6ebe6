"""
Configuration module for rounds and pipeline settings.

Provides:
- YAML config loading with validation
- Round references
- Environment variable substitution
"""

from .loader import ConfigLoader, PipelineConfig, PipelineSettings, load_config

__all__ = ["ConfigLoader", "PipelineConfig", "PipelineSettings", "load_config"]
