"""Configuration for the MRV verifier core."""

from hydro_mrv.config.schema import AppConfig, LoggingConfig, ScorerConfig, VerificationPolicy
from hydro_mrv.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager", "LoggingConfig", "ScorerConfig", "VerificationPolicy"]
