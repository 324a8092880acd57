"""
YAML Configuration System for EduFed.

This package provides Pydantic-based YAML configuration for:
- Round scheduling and participation
- Differential privacy parameters
- Persistence backend selection
- Logging
"""

from edufed.config.loader import (
    ConfigError,
    ConfigLoader,
    load_coordinator_config,
    validate_config,
)
from edufed.config.schema import (
    CoordinatorConfig,
    LoggingConfig,
    PersistenceBackend,
    PersistenceConfig,
    PrivacyConfig,
)

__all__ = [
    # Schema - Enums
    "PersistenceBackend",
    # Schema - Models
    "CoordinatorConfig",
    "LoggingConfig",
    "PersistenceConfig",
    "PrivacyConfig",
    # Loader
    "ConfigError",
    "ConfigLoader",
    "load_coordinator_config",
    "validate_config",
]
