"""
YAML Configuration Loader.

Provides utilities for loading, validating, and saving coordinator
configuration files with Pydantic models for type safety.

Usage:
    from edufed.config import load_coordinator_config

    config = load_coordinator_config("coordinator.yaml")
    print(f"Rounds every {config.round_interval_seconds}s")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from edufed.config.schema import CoordinatorConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigLoader:
    """Reads coordinator YAML files into validated configuration."""

    def load_yaml(self, path: str | Path) -> dict[str, Any]:
        """Parse a YAML mapping; an empty file yields an empty dict."""
        file_path = Path(path)

        if not file_path.exists():
            raise ConfigError(
                f"Configuration file not found: {file_path}",
                {"path": str(file_path)},
            )

        try:
            with open(file_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Failed to parse YAML file: {e}",
                {"path": str(file_path), "error": str(e)},
            ) from e

        if data is None:
            return {}

        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML file must contain a dictionary, got {type(data).__name__}",
                {"path": str(file_path)},
            )

        logger.debug(f"Loaded YAML from {file_path}")
        return data

    def load_coordinator(self, path: str | Path) -> CoordinatorConfig:
        """Load a YAML file and validate it as a ``CoordinatorConfig``."""
        data = self.load_yaml(path)
        try:
            return CoordinatorConfig.model_validate(data)
        except ValidationError as e:
            error_text = "\n".join(
                f"  {'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigError(
                f"Configuration validation failed for {path}:\n{error_text}",
                {"path": str(path), "errors": e.errors()},
            ) from e

    @staticmethod
    def save_yaml(config: Any, path: str | Path) -> None:
        """
        Save configuration to YAML file.

        Args:
            config: Pydantic model or dictionary to save
            path: Output file path
        """
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        if hasattr(config, "model_dump"):
            data = config.model_dump(mode="json")
        else:
            data = config

        with open(file_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Saved configuration to {file_path}")

    @staticmethod
    def generate_coordinator_template() -> str:
        """Generate coordinator configuration template."""
        return """# Coordinator Configuration Template
# EduFed - Federated Learning Coordinator

name: "classroom_federation"
description: "Federated training across student devices"
version: "1.0.0"

# Global model
model_dimension: 100
seed: null  # Set an integer for reproducible simulations

# Scheduling
round_interval_seconds: 10.0
local_timeout_seconds: null  # Bounded wait for local updates

# Participation rate is drawn uniformly from [min, max] each round
participation_min: 0.30
participation_max: 0.70

# Global model is assumed to beat the mean local accuracy by this much
global_accuracy_offset: 0.02

privacy:
  epsilon_per_round: 1.0
  sensitivity: 2.0
  delta: 1.0e-5
  total_budget: 100.0

persistence:
  backend: "memory"  # memory, json, none
  path: null         # Required for json
  restore_limit: 50

logging:
  level: "INFO"
  file: null
"""


# =============================================================================
# Convenience Functions
# =============================================================================


def load_coordinator_config(path: str | Path) -> CoordinatorConfig:
    """
    Load coordinator configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Validated CoordinatorConfig

    Raises:
        ConfigError: If loading or validation fails
    """
    loader = ConfigLoader()
    return loader.load_coordinator(path)


def validate_config(data: dict[str, Any]) -> CoordinatorConfig:
    """
    Validate configuration dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        Validated CoordinatorConfig

    Raises:
        ConfigError: If validation fails
    """
    try:
        return CoordinatorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Validation failed: {e}",
            {"errors": e.errors()},
        ) from e
