"""
Pydantic Schema for YAML Configuration.

Provides type-safe configuration models for the federated training
coordinator with validation and helpful error messages.

Usage:
    from edufed.config import load_coordinator_config

    config = load_coordinator_config("coordinator.yaml")
    print(config.privacy.epsilon_per_round)
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================


class PersistenceBackend(str, Enum):
    """Supported persistence backends."""

    MEMORY = "memory"
    JSON = "json"
    NONE = "none"


# =============================================================================
# Section Models
# =============================================================================


class PrivacyConfig(BaseModel):
    """Differential privacy settings."""

    model_config = ConfigDict(extra="forbid")

    epsilon_per_round: float = Field(
        default=1.0,
        description="Privacy budget charged per completed round",
        gt=0.0,
    )
    sensitivity: float = Field(
        default=2.0,
        description="L2 sensitivity used to scale Gaussian noise",
        gt=0.0,
    )
    delta: float = Field(
        default=1e-5,
        description="Leakage tolerance (reported, not used in accounting)",
        gt=0.0,
        lt=1.0,
    )
    total_budget: float = Field(
        default=100.0,
        description="Total epsilon budget before the ledger reports exhaustion",
        gt=0.0,
    )


class PersistenceConfig(BaseModel):
    """Persistence collaborator settings."""

    model_config = ConfigDict(extra="forbid")

    backend: PersistenceBackend = Field(
        default=PersistenceBackend.MEMORY,
        description="Where node and round records are written",
    )
    path: str | None = Field(
        default=None,
        description="Directory for the json backend",
    )
    restore_limit: int = Field(
        default=50,
        description="Maximum number of nodes restored at start-up",
        ge=0,
    )

    @model_validator(mode="after")
    def validate_path(self) -> "PersistenceConfig":
        """Require a path for the json backend."""
        if self.backend == PersistenceBackend.JSON and not self.path:
            raise ValueError("path is required when backend is 'json'")
        return self


class LoggingConfig(BaseModel):
    """Logging settings."""

    model_config = ConfigDict(extra="forbid")

    level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path",
    )


# =============================================================================
# Coordinator Configuration
# =============================================================================


class CoordinatorConfig(BaseModel):
    """Complete coordinator configuration."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    name: str = Field(
        default="edufed",
        description="Configuration name for identification",
        min_length=1,
        max_length=100,
    )
    description: str | None = Field(
        default=None,
        description="Optional description of the configuration",
    )
    version: str = Field(
        default="1.0.0",
        description="Configuration schema version",
        pattern=r"^\d+\.\d+\.\d+$",
    )

    # Model
    model_dimension: int = Field(
        default=100,
        description="Length of the global parameter vector",
        ge=1,
        le=1_000_000,
    )
    seed: int | None = Field(
        default=None,
        description="Random seed for reproducible simulations",
        ge=0,
    )

    # Scheduling
    round_interval_seconds: float = Field(
        default=10.0,
        description="Interval between scheduled rounds while simulating",
        gt=0.0,
    )
    local_timeout_seconds: float | None = Field(
        default=None,
        description="Bounded wait for local updates (None waits indefinitely)",
        gt=0.0,
    )

    # Participation
    participation_min: float = Field(
        default=0.30,
        description="Lower bound of the per-round participation rate",
        gt=0.0,
        le=1.0,
    )
    participation_max: float = Field(
        default=0.70,
        description="Upper bound of the per-round participation rate",
        gt=0.0,
        le=1.0,
    )

    # Modeling
    global_accuracy_offset: float = Field(
        default=0.02,
        description="Amount the global model is assumed to beat the local mean",
        ge=0.0,
        le=0.5,
    )

    privacy: PrivacyConfig = Field(
        default_factory=PrivacyConfig,
        description="Differential privacy settings",
    )
    persistence: PersistenceConfig = Field(
        default_factory=PersistenceConfig,
        description="Persistence settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings",
    )

    @model_validator(mode="after")
    def validate_participation(self) -> "CoordinatorConfig":
        """Validate the participation range."""
        if self.participation_min > self.participation_max:
            raise ValueError("participation_min must not exceed participation_max")
        return self
