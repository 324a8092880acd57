"""
Tests for the YAML Configuration module.

Tests cover:
- Pydantic schema validation
- YAML loading and parsing
- Config template generation
- Error handling
"""

import pytest
import yaml
from pydantic import ValidationError

from edufed.config import (
    ConfigError,
    ConfigLoader,
    CoordinatorConfig,
    LoggingConfig,
    PersistenceBackend,
    PersistenceConfig,
    PrivacyConfig,
    load_coordinator_config,
    validate_config,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def valid_coordinator_yaml():
    """Valid coordinator configuration YAML."""
    return """
name: "test_federation"
description: "Test federation"
version: "1.0.0"
model_dimension: 32
seed: 42
round_interval_seconds: 5.0
participation_min: 0.4
participation_max: 0.6

privacy:
  epsilon_per_round: 0.5
  sensitivity: 1.0
  total_budget: 20.0

persistence:
  backend: "memory"

logging:
  level: "DEBUG"
"""


# =============================================================================
# Schema Tests
# =============================================================================


class TestPrivacyConfig:
    """Test PrivacyConfig."""

    def test_default_values(self):
        config = PrivacyConfig()

        assert config.epsilon_per_round == 1.0
        assert config.sensitivity == 2.0
        assert config.total_budget == 100.0

    @pytest.mark.parametrize("field", ["epsilon_per_round", "sensitivity", "total_budget"])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValidationError):
            PrivacyConfig(**{field: 0.0})

    def test_rejects_unknown_field(self):
        with pytest.raises(ValidationError):
            PrivacyConfig(noise_multiplier=1.1)


class TestPersistenceConfig:
    """Test PersistenceConfig."""

    def test_default_values(self):
        config = PersistenceConfig()

        assert config.backend == PersistenceBackend.MEMORY
        assert config.restore_limit == 50

    def test_string_backend(self):
        assert PersistenceConfig(backend="none").backend == PersistenceBackend.NONE

    def test_json_requires_path(self):
        with pytest.raises(ValidationError):
            PersistenceConfig(backend="json")

        assert PersistenceConfig(backend="json", path="./state").path == "./state"


class TestLoggingConfig:
    """Test LoggingConfig."""

    def test_level_validation(self):
        assert LoggingConfig(level="WARNING").level == "WARNING"

        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")


class TestCoordinatorConfig:
    """Test CoordinatorConfig."""

    def test_default_values(self):
        config = CoordinatorConfig()

        assert config.name == "edufed"
        assert config.model_dimension == 100
        assert config.round_interval_seconds == 10.0
        assert config.participation_min == 0.30
        assert config.participation_max == 0.70
        assert config.global_accuracy_offset == 0.02
        assert config.local_timeout_seconds is None
        assert config.seed is None

    def test_participation_range(self):
        with pytest.raises(ValidationError):
            CoordinatorConfig(participation_min=0.8, participation_max=0.5)

    @pytest.mark.parametrize("value", [0.0, 1.5])
    def test_participation_bounds(self, value):
        with pytest.raises(ValidationError):
            CoordinatorConfig(participation_max=value)

    def test_full_participation_allowed(self):
        config = CoordinatorConfig(participation_min=1.0, participation_max=1.0)

        assert config.participation_min == config.participation_max == 1.0

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            CoordinatorConfig(round_interval_seconds=0)

    def test_version_pattern(self):
        with pytest.raises(ValidationError):
            CoordinatorConfig(version="v1")

    def test_rejects_unknown_field(self):
        with pytest.raises(ValidationError):
            CoordinatorConfig(max_clients=10)

    def test_nested_dicts(self):
        config = CoordinatorConfig(
            privacy={"epsilon_per_round": 0.1},
            persistence={"backend": "none"},
        )

        assert config.privacy.epsilon_per_round == 0.1
        assert config.persistence.backend == PersistenceBackend.NONE


# =============================================================================
# Loader Tests
# =============================================================================


class TestConfigLoader:
    """Test ConfigLoader."""

    def test_load_coordinator(self, temp_dir, valid_coordinator_yaml):
        path = temp_dir / "coordinator.yaml"
        path.write_text(valid_coordinator_yaml, encoding="utf-8")

        config = ConfigLoader().load_coordinator(path)

        assert config.name == "test_federation"
        assert config.model_dimension == 32
        assert config.privacy.epsilon_per_round == 0.5
        assert config.logging.level == "DEBUG"

    def test_relative_path_resolves_from_cwd(self, temp_dir, valid_coordinator_yaml, monkeypatch):
        (temp_dir / "coordinator.yaml").write_text(valid_coordinator_yaml, encoding="utf-8")
        monkeypatch.chdir(temp_dir)

        config = ConfigLoader().load_coordinator("coordinator.yaml")

        assert config.seed == 42

    def test_load_yaml_not_found(self, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            ConfigLoader().load_yaml(temp_dir / "missing.yaml")

    def test_load_yaml_invalid_syntax(self, temp_dir):
        path = temp_dir / "broken.yaml"
        path.write_text("name: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError, match="parse"):
            ConfigLoader().load_yaml(path)

    def test_empty_yaml_uses_defaults(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert ConfigLoader().load_coordinator(path) == CoordinatorConfig()

    def test_non_dict_yaml(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="dictionary"):
            ConfigLoader().load_yaml(path)

    def test_validation_error_lists_fields(self, temp_dir):
        path = temp_dir / "invalid.yaml"
        path.write_text("privacy:\n  epsilon_per_round: -1\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().load_coordinator(path)

        assert "privacy.epsilon_per_round" in str(exc_info.value)
        assert exc_info.value.details["errors"]

    def test_save_yaml_round_trip(self, temp_dir):
        config = CoordinatorConfig(name="saved", seed=5, persistence={"backend": "none"})
        path = temp_dir / "nested" / "saved.yaml"

        ConfigLoader.save_yaml(config, path)

        assert load_coordinator_config(path) == config

    def test_template_is_valid(self, temp_dir):
        template = ConfigLoader.generate_coordinator_template()
        data = yaml.safe_load(template)

        config = validate_config(data)

        assert config.name == "classroom_federation"
        assert config.privacy.sensitivity == 2.0


class TestConvenienceFunctions:
    """Test module-level helpers."""

    def test_validate_config_dict(self):
        config = validate_config({"name": "dict_config", "model_dimension": 10})

        assert config.model_dimension == 10

    def test_validate_config_invalid(self):
        with pytest.raises(ConfigError):
            validate_config({"model_dimension": 0})

    def test_config_error_details(self):
        error = ConfigError("bad", {"path": "x.yaml"})

        assert str(error) == "bad"
        assert error.details == {"path": "x.yaml"}
