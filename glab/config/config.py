from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from glab import config_loader


class ConfigError(Exception):
    """Raised when configuration values fail validation."""
    pass


def format_validation_error(error: ValidationError) -> str:
    """Format a ValidationError into a user-friendly string."""
    error_messages = []
    for err in error.errors():
        location = " -> ".join(str(loc) for loc in err['loc'])
        error_messages.append(f"Error in {location}: {err['msg']}")
    return "\n".join(error_messages)


class EnergyConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    steps: int = Field(default_factory=lambda: config_loader.energy_steps, ge=0, le=64, description="Diffusion steps.")
    decay: float = Field(default_factory=lambda: config_loader.energy_decay, ge=0.0, le=1.0, description="Share of energy a node keeps per step.")
    top_k: int = Field(default_factory=lambda: config_loader.energy_top_k, ge=1, le=24, description="Attribution entries kept per node.")
    inertia: float = Field(default_factory=lambda: config_loader.energy_inertia, ge=0.0, le=1.0, description="Blend factor of felt energy into the persistent state.")


class GoalConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    top_n: int = Field(default_factory=lambda: config_loader.goal_top_n, ge=1, le=8)
    hysteresis_margin: float = Field(default_factory=lambda: config_loader.goal_hysteresis_margin, ge=0.0, le=1.0)
    mode_temperature: float = Field(default_factory=lambda: config_loader.goal_mode_temperature, gt=0.0, le=5.0)


class PipelineConfig(BaseModel):
    # loader values are defaults, so they only get checked with validate_default
    model_config = ConfigDict(validate_default=True)

    autofix: bool = Field(default_factory=lambda: config_loader.autofix_validation)
    cycle_sample_size: int = Field(default_factory=lambda: config_loader.cycle_sample_size, ge=3, le=64)
    human_log_top_n: int = Field(default_factory=lambda: config_loader.human_log_top_n, ge=1, le=100)
    energy: EnergyConfig = Field(default_factory=dict)
    goals: GoalConfig = Field(default_factory=dict)


def make_pipeline_config(overrides: Dict[str, Any] | None = None) -> PipelineConfig:
    """Build a PipelineConfig from loader defaults plus explicit overrides."""
    try:
        return PipelineConfig(**(overrides or {}))
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed:\n{format_validation_error(e)}") from e
