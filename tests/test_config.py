import pytest

from glab import config_loader
from glab.config.config import ConfigError, PipelineConfig, make_pipeline_config
from glab.pipeline.runner import run_pipeline
from glab.pipeline.stage_types import PipelineInput


def test_defaults_come_from_the_loader():
    cfg = PipelineConfig()
    assert 0 <= cfg.energy.steps <= 64
    assert 1 <= cfg.goals.top_n <= 8


def test_overrides_are_validated():
    cfg = make_pipeline_config({"energy": {"steps": 3, "decay": 0.5}, "goals": {"top_n": 2}})
    assert cfg.energy.steps == 3 and cfg.goals.top_n == 2


@pytest.mark.parametrize("bad", [
    {"energy": {"decay": 1.5}},
    {"energy": {"top_k": 0}},
    {"cycle_sample_size": 2},
    {"goals": {"mode_temperature": 0}},
])
def test_bad_values_raise_config_error(bad):
    with pytest.raises(ConfigError) as e:
        make_pipeline_config(bad)
    assert "Error in" in str(e.value)


@pytest.mark.parametrize("name,value", [
    ("energy_decay", 1.5),
    ("goal_top_n", 0),
    ("energy_steps", "many"),
    ("cycle_sample_size", 2),
])
def test_bad_loader_values_raise_config_error(monkeypatch, name, value):
    monkeypatch.setattr(config_loader, name, value)
    with pytest.raises(ConfigError) as e:
        make_pipeline_config()
    assert "Error in" in str(e.value)


def test_loader_strings_are_coerced(monkeypatch):
    monkeypatch.setattr(config_loader, "energy_steps", "4")
    monkeypatch.setattr(config_loader, "autofix_validation", "false")
    cfg = make_pipeline_config()
    assert cfg.energy.steps == 4
    assert cfg.autofix is False


def test_run_pipeline_reports_bad_loader_values(monkeypatch, world):
    monkeypatch.setattr(config_loader, "energy_decay", 1.5)
    with pytest.raises(ConfigError):
        run_pipeline(PipelineInput(self_id="A", world=world))
