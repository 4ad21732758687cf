import logging
import os
import sys
from pathlib import Path

import yaml

from glab.utils.log_utils import setup_logger

logger = logging.getLogger(__name__)


log_path = "./logs"
log_to_file = False

# energy propagation
energy_steps = 6
energy_decay = 0.25
energy_top_k = 8
energy_inertia = 0.35

# graph / validation
cycle_sample_size = 20
autofix_validation = True

# goal ecology
goal_top_n = 3
goal_hysteresis_margin = 0.08
goal_mode_temperature = 0.35

# orchestrator
human_log_top_n = 10

CONFIG_PATH = "config.yaml"


def _find_glab_config_in_argv() -> str | None:
    """Return a user-provided config path if -glab_config or --glab_config is present."""
    try:
        argv = sys.argv
    except AttributeError:
        return None

    for i, arg in enumerate(argv):
        if arg in ("-glab_config", "--glab_config"):
            if i + 1 < len(argv) and not argv[i + 1].startswith("-"):
                return argv[i + 1]
    return None


env_path = os.environ.get("GLAB_CONFIG")
if env_path:
    CONFIG_PATH = Path(env_path).expanduser().resolve().as_posix()
if _find_glab_config_in_argv() is not None:
    CONFIG_PATH = _find_glab_config_in_argv()

config_data = {}
if os.path.exists(CONFIG_PATH):
    with open(CONFIG_PATH, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file) or {}
else:
    logger.warning(f"{CONFIG_PATH} not found, running with built-in defaults. Set GLAB_CONFIG or pass --glab_config <PATH>.")

global_map = {
    "log_path": config_data.get("log_path", log_path),
    "log_to_file": config_data.get("log_to_file", log_to_file),
    "energy_steps": config_data.get("energy_steps", energy_steps),
    "energy_decay": config_data.get("energy_decay", energy_decay),
    "energy_top_k": config_data.get("energy_top_k", energy_top_k),
    "energy_inertia": config_data.get("energy_inertia", energy_inertia),
    "cycle_sample_size": config_data.get("cycle_sample_size", cycle_sample_size),
    "autofix_validation": config_data.get("autofix_validation", autofix_validation),
    "goal_top_n": config_data.get("goal_top_n", goal_top_n),
    "goal_hysteresis_margin": config_data.get("goal_hysteresis_margin", goal_hysteresis_margin),
    "goal_mode_temperature": config_data.get("goal_mode_temperature", goal_mode_temperature),
    "human_log_top_n": config_data.get("human_log_top_n", human_log_top_n),
}
globals().update(global_map)

if log_to_file:
    setup_logger(log_path, "glab.log")
