from typing import Tuple

from glab.pipeline.axes import run_axes
from glab.pipeline.decision import run_decision
from glab.pipeline.emotion import run_emotion
from glab.pipeline.goals_stage import run_goals
from glab.pipeline.lens import run_lens
from glab.pipeline.possibilities import run_possibilities
from glab.pipeline.stage_types import StageSpec
from glab.pipeline.threat import run_threat
from glab.pipeline.tom_stage import run_tom
from glab.pipeline.world_facts import run_world_facts

STAGES: Tuple[StageSpec, ...] = (
    StageSpec("S0", "world facts & inputs", run_world_facts),
    StageSpec("S1", "context axes", run_axes),
    StageSpec("S2", "character lens", run_lens),
    StageSpec("S3", "theory of mind", run_tom),
    StageSpec("S4", "threat", run_threat),
    StageSpec("S5", "appraisal & emotion", run_emotion),
    StageSpec("S6", "drivers, energy & goals", run_goals),
    StageSpec("S7", "possibilities", run_possibilities),
    StageSpec("S8", "decision", run_decision),
)


def stage_by_id(stage_id: str) -> StageSpec:
    for s in STAGES:
        if s.stage_id == stage_id:
            return s
    raise ValueError(f"unknown stage {stage_id}")
