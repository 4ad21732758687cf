from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from glab.utils.math_utils import clamp01


class GoalState(BaseModel):
    """
    Slow control state of one (agent, domain) goal. Created on first activation and
    carried across ticks; it decays towards neutral while the goal is inactive.
    """
    model_config = ConfigDict(frozen=True)

    tension: float = Field(default=0.0, ge=0.0, le=1.0, description="Accumulated pressure towards the goal.")
    lock_in: float = Field(default=0.0, ge=0.0, le=1.0, description="Commitment; feeds the hysteresis bonus.")
    fatigue: float = Field(default=0.0, ge=0.0, le=1.0, description="Cost of pursuing the goal for long.")
    progress: float = Field(default=0.0, ge=0.0, le=1.0, description="Completion estimate; resets on reaching 1.")
    last_active_tick: int = -1
    active_streak: int = 0
    completions: int = 0

    @model_validator(mode="before")
    @classmethod
    def _clamp(cls, data: Any):
        if isinstance(data, dict):
            for name in ("tension", "lock_in", "fatigue", "progress"):
                if name in data:
                    data[name] = clamp01(data[name])
        return data


class GoalStateParams(BaseModel):
    tension_rate: float = 0.35
    tension_decay: float = 0.15
    lock_in_rate: float = 0.20
    lock_in_decay: float = 0.30
    fatigue_rate: float = 0.06
    fatigue_recovery: float = 0.10
    progress_base: float = 0.05
    progress_gain: float = 0.10
    completion_reset: float = 0.5


DEFAULT_GOAL_STATE_PARAMS = GoalStateParams()


def update_goal_state(state: GoalState, *, score: float, active: bool, lead: float, tick: int,
                      params: GoalStateParams = DEFAULT_GOAL_STATE_PARAMS) -> GoalState:
    """
    One leaky-integrator step.

    Active: tension follows the score, lock-in and fatigue rise towards 1 (never down),
    progress accumulates. ``lead`` is how far the goal is ahead of the best excluded
    domain; a comfortable lead locks in faster. Reaching progress 1 counts a completion,
    resets progress and halves tension and fatigue.

    Inactive: tension, lock-in and fatigue decay, progress is kept.
    """
    p = params
    score = clamp01(score)

    if not active:
        return state.model_copy(update={
            "tension": clamp01(state.tension * (1.0 - p.tension_decay)),
            "lock_in": clamp01(state.lock_in * (1.0 - p.lock_in_decay)),
            "fatigue": clamp01(state.fatigue * (1.0 - p.fatigue_recovery)),
            "active_streak": 0,
        })

    tension = state.tension + p.tension_rate * (score - state.tension)
    lock_in = state.lock_in + p.lock_in_rate * (1.0 - state.lock_in) * (0.5 + 0.5 * clamp01(lead * 4.0))
    fatigue = state.fatigue + p.fatigue_rate * (1.0 - state.fatigue) * (0.5 + 0.5 * score)
    progress = state.progress + p.progress_base + p.progress_gain * score * (1.0 - state.fatigue)
    completions = state.completions

    if progress >= 1.0:
        progress = 0.0
        tension *= p.completion_reset
        fatigue *= p.completion_reset
        completions += 1

    return GoalState(
        tension=tension,
        lock_in=lock_in,
        fatigue=fatigue,
        progress=progress,
        last_active_tick=tick,
        active_streak=state.active_streak + 1,
        completions=completions,
    )
