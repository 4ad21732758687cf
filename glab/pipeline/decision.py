"""
Stage S8: decision.

Every enabled possibility becomes a scored ``action:*`` candidate:

    score = clamp01(0.55 * goalAlign + 0.25 * availability + 0.20 * tomSupport - COST_WEIGHT * cost)

``goalAlign`` is the affinity of the action to the currently active goals weighted by
their pressure, ``tomSupport`` is the ToM policy probability of the matching social
move towards the target. ``wait`` is always a candidate, so a decision always has a
best action. Ties are broken by action id.
"""
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.goals.ecology import GOAL_DOMAINS
from glab.pipeline.derive_utils import build_parts, derived
from glab.pipeline.possibilities import Possibility, action_cost
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.utils.math_utils import clamp01

logger = logging.getLogger(__name__)

SOURCE = "decision"

W_GOAL = 0.55
W_AVAIL = 0.25
W_TOM = 0.20
COST_WEIGHT = 0.35
NEUTRAL_TOM = 0.5

# action -> goal domain affinity
ACTION_GOAL_AFFINITY: Dict[str, Dict[str, float]] = {
    "hide": {"safety": 1.0, "rest": 0.3},
    "escape": {"safety": 0.9, "control": 0.4},
    "talk": {"affiliation": 0.6, "exploration": 0.5, "status": 0.3},
    "help": {"affiliation": 1.0, "status": 0.3, "order": 0.2},
    "share_secret": {"affiliation": 0.8},
    "attack": {"control": 0.7, "status": 0.4, "safety": 0.2},
    "wait": {"rest": 0.8, "order": 0.3},
}

# affordance -> matching move of the ToM policy
ACTION_TO_TOM: Dict[str, str] = {
    "talk": "negotiate",
    "help": "assist",
    "share_secret": "share_info",
    "attack": "confront",
}


class ActionCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    action_id: str
    target_id: Optional[str] = None
    score: float
    goal_align: float = 0.0
    availability: float = 0.0
    tom_support: float = NEUTRAL_TOM
    cost: float = 0.0
    supporting: Tuple[str, ...] = ()


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    self_id: str
    tick: int = 0
    ranked: Tuple[ActionCandidate, ...] = ()
    blocked: Tuple[str, ...] = Field(default=(), description="ids of possibilities that were not enabled")

    @property
    def best(self) -> Optional[ActionCandidate]:
        return self.ranked[0] if self.ranked else None


def _goal_alignment(index: AtomIndex, self_id: str, action_id: str) -> Tuple[float, List[str]]:
    affinity = ACTION_GOAL_AFFINITY.get(action_id, {})
    num = den = 0.0
    used = []
    for d in GOAL_DOMAINS:
        gid = atom_id("goal:active", metric=d, subject=self_id)
        a = index.get(gid)
        if a is None:
            continue
        used.append(gid)
        num += a.magnitude * affinity.get(d, 0.0)
        den += a.magnitude
    return (clamp01(num / den) if den > 0 else 0.0), used


def score_candidate(index: AtomIndex, self_id: str, p: Possibility) -> ActionCandidate:
    align, used = _goal_alignment(index, self_id, p.action_id)
    tom = NEUTRAL_TOM
    tom_move = ACTION_TO_TOM.get(p.action_id)
    if p.target_id and tom_move:
        tid = atom_id("tom:afford", subject=self_id, target=p.target_id, metric=tom_move)
        if tid in index:
            tom = index.get_mag(tid)
            used.append(tid)
    score = clamp01(W_GOAL * align + W_AVAIL * p.magnitude + W_TOM * tom - COST_WEIGHT * p.cost)
    key = atom_id("action", metric=p.action_id, subject=self_id, target=p.target_id)
    return ActionCandidate(id=key, action_id=p.action_id, target_id=p.target_id, score=score, goal_align=align,
                           availability=p.magnitude, tom_support=tom, cost=p.cost, supporting=tuple([p.id] + used))


def wait_possibility(index: AtomIndex, self_id: str) -> Possibility:
    cost, parts = action_cost(index, self_id, "wait")
    return Possibility(id=atom_id("aff", metric="wait", subject=self_id), action_id="wait", magnitude=0.3,
                       cost=cost, cost_parts=parts)


def decide(index: AtomIndex, self_id: str, possibilities: List[Possibility], tick: int = 0) -> Decision:
    options = [p for p in possibilities if p.enabled]
    if not any(p.action_id == "wait" for p in options):
        options.append(wait_possibility(index, self_id))
    ranked = sorted((score_candidate(index, self_id, p) for p in options), key=lambda c: (-c.score, c.id))
    blocked = tuple(sorted(p.id for p in possibilities if not p.enabled))
    return Decision(self_id=self_id, tick=tick, ranked=tuple(ranked), blocked=blocked)


def candidate_atom(c: ActionCandidate) -> Atom:
    return derived(
        c.id, c.score, c.supporting,
        build_parts([("goalAlign", c.goal_align, W_GOAL), ("availability", c.availability, W_AVAIL),
                     ("tom", c.tom_support, W_TOM), ("cost", c.cost, -COST_WEIGHT)],
                     "score = 0.55*goalAlign + 0.25*availability + 0.20*tom - 0.35*cost"),
        source=SOURCE,
        label=f"{c.action_id}{'→' + c.target_id if c.target_id else ''}:{round(c.score * 100)}%",
        tags=("action", c.action_id),
        meta={"action_id": c.action_id, "target_id": c.target_id},
    )


def run_decision(ctx: StageContext) -> StageOutput:
    poss = ctx.artifacts.get("possibilities")
    if poss is None:
        # stage run on its own: rebuild the list from the aff atoms in the index
        poss = [Possibility(id=a.id, action_id=a.meta.get("action_id", a.aid.metric), target_id=a.meta.get("target_id"),
                            magnitude=a.magnitude, enabled=a.meta.get("enabled", True), cost=a.meta.get("cost", 0.0))
                for a in ctx.index.by_ns("aff") if a.aid.subject == ctx.self_id]
    decision = decide(ctx.index, ctx.self_id, poss, ctx.world.tick)
    best = decision.best
    logger.info(f"{ctx.self_id} @ t{ctx.world.tick}: best={best.id if best else None} "
                f"score={best.score if best else 0.0:.3f} of {len(decision.ranked)}")
    return StageOutput(tuple(candidate_atom(c) for c in decision.ranked), {"decision": decision})
