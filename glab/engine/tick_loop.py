"""
World tick driver.

All agents read the same snapshot (the one at the start of the tick), so the order in
which agents run does not change what they perceive. Their chosen actions and slow body
state are then written into a new snapshot one agent after the other, in sorted order.
"""
import logging
from typing import Dict, Iterable, List, NamedTuple, Optional

from glab.atoms.atom_id import atom_id
from glab.config.config import PipelineConfig
from glab.engine.apply_action import apply_chosen_action
from glab.goals.session import SimulationSession
from glab.pipeline.runner import PipelineResult, run_pipeline
from glab.pipeline.stage_types import PipelineInput
from glab.utils.math_utils import clamp01
from glab.world.models import WorldSnapshot

logger = logging.getLogger(__name__)

STRESS_ALPHA = 0.20


class TickReport(NamedTuple):
    world: WorldSnapshot
    results: Dict[str, PipelineResult]


def integrate_body_state(world: WorldSnapshot, agent_id: str, result: PipelineResult,
                         alpha: float = STRESS_ALPHA) -> WorldSnapshot:
    """Stress drifts towards 0.65 * threat + 0.35 * uncertainty of the last run."""
    agent = world.agent(agent_id)
    if agent is None:
        return world
    index = result.index()
    threat = index.get_mag(atom_id("threat", metric="final", subject=agent_id), 0.0)
    unc = index.get_mag(atom_id("ctx", metric="uncertainty", subject=agent_id), 0.5)
    target = clamp01(0.65 * threat + 0.35 * unc)
    prev = agent.body.get("stress", 0.0)
    body = {**agent.body, "stress": clamp01(prev + alpha * (target - prev))}
    agents = {**world.agents, agent_id: agent.model_copy(update={"body": body})}
    return world.model_copy(update={"agents": agents})


def run_world_tick(session: SimulationSession, world: WorldSnapshot, agent_ids: Optional[Iterable[str]] = None,
                   config: Optional[PipelineConfig] = None) -> TickReport:
    ids: List[str] = sorted(agent_ids if agent_ids is not None else world.agents)
    results: Dict[str, PipelineResult] = {}
    for aid in ids:
        results[aid] = run_pipeline(PipelineInput(self_id=aid, world=world), session=session, config=config)

    nxt = world
    for aid in ids:
        nxt = apply_chosen_action(nxt, aid, results[aid].decision)
        nxt = integrate_body_state(nxt, aid, results[aid])

    nxt = nxt.model_copy(update={"tick": world.tick + 1})
    session.advance()
    logger.info(f"world tick {world.tick} -> {nxt.tick}: {len(ids)} agents, {len(nxt.events) - len(world.events)} new events")
    return TickReport(nxt, results)
