"""
Stage S6: drivers, energy channels and the goal ecology.

Order inside the stage matters: drivers feed the domain scores, felt energy feeds the
mode gate, and the mode-biased scores go through hysteretic selection before goal state
is integrated. Nothing here writes to the session; the new memory is returned in the
``memory_update`` artifact and committed by whoever drives the tick.
"""
import logging
from typing import Dict, List

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.goals.ecology import GOAL_DOMAINS, derive_domain_scores
from glab.goals.goal_state import GoalState, update_goal_state
from glab.goals.hysteresis import select_active_goals
from glab.goals.mode_gate import MODE_DOMAIN_BIAS, MODES, apply_mode_bias, domain_bias, gate_modes
from glab.goals.session import AgentMemoryUpdate
from glab.pipeline.derive_utils import derived
from glab.pipeline.drivers import derive_drivers, energy_atoms, energy_channels
from glab.pipeline.stage_types import StageContext, StageOutput

logger = logging.getLogger(__name__)

STATE_FIELDS = (("tension", "tension"), ("lockIn", "lock_in"), ("fatigue", "fatigue"), ("progress", "progress"))


def run_goals(ctx: StageContext) -> StageOutput:
    self_id = ctx.self_id
    cfg = ctx.config
    memory = ctx.memory

    drivers = derive_drivers(ctx.index, self_id)
    view = AtomIndex(ctx.index.atoms + tuple(drivers))

    channels = energy_channels(view, self_id, memory.energy_state, cfg.energy.inertia)
    ener = energy_atoms(self_id, channels, memory.energy_state, cfg.energy.inertia)
    view = AtomIndex(view.atoms + tuple(ener))

    felt_ids = [atom_id("ener:felt", metric=ch, subject=self_id) for ch in sorted(channels.felt)]
    gate = gate_modes(channels.felt, cfg.goals.mode_temperature)
    out: List[Atom] = list(drivers) + list(ener)
    for m in MODES:
        out.append(derived(atom_id("goal:mode", metric=m, subject=self_id), gate.weights[m], felt_ids,
                           {"score": gate.scores[m], "weight": gate.weights[m], "temperature": gate.temperature},
                           source="goal_mode_gate", tags=("goal", "mode", m)))
    mode_ids = [atom_id("goal:mode", metric=m, subject=self_id) for m in MODES]

    scores = derive_domain_scores(view, self_id)
    biased: Dict[str, float] = {}
    for d in GOAL_DOMAINS:
        s = scores[d]
        bias = domain_bias(gate.weights, d)
        biased[d] = apply_mode_bias(s.value, bias)
        out.append(derived(atom_id("goal:domain", metric=d, subject=self_id), biased[d],
                           s.used + [mid for mid, m in zip(mode_ids, MODES) if d in MODE_DOMAIN_BIAS[m]],
                           {**s.parts, "base": s.value, "modeBias": bias, "score": biased[d]},
                           source="goal_ecology", label=f"goal.{d}:{round(biased[d] * 100)}%",
                           tags=("goal", "domain", d)))

    lock_in = {d: st.lock_in for d, st in memory.goal_states.items()}
    sel = select_active_goals(biased, memory.prev_active, lock_in, cfg.goals.top_n, cfg.goals.hysteresis_margin)
    for rank, d in enumerate(sel.active):
        out.append(derived(atom_id("goal:active", metric=d, subject=self_id), biased[d],
                           [atom_id("goal:domain", metric=d, subject=self_id)],
                           {"rank": rank, "effective": sel.effective[d], "bonus": sel.bonus[d], "lead": sel.lead[d],
                            "wasActive": d in memory.prev_active},
                           source="goal_hysteresis", tags=("goal", "active", d)))

    # states exist from the first activation on, and keep decaying afterwards
    states: Dict[str, GoalState] = {}
    for d in GOAL_DOMAINS:
        prev = memory.goal_states.get(d)
        active = d in sel.active
        if prev is None and not active:
            continue
        states[d] = update_goal_state(prev or GoalState(), score=biased[d], active=active,
                                      lead=sel.lead[d], tick=memory.tick)
        for label, field in STATE_FIELDS:
            value = getattr(states[d], field)
            out.append(derived(atom_id("goal:state", metric=d, subject=self_id, qualifier=label), value,
                               [atom_id("goal:domain", metric=d, subject=self_id)],
                               {"prev": getattr(prev, field) if prev else 0.0, "value": value, "active": active},
                               source="goal_state", label=f"{d}.{label}:{round(value * 100)}%",
                               tags=("goal", "state", d, label)))

    update = AgentMemoryUpdate(active=sel.active, goal_states=states, energy_state=channels.state)
    logger.debug(f"{self_id}: goals active={list(sel.active)} modes={ {m: round(w, 3) for m, w in gate.weights.items()} }")
    return StageOutput(tuple(out), {
        "goals": {"scores": biased, "active": list(sel.active), "ranking": list(sel.ranking),
                  "mode_weights": dict(gate.weights)},
        "memory_update": update,
    })
