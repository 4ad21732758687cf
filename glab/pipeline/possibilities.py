"""
Stage S7: possibilities.

Lists what the agent could do right now (affordances), what forbids some of it
(constraints) and what each option would cost. Blocked options are still emitted with
``enabled=False`` and the ids of whatever blocks them, so the decision layer and any
inspector can tell "impossible" from "never considered".
"""
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.atoms.atom import Atom
from glab.atoms.atom_id import atom_id
from glab.atoms.atom_index import AtomIndex
from glab.pipeline.derive_utils import build_parts, derived
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.utils.math_utils import clamp01

logger = logging.getLogger(__name__)

SOURCE = "possibilities"

NO_VIOLENCE_THRESHOLD = 0.6
HARD_TABOO_TAGS = ("lover", "friend", "family", "protected")
HELP_REL_BOOST = {"lover": 0.35, "friend": 0.25, "ally": 0.15}
MIN_CLOSENESS = 0.15

COST_WEIGHTS = {"time": 0.20, "energy": 0.30, "social": 0.20, "risk": 0.20, "moral": 0.10}


class Possibility(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    action_id: str
    target_id: Optional[str] = None
    magnitude: float = 0.0
    enabled: bool = True
    blocked_by: Tuple[str, ...] = ()
    why: Tuple[str, ...] = ()
    cost: float = 0.0
    cost_parts: Dict[str, float] = Field(default_factory=dict)
    tags: Tuple[str, ...] = ()


def action_cost(index: AtomIndex, self_id: str, action_id: str) -> Tuple[float, Dict[str, float]]:
    """Scalar cost of an action (time, energy, social, risk, moral) in 0..1."""
    def s(prefix, metric):
        return index.get_mag(atom_id(prefix, metric=metric, subject=self_id), 0.0)

    fatigue = index.get_mag(atom_id("feat:char", subject=self_id, metric="body.fatigue"), 0.0)
    tp = s("ctx", "timePressure")
    pub = s("ctx", "publicness")
    surv = s("norm", "surveillance")
    strict = s("ctx", "proceduralStrict")
    threat = s("threat", "final")

    table = {
        "hide": (0.20, 0.10 + 0.25 * fatigue, 0.05, 0.05 + 0.15 * threat, 0.03),
        "escape": (0.45 + 0.35 * tp, 0.35 + 0.35 * fatigue, 0.15, 0.25 + 0.35 * threat, 0.05),
        "talk": (0.25, 0.10 + 0.15 * fatigue, 0.25 + 0.45 * pub + 0.25 * surv, 0.10 + 0.20 * threat, 0.03),
        "attack": (0.25, 0.55 + 0.25 * fatigue, 0.35 + 0.35 * pub, 0.65 + 0.25 * threat, 0.35 + 0.35 * strict),
        "help": (0.30, 0.25 + 0.20 * fatigue, 0.10 + 0.15 * pub, 0.15 + 0.20 * threat, 0.02),
        "share_secret": (0.25, 0.10, 0.55 + 0.25 * pub + 0.25 * surv, 0.20 + 0.20 * threat, 0.05 + 0.20 * strict),
        "wait": (0.05, 0.0, 0.0, 0.05 * threat, 0.0),
    }
    row = table.get(action_id, (0.2, 0.2, 0.1, 0.1, 0.05))
    vec = {k: clamp01(v) for k, v in zip(("time", "energy", "social", "risk", "moral"), row)}
    return clamp01(sum(COST_WEIGHTS[k] * vec[k] for k in vec)), vec


def derive_possibilities(index: AtomIndex, self_id: str) -> Tuple[List[Possibility], List[Atom]]:
    def sid(prefix, metric):
        return atom_id(prefix, metric=metric, subject=self_id)

    g = index.get_mag
    constraints: List[Atom] = []
    poss: List[Possibility] = []

    strict_id = sid("ctx", "proceduralStrict")
    strict = g(strict_id, 0.0)
    no_violence_id = sid("con", "noViolence")
    no_violence = strict > NO_VIOLENCE_THRESHOLD
    if no_violence:
        constraints.append(derived(no_violence_id, 1.0, [strict_id], {"proceduralStrict": strict},
                                   source=SOURCE, notes=("derived constraint",), label="protocol forbids violence",
                                   tags=("con", "protocol")))

    cover_id = sid("world:map", "cover") if sid("world:map", "cover") in index else sid("ctx", "cover")
    vis_id = sid("world:loc", "visibility")
    cover, vis = g(cover_id, 0.0), g(vis_id, 0.5)
    if cover >= 0.05:
        poss.append(Possibility(id=sid("aff", "hide"), action_id="hide", magnitude=clamp01(0.7 * cover + 0.3 * (1 - vis)),
                                why=(cover_id, vis_id), tags=("self",)))

    exits_id, escape_id = sid("world:map", "exits"), sid("ctx", "escape")
    exits, esc = g(exits_id, 0.0), g(escape_id, 0.0)
    if exits >= 0.05 or esc >= 0.05:
        poss.append(Possibility(id=sid("aff", "escape"), action_id="escape", magnitude=clamp01(0.5 * exits + 0.5 * esc),
                                why=(exits_id, escape_id), tags=("self", "exit")))

    pub_id = sid("ctx", "publicness")
    pub = g(pub_id, 0.0)
    weapon_id = sid("cap", "weapon")
    weapon_ok = g(weapon_id, 0.0) > 0.5

    for other in index.targets_of("obs:nearby", self_id):
        near_id = atom_id("obs:nearby", subject=self_id, target=other)
        close = clamp01(g(near_id, 0.0))
        rel_tags = tuple(a.aid.metric for a in index.by_prefix(f"rel:tag:{self_id}:{other}"))
        tag_ids = tuple(a.id for a in index.by_prefix(f"rel:tag:{self_id}:{other}"))

        def aff(action):
            return atom_id("aff", metric=action, subject=self_id, target=other)

        poss.append(Possibility(id=aff("talk"), action_id="talk", target_id=other, magnitude=close,
                                enabled=close > MIN_CLOSENESS, why=(near_id,), tags=("social",)))

        boost = max((HELP_REL_BOOST.get(t, 0.0) for t in rel_tags), default=0.0)
        poss.append(Possibility(id=aff("help"), action_id="help", target_id=other, magnitude=clamp01(close + boost),
                                enabled=close > MIN_CLOSENESS, why=(near_id,) + tag_ids, tags=("social",) + rel_tags))

        loyalty_id = atom_id("rel:base", subject=self_id, target=other, metric="loyalty")
        trust_id = atom_id("tom:effective:dyad", subject=self_id, target=other, metric="trust")
        trust = max(g(loyalty_id, 0.0), g(trust_id, 0.5))
        secret_ok = pub < 0.35 and trust > 0.7
        poss.append(Possibility(
            id=aff("share_secret"), action_id="share_secret", target_id=other,
            magnitude=clamp01(0.6 + 0.4 * close) if secret_ok else 0.05,
            enabled=secret_ok and close > 0.2,
            blocked_by=() if secret_ok else (pub_id, trust_id),
            why=(pub_id, loyalty_id, trust_id, near_id), tags=("social", "secret"),
        ))

        taboo = any(t in HARD_TABOO_TAGS for t in rel_tags)
        taboo_id = atom_id("con", metric="tabooAttack", subject=self_id, target=other)
        if taboo:
            constraints.append(derived(taboo_id, 1.0, tag_ids, {"tags": list(rel_tags)}, source=SOURCE,
                                       notes=("hard taboo from relation tags",),
                                       label="taboo: cannot attack close relation", tags=("con", "rel", "taboo")))
        blocked = tuple(b for b, on in ((no_violence_id, no_violence), (taboo_id, taboo), (weapon_id, not weapon_ok)) if on)
        enabled = not blocked and close > MIN_CLOSENESS
        poss.append(Possibility(
            id=aff("attack"), action_id="attack", target_id=other,
            magnitude=clamp01(0.5 + 0.5 * close) if enabled else 0.02,
            enabled=enabled, blocked_by=blocked, why=(near_id, weapon_id), tags=("violent",) + rel_tags,
        ))

    priced = []
    for p in poss:
        cost, parts = action_cost(index, self_id, p.action_id)
        priced.append(p.model_copy(update={"cost": cost, "cost_parts": parts}))
    return priced, constraints


def possibility_atom(p: Possibility, self_id: str) -> Atom:
    used = [i for i in p.why] + list(p.blocked_by)
    return derived(
        p.id, p.magnitude, used or [atom_id("world", metric="location", subject=self_id)],
        build_parts([("cost", p.cost)] + [(f"cost.{k}", v) for k, v in p.cost_parts.items()]),
        source=SOURCE,
        notes=("affordance",) if p.enabled else ("affordance (blocked)",),
        label=f"{p.action_id}{'→' + p.target_id if p.target_id else ''}:{round(p.magnitude * 100)}%",
        tags=("aff", p.action_id) + p.tags,
        meta={"action_id": p.action_id, "target_id": p.target_id, "enabled": p.enabled,
              "blocked_by": list(p.blocked_by), "cost": p.cost},
    )


def run_possibilities(ctx: StageContext) -> StageOutput:
    poss, constraints = derive_possibilities(ctx.index, ctx.self_id)
    atoms = tuple(constraints) + tuple(possibility_atom(p, ctx.self_id) for p in poss)
    enabled = [p.id for p in poss if p.enabled]
    logger.debug(f"{ctx.self_id}: {len(poss)} possibilities, {len(enabled)} enabled")
    return StageOutput(atoms, {"possibilities": poss})
