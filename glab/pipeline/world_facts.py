"""
Stage S0: turn the world snapshot into source atoms.

Nothing here derives anything; every atom is a fact with origin world, obs or belief
(or override/manual as supplied by the caller). Absent inputs simply produce no atoms.
"""
import logging
import math
from typing import Dict, List

from glab.atoms.atom import Atom, AtomOrigin
from glab.atoms.atom_id import atom_id
from glab.atoms.merge import merge_by_precedence
from glab.atoms.normalize import make_fact, normalize_atom
from glab.pipeline.stage_types import StageContext, StageOutput
from glab.utils.math_utils import clamp01
from glab.world.models import AgentSnapshot, SceneSnapshot, WorldSnapshot

logger = logging.getLogger(__name__)

SCENE_METRICS = ("crowd", "hostility", "urgency", "scarcity", "novelty", "loss", "resourceAccess", "threat", "chaos")
SCENE_NORMS = ("proceduralStrict", "surveillance", "publicExposure", "privacy", "normPressure")
REL_METRICS = ("closeness", "loyalty", "hostility", "dependency", "authority")

# recent events lose this share of weight per tick of age
EVENT_AGE_DECAY = 0.8


def _pct(v: float) -> str:
    return f"{round(clamp01(v) * 100)}%"


def world_atoms(world: WorldSnapshot, self_id: str) -> List[Atom]:
    out: List[Atom] = [
        make_fact(atom_id("world:tick"), 1.0, source="world", label=f"tick={world.tick}", meta={"tick": world.tick}),
    ]
    agent = world.agent(self_id)
    loc = world.location_of(self_id)

    if agent is not None and agent.location_id:
        out.append(make_fact(atom_id("world", metric="location", subject=self_id), 1.0, source="world",
                             label=f"location={agent.location_id}", meta={"location_id": agent.location_id}))

    if loc is not None:
        props = {
            "privacy": 1.0 if loc.private else 0.0,
            "visibility": loc.visibility,
            "noise": loc.noise,
            "social_visibility": loc.social_visibility,
            "normative_pressure": loc.normative_pressure,
            "control_level": loc.control_level,
            "crowd": loc.crowd_level,
        }
        for k, v in props.items():
            out.append(make_fact(atom_id("world:loc", metric=k, subject=self_id), v, source="location", label=f"{k}={_pct(v)}"))

        mm = loc.map
        metrics = {
            "danger": mm.danger,
            "cover": mm.cover,
            "obstacles": mm.obstacles,
            "exits": clamp01(mm.exits / 4.0),
            "hazard": mm.hazard,
        }
        if mm.escape is not None:
            metrics["escape"] = mm.escape
        for k, v in metrics.items():
            out.append(make_fact(atom_id("world:map", metric=k, subject=self_id), v, source="map", label=f"{k}={_pct(v)}"))

    return out


def scene_atoms(scene: SceneSnapshot | None, controls: Dict[str, float], self_id: str) -> List[Atom]:
    """Scene metrics become ``scene:*`` facts plus ``ctx:src:*`` control inputs; manual controls win."""
    out: List[Atom] = []
    metrics = dict(scene.metrics) if scene else {}
    metrics.update(controls or {})
    norms = dict(scene.norms) if scene else {}

    for k in SCENE_METRICS:
        if k not in metrics:
            continue
        v = SceneSnapshot.scaled(metrics[k])
        out.append(make_fact(atom_id("scene", metric=k, subject=self_id), v, source="scene", label=f"scene.{k}={_pct(v)}"))
        out.append(make_fact(atom_id("ctx:src", group="scene", metric=k, subject=self_id), v, source="scene"))

    for k in SCENE_NORMS:
        if k not in norms:
            continue
        v = SceneSnapshot.scaled(norms[k])
        out.append(make_fact(atom_id("ctx:src", group="norm", metric=k, subject=self_id), v, source="scene", label=f"norm.{k}={_pct(v)}"))
        if k == "surveillance":
            out.append(make_fact(atom_id("norm", metric="surveillance", subject=self_id), v, source="scene"))

    if scene and scene.preset_id:
        out.append(make_fact(atom_id("scene:id", metric=scene.preset_id, subject=self_id), 1.0, source="scene",
                             label=f"scene={scene.preset_id}"))
    return out


def character_atoms(agent: AgentSnapshot) -> List[Atom]:
    sid = agent.id
    out: List[Atom] = []
    for k, v in sorted(agent.traits.items()):
        out.append(make_fact(atom_id("feat:char", subject=sid, metric=f"trait.{k}"), v, source="character"))
    for k, v in sorted(agent.body.items()):
        out.append(make_fact(atom_id("feat:char", subject=sid, metric=f"body.{k}"), v, source="character"))
    for k, v in sorted(agent.capabilities.items()):
        out.append(make_fact(atom_id("cap", metric=k, subject=sid), v, source="character"))
    for d, v in sorted(agent.life_goals.items()):
        out.append(make_fact(atom_id("goal:lifeDomain", metric=d, subject=sid), v, source="life_goals"))
    return out


def relation_atoms(agent: AgentSnapshot) -> List[Atom]:
    sid = agent.id
    out: List[Atom] = []
    for other, rel in sorted(agent.relationships.items()):
        for m in REL_METRICS:
            out.append(make_fact(atom_id("rel:base", subject=sid, target=other, metric=m), getattr(rel, m),
                                 AtomOrigin.MEMORY, source="relations"))
        for tag in sorted(set(rel.tags)):
            out.append(make_fact(atom_id("rel:tag", subject=sid, target=other, metric=tag), 1.0,
                                 AtomOrigin.MEMORY, source="relations"))
    for other, metrics in sorted(agent.tom.items()):
        for m, v in sorted(metrics.items()):
            out.append(make_fact(atom_id("tom:dyad", subject=sid, target=other, metric=m), v,
                                 AtomOrigin.BELIEF, source="tom", confidence=0.8))
    for b in agent.beliefs:
        out.append(normalize_atom({"id": b.id, "magnitude": b.magnitude, "confidence": b.confidence,
                                   "origin": AtomOrigin.BELIEF, "source": "beliefs"}))
    return out


def observation_atoms(world: WorldSnapshot, self_id: str) -> List[Atom]:
    """Who is near, what can be seen and heard, and how well informed the agent is."""
    agent = world.agent(self_id)
    if agent is None:
        return []
    out: List[Atom] = []

    if agent.info_adequacy is not None:
        out.append(make_fact(atom_id("obs", metric="infoAdequacy", subject=self_id), agent.info_adequacy,
                             AtomOrigin.OBS, source="perception"))

    loc = world.location_of(self_id)
    if loc is None or agent.position is None:
        return out

    for other_id in sorted(world.agents):
        if other_id == self_id:
            continue
        other = world.agents[other_id]
        if other.location_id != agent.location_id or other.position is None:
            continue
        dist = math.dist(agent.position, other.position)
        close = clamp01(1.0 - dist / agent.perception_radius)
        if close <= 0:
            continue
        los = clamp01(loc.visibility * (1.0 - 0.5 * loc.map.obstacles))
        audio = clamp01(close * (1.0 - 0.6 * loc.noise))
        out.append(make_fact(atom_id("obs:nearby", subject=self_id, target=other_id), close, AtomOrigin.OBS,
                             source="perception", label=f"near {other_id}: {_pct(close)}"))
        out.append(make_fact(atom_id("obs:los", subject=self_id, target=other_id), los, AtomOrigin.OBS, source="perception"))
        out.append(make_fact(atom_id("obs:audio", subject=self_id, target=other_id), audio, AtomOrigin.OBS, source="perception"))
    return out


def event_atoms(world: WorldSnapshot, self_id: str, window: int) -> List[Atom]:
    """
    ``event:recent:<kind>:<self>[:<other>]``, strongest occurrence within the window,
    decayed by age. ``meta.role`` says whether the agent acted or was acted upon.
    """
    best: Dict[str, Atom] = {}
    for e in world.recent_events(self_id, window):
        other = e.target_id if e.actor_id == self_id else e.actor_id
        if other == self_id:
            other = None
        role = "actor" if e.actor_id == self_id else "target"
        age = max(0, world.tick - e.tick)
        v = clamp01(e.magnitude * EVENT_AGE_DECAY ** age)
        aid = atom_id("event:recent", metric=e.kind, subject=self_id, target=other)
        cur = best.get(aid)
        if cur is None or v > cur.magnitude:
            best[aid] = make_fact(aid, v, AtomOrigin.OBS, source="events", tags=e.tags,
                                  meta={"event_id": e.id, "role": role, "age": age})
    return [best[k] for k in sorted(best)]


def run_world_facts(ctx: StageContext) -> StageOutput:
    world = ctx.world
    sid = ctx.self_id
    agent = world.agent(sid)
    warnings = []
    if agent is None:
        warnings.append(f"agent {sid} not in world snapshot, using neutral defaults")

    facts: List[Atom] = []
    facts += world_atoms(world, sid)
    facts += scene_atoms(world.scene, ctx.inputs.scene_controls, sid)
    if agent is not None:
        facts += character_atoms(agent)
        facts += relation_atoms(agent)
    facts += observation_atoms(world, sid)
    facts += event_atoms(world, sid, ctx.inputs.event_window)

    # manual atoms behave like any other input; overrides outrank everything
    merged = merge_by_precedence(facts, [normalize_atom(a, AtomOrigin.OBS) for a in ctx.inputs.manual_atoms])
    merged = merge_by_precedence(merged.atoms, [normalize_atom(a, AtomOrigin.OVERRIDE) for a in ctx.inputs.override_atoms])

    return StageOutput(merged.atoms, {"fact_count": len(merged.atoms)}, tuple(warnings))
