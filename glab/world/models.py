"""
World input contract.

Everything is optional and defaults to neutral values: partial world state is the normal
case while a scene is being set up, so the pipeline must never fail on missing data.
Magnitudes are 0..1 unless noted otherwise.
"""
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from glab.utils.math_utils import clamp01


class Relationship(BaseModel):
    other_id: str
    closeness: float = Field(default=0.0, ge=0.0, le=1.0)
    loyalty: float = Field(default=0.0, ge=0.0, le=1.0)
    hostility: float = Field(default=0.0, ge=0.0, le=1.0)
    dependency: float = Field(default=0.0, ge=0.0, le=1.0)
    authority: float = Field(default=0.0, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list, description="friend, lover, ally, family, protected, ...")


class BeliefAtom(BaseModel):
    id: str
    magnitude: float = 0.5
    confidence: float = 0.7


class AgentSnapshot(BaseModel):
    id: str
    name: str = ""
    location_id: Optional[str] = None
    position: Optional[Tuple[float, float]] = None
    perception_radius: float = Field(default=10.0, gt=0.0)

    traits: Dict[str, float] = Field(default_factory=dict, description="trait.* features, e.g. paranoia, sensitivity")
    body: Dict[str, float] = Field(default_factory=dict, description="body.* features: stress, fatigue, pain")
    capabilities: Dict[str, float] = Field(default_factory=dict, description="cap:* facts: fatigue, hunger, weapon")
    life_goals: Dict[str, float] = Field(default_factory=dict, description="goal domain -> life weight")
    relationships: Dict[str, Relationship] = Field(default_factory=dict)
    tom: Dict[str, Dict[str, float]] = Field(default_factory=dict, description="other id -> dyad metric -> value")
    beliefs: List[BeliefAtom] = Field(default_factory=list)
    info_adequacy: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="before")
    @classmethod
    def _clamp_maps(cls, data: Any):
        if isinstance(data, dict):
            for key in ("traits", "body", "capabilities", "life_goals"):
                if isinstance(data.get(key), dict):
                    data[key] = {k: clamp01(v) for k, v in data[key].items()}
        return data


class MapMetrics(BaseModel):
    danger: float = Field(default=0.0, ge=0.0, le=1.0)
    cover: float = Field(default=0.0, ge=0.0, le=1.0)
    obstacles: float = Field(default=0.0, ge=0.0, le=1.0)
    exits: int = Field(default=0, ge=0)
    escape: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    hazard: float = Field(default=0.0, ge=0.0, le=1.0)


class LocationSnapshot(BaseModel):
    id: str
    private: bool = False
    visibility: float = Field(default=0.6, ge=0.0, le=1.0)
    noise: float = Field(default=0.0, ge=0.0, le=1.0)
    social_visibility: float = Field(default=0.0, ge=0.0, le=1.0)
    normative_pressure: float = Field(default=0.0, ge=0.0, le=1.0)
    control_level: float = Field(default=0.0, ge=0.0, le=1.0)
    crowd_level: float = Field(default=0.0, ge=0.0, le=1.0)
    map: MapMetrics = Field(default_factory=MapMetrics)


class SceneSnapshot(BaseModel):
    preset_id: Optional[str] = None
    metrics: Dict[str, float] = Field(default_factory=dict, description="crowd, hostility, urgency, scarcity, novelty, loss, resourceAccess, threat, chaos")
    norms: Dict[str, float] = Field(default_factory=dict, description="proceduralStrict, surveillance, publicExposure, privacy, normPressure")

    @staticmethod
    def scaled(v: float) -> float:
        """Older scenes store 0..100; anything above 1 is treated as a percentage."""
        v = float(v)
        return clamp01(v / 100.0 if v > 1.0 else v)


class WorldEvent(BaseModel):
    id: str
    tick: int
    kind: str
    actor_id: str
    target_id: Optional[str] = None
    magnitude: float = Field(default=1.0, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)


class WorldSnapshot(BaseModel):
    tick: int = 0
    time: float = 0.0
    seed: int = 0
    agents: Dict[str, AgentSnapshot] = Field(default_factory=dict)
    locations: Dict[str, LocationSnapshot] = Field(default_factory=dict)
    scene: Optional[SceneSnapshot] = None
    events: List[WorldEvent] = Field(default_factory=list)

    def agent(self, agent_id: str) -> Optional[AgentSnapshot]:
        return self.agents.get(agent_id)

    def location_of(self, agent_id: str) -> Optional[LocationSnapshot]:
        a = self.agents.get(agent_id)
        if a is None or a.location_id is None:
            return None
        return self.locations.get(a.location_id)

    def recent_events(self, agent_id: str, window: int) -> List[WorldEvent]:
        """Events within ``window`` ticks (inclusive) where the agent is actor or target, oldest first."""
        lo = self.tick - window
        out = [e for e in self.events
               if lo <= e.tick <= self.tick and (e.actor_id == agent_id or e.target_id == agent_id)]
        return sorted(out, key=lambda e: (e.tick, e.id))
