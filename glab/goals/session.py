"""
Explicit simulation session.

Holds the only mutable state the core has: per-(agent, domain) goal state, the
previously active goal set and the persistent energy channel state. Pipeline runs read
an immutable ``AgentMemory`` snapshot and hand back an ``AgentMemoryUpdate``; the
session applies it with ``commit``. Two sessions never share anything.
"""
import logging
from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.goals.goal_state import GoalState

logger = logging.getLogger(__name__)


class AgentMemory(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: str = ""
    tick: int = 0
    prev_active: Tuple[str, ...] = ()
    goal_states: Dict[str, GoalState] = Field(default_factory=dict)
    energy_state: Dict[str, float] = Field(default_factory=dict)


class AgentMemoryUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    active: Tuple[str, ...] = ()
    goal_states: Dict[str, GoalState] = Field(default_factory=dict)
    energy_state: Dict[str, float] = Field(default_factory=dict)


class SimulationSession:
    def __init__(self, session_id: str = "default"):
        self.session_id = session_id
        self.tick: int = 0
        self.goal_states: Dict[str, Dict[str, GoalState]] = {}
        self.prev_active: Dict[str, Tuple[str, ...]] = {}
        self.energy_state: Dict[str, Dict[str, float]] = {}

    def memory(self, agent_id: str) -> AgentMemory:
        return AgentMemory(
            agent_id=agent_id,
            tick=self.tick,
            prev_active=self.prev_active.get(agent_id, ()),
            goal_states=dict(self.goal_states.get(agent_id, {})),
            energy_state=dict(self.energy_state.get(agent_id, {})),
        )

    def goal_state(self, agent_id: str, domain: str) -> GoalState | None:
        return self.goal_states.get(agent_id, {}).get(domain)

    def commit(self, agent_id: str, update: AgentMemoryUpdate):
        states = self.goal_states.setdefault(agent_id, {})
        states.update(update.goal_states)
        self.prev_active[agent_id] = tuple(update.active)
        self.energy_state.setdefault(agent_id, {}).update(update.energy_state)
        logger.debug(f"session {self.session_id}: {agent_id} active={list(update.active)}")

    def advance(self) -> int:
        self.tick += 1
        return self.tick

    def reset(self):
        self.tick = 0
        self.goal_states.clear()
        self.prev_active.clear()
        self.energy_state.clear()
