from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.atoms.atom import Atom
from glab.atoms.atom_index import AtomIndex
from glab.config.config import PipelineConfig
from glab.goals.session import AgentMemory
from glab.world.models import WorldSnapshot


class PipelineInput(BaseModel):
    """What one agent-tick pipeline run consumes. Only ``self_id`` is required."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    self_id: str
    world: WorldSnapshot = Field(default_factory=WorldSnapshot)
    manual_atoms: Tuple[Atom, ...] = ()
    override_atoms: Tuple[Atom, ...] = ()
    scene_controls: Dict[str, float] = Field(default_factory=dict, description="manual scene metrics, same keys as SceneSnapshot.metrics")
    event_window: int = 5


class StageContext(NamedTuple):
    self_id: str
    index: AtomIndex
    inputs: PipelineInput
    memory: AgentMemory
    config: PipelineConfig
    artifacts: Dict[str, Any]

    @property
    def world(self) -> WorldSnapshot:
        return self.inputs.world


class StageOutput(NamedTuple):
    atoms: Tuple[Atom, ...]
    artifacts: Dict[str, Any] = {}
    warnings: Tuple[str, ...] = ()


class StageStats(BaseModel):
    atom_count: int = 0
    added_count: int = 0
    overridden_count: int = 0
    missing_code_count: int = 0
    missing_trace_derived_count: int = 0


class StageFrame(BaseModel):
    """Snapshot after a stage: everything known so far plus what this stage changed."""
    stage: str
    title: str
    atoms: Tuple[Atom, ...] = ()
    added_ids: List[str] = Field(default_factory=list)
    overridden_ids: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    stats: StageStats = Field(default_factory=StageStats)
    artifacts: Dict[str, Any] = Field(default_factory=dict)


class StageSpec(NamedTuple):
    stage_id: str
    title: str
    run: Callable[[StageContext], StageOutput]
