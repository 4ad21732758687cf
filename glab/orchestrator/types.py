from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.atoms.atom import Atom
from glab.atoms.atom_index import AtomIndex
from glab.atoms.merge import AtomChange, Patch
from glab.config.config import PipelineConfig, make_pipeline_config
from glab.goals.session import AgentMemory
from glab.pipeline.stage_types import PipelineInput

TRACE_SCHEMA = "GoalLabOrchestratorTraceV1"


class OrchestratorContext(BaseModel):
    """Everything a producer may read besides the working atom set."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    tick: int = 0
    time: float = 0.0
    seed: int = 0
    inputs: Optional[PipelineInput] = None
    memory: AgentMemory = Field(default_factory=AgentMemory)
    config: PipelineConfig = Field(default_factory=make_pipeline_config)
    artifacts: Dict[str, Any] = Field(default_factory=dict)

    @property
    def self_id(self) -> str:
        return self.inputs.self_id if self.inputs is not None else self.memory.agent_id


class ProducerResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    patch: Patch = Field(default_factory=Patch)
    why: List[str] = Field(default_factory=list, description="rule references explaining the patch")
    input_refs: List[str] = Field(default_factory=list)
    artifacts: Dict[str, Any] = Field(default_factory=dict)


ProducerFn = Callable[[OrchestratorContext, AtomIndex], ProducerResult]


class ProducerSpec(NamedTuple):
    stage_id: str
    name: str
    priority: int
    run: ProducerFn
    version: str = "1"


class ProducerOutputs(BaseModel):
    atoms_added: List[str] = Field(default_factory=list)
    atoms_updated: List[str] = Field(default_factory=list)
    atoms_removed: List[str] = Field(default_factory=list)


class ProducerTrace(BaseModel):
    name: str
    version: str
    priority: int
    input_refs: List[str] = Field(default_factory=list)
    outputs: ProducerOutputs = Field(default_factory=ProducerOutputs)
    why: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class StageTrace(BaseModel):
    stage_id: str
    producers: List[ProducerTrace] = Field(default_factory=list)


class OrchestratorTraceV1(BaseModel):
    schema_name: str = Field(default=TRACE_SCHEMA, alias="schema")
    tick_id: str
    time: float = 0.0
    seed: int = 0
    inputs: Dict[str, Any] = Field(default_factory=dict)
    stages: List[StageTrace] = Field(default_factory=list)
    atom_changes: List[AtomChange] = Field(default_factory=list)
    atoms_out_count: int = 0
    human_log: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class TickResult(NamedTuple):
    atoms: Tuple[Atom, ...]
    trace: OrchestratorTraceV1
    artifacts: Dict[str, Any]


def tick_id(tick: int) -> str:
    return f"t{int(tick):05d}"
