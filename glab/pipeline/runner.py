"""
Stage pipeline runner for one agent-tick.

Each stage sees a frozen ``AtomIndex`` of everything produced before it and returns new
atoms, which are merged newer-wins (the stage barrier). Override atoms are pinned: a
stage may compute a value for an overridden id, but the override is put back right
after the merge. After the last stage the result is validated, the dependency graph is
summarised and energy is propagated over it.
"""
import logging
from typing import Any, Dict, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from glab.atoms.atom import Atom, AtomOrigin
from glab.atoms.atom_index import AtomIndex
from glab.atoms.merge import merge_by_precedence, merge_newer_wins
from glab.atoms.normalize import MISSING_TRACE_NOTE, normalize_atoms
from glab.config.config import PipelineConfig, make_pipeline_config
from glab.goals.session import AgentMemory, AgentMemoryUpdate, SimulationSession
from glab.graph.atom_graph import AtomGraphSummary, build_atom_graph, summarize_atom_graph
from glab.graph.energy import EnergyResult, propagate_atom_energy
from glab.pipeline.decision import Decision
from glab.pipeline.stage_types import PipelineInput, StageContext, StageFrame, StageSpec, StageStats
from glab.pipeline.stages import STAGES
from glab.signals.signal_field import SignalField, build_signal_field
from glab.validation.validator import ValidationReport, validate_atoms

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    self_id: str
    tick: int = 0
    atoms: Tuple[Atom, ...] = ()
    frames: Tuple[StageFrame, ...] = ()
    validation: ValidationReport = Field(default_factory=ValidationReport)
    graph_summary: AtomGraphSummary = Field(default_factory=AtomGraphSummary)
    signal_field: Optional[SignalField] = None
    energy: Optional[EnergyResult] = None
    decision: Optional[Decision] = None
    memory_update: Optional[AgentMemoryUpdate] = None
    artifacts: Dict[str, Any] = Field(default_factory=dict)

    def index(self) -> AtomIndex:
        return AtomIndex(self.atoms)


def _stats(atoms: Sequence[Atom], added: int, overridden: int) -> StageStats:
    return StageStats(
        atom_count=len(atoms),
        added_count=added,
        overridden_count=overridden,
        missing_code_count=sum(1 for a in atoms if not a.code),
        missing_trace_derived_count=sum(1 for a in atoms if a.origin == AtomOrigin.DERIVED
                                        and (a.trace is None or MISSING_TRACE_NOTE in a.trace.notes)),
    )


def run_stages(inputs: PipelineInput, memory: AgentMemory, config: PipelineConfig,
               stages: Sequence[StageSpec] = STAGES) -> Tuple[Tuple[Atom, ...], Tuple[StageFrame, ...], Dict[str, Any]]:
    overrides = normalize_atoms(inputs.override_atoms, AtomOrigin.OVERRIDE)
    override_ids: Set[str] = {a.id for a in overrides}

    atoms: Tuple[Atom, ...] = ()
    frames = []
    artifacts: Dict[str, Any] = {}

    for spec in stages:
        ctx = StageContext(inputs.self_id, AtomIndex(atoms), inputs, memory, config, dict(artifacts))
        out = spec.run(ctx)
        merged = merge_newer_wins(atoms, out.atoms)
        warnings = list(out.warnings)

        pinned = sorted(override_ids & {a.id for a in out.atoms if a.origin != AtomOrigin.OVERRIDE})
        result_atoms = merged.atoms
        if pinned:
            result_atoms = merge_by_precedence(merged.atoms, overrides).atoms
            warnings.extend(f"override pinned: {i}" for i in pinned)
        overridden = [i for i in merged.overridden_ids if i not in pinned]

        atoms = result_atoms
        artifacts.update(out.artifacts)
        frames.append(StageFrame(
            stage=spec.stage_id,
            title=spec.title,
            atoms=atoms,
            added_ids=list(merged.added_ids),
            overridden_ids=overridden,
            warnings=warnings,
            stats=_stats(atoms, len(merged.added_ids), len(overridden)),
            artifacts=dict(out.artifacts),
        ))
        logger.debug(f"{spec.stage_id} {spec.title}: +{len(merged.added_ids)} ~{len(overridden)} "
                     f"total={len(atoms)}")
        for w in warnings:
            logger.warning(f"{inputs.self_id} {spec.stage_id}: {w}")

    return atoms, tuple(frames), artifacts


def run_pipeline(inputs: PipelineInput, session: Optional[SimulationSession] = None,
                 config: Optional[PipelineConfig] = None, stages: Sequence[StageSpec] = STAGES,
                 commit: bool = True) -> PipelineResult:
    """
    Run every stage for ``inputs.self_id``.

    With a session the goal and energy memory of the agent is read from it and, when
    ``commit`` is set, the resulting update is written back. Without a session the run
    starts from empty memory and nothing is kept.
    """
    config = config or make_pipeline_config()
    self_id = inputs.self_id
    memory = session.memory(self_id) if session is not None else AgentMemory(agent_id=self_id)

    atoms, frames, artifacts = run_stages(inputs, memory, config, stages)

    report = validate_atoms(atoms, autofix=config.autofix, cycle_sample_size=config.cycle_sample_size)
    final = report.atoms if config.autofix else atoms

    graph = build_atom_graph(final)
    summary = summarize_atom_graph(graph, config.cycle_sample_size)
    field = build_signal_field(self_id, final)
    energy = propagate_atom_energy(graph, field, steps=config.energy.steps, decay=config.energy.decay,
                                   top_k=config.energy.top_k)

    update = artifacts.get("memory_update")
    if session is not None and commit and update is not None:
        session.commit(self_id, update)

    logger.info(f"pipeline {self_id} @ t{inputs.world.tick}: {len(final)} atoms, {summary.edges} edges, "
                f"{len(report.issues)} issues, topo_ok={summary.topo_ok}")
    return PipelineResult(
        self_id=self_id,
        tick=inputs.world.tick,
        atoms=final,
        frames=frames,
        validation=report,
        graph_summary=summary,
        signal_field=field,
        energy=energy,
        decision=artifacts.get("decision"),
        memory_update=update,
        artifacts=artifacts,
    )
