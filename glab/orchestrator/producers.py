"""
Pipeline stages as orchestrator producers.

Each stage becomes one producer in its own orchestrator stage. Atoms whose id already
exists in the working set are sent as updates, the rest as adds, so precedence decides
whether a stage may replace what is there (a derived value never replaces an override).
"""
from typing import Optional, Sequence

from glab.atoms.atom_index import AtomIndex
from glab.atoms.merge import Patch
from glab.orchestrator.registry import ProducerRegistry
from glab.orchestrator.types import OrchestratorContext, ProducerResult, ProducerSpec
from glab.pipeline.stage_types import StageContext, StageSpec
from glab.pipeline.stages import STAGES

STAGE_PRODUCER_PRIORITY = 100


def stage_producer(stage: StageSpec, priority: int = STAGE_PRODUCER_PRIORITY, version: str = "1") -> ProducerSpec:
    def run(ctx: OrchestratorContext, index: AtomIndex) -> ProducerResult:
        if ctx.inputs is None:
            raise ValueError(f"stage {stage.stage_id} needs pipeline inputs in the orchestrator context")
        out = stage.run(StageContext(ctx.self_id, index, ctx.inputs, ctx.memory, ctx.config, ctx.artifacts))
        add = tuple(a for a in out.atoms if a.id not in index)
        update = tuple(a for a in out.atoms if a.id in index)
        refs = sorted({u for a in out.atoms for u in a.used_ids if u in index})
        return ProducerResult(
            patch=Patch(add=add, update=update),
            why=[f"{stage.stage_id}:{stage.title}"] + [f"warning:{w}" for w in out.warnings],
            input_refs=refs,
            artifacts=dict(out.artifacts),
        )

    return ProducerSpec(stage_id=stage.stage_id, name=stage.run.__name__, priority=priority, run=run, version=version)


def default_registry(stages: Optional[Sequence[StageSpec]] = None) -> ProducerRegistry:
    return ProducerRegistry(stage_producer(s) for s in (STAGES if stages is None else stages))
